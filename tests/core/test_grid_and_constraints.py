"""
Belief Grid and Constraint Store Tests
======================================

INVARIANTS TESTED:
1. Cells move only UNKNOWN -> HAS | LACKS
2. set_state is idempotent and keeps the first explanation
3. Opposite terminal writes are contradictions, never overwrites
4. Constraint resolution replaces the arena entry
"""

import pytest

from deduction.contracts.base import (
    Cell, CellState, Explanation, ExplanationKind, ErrorCode,
    InconsistentStateError, InvalidEventError, UnknownIdentifierError
)
from deduction.contracts.events import ConstraintResolution
from deduction.core.grid import BeliefGrid, ContradictionLedger, GridSnapshot
from deduction.core.constraints import ConstraintStore


PLAYERS = ("p0", "p1", "p2")
CARDS = ("miss_scarlett", "rope", "kitchen", "hall")


def because(text="test"):
    return Explanation(kind=ExplanationKind.MANUAL_CLAIM, text=text, origin_event_id="turn_1")


def make_grid(strict=True):
    ledger = ContradictionLedger(strict=strict, origin_event_id="turn_1")
    return BeliefGrid(GridSnapshot.empty(PLAYERS, CARDS), ledger), ledger


class TestCellVariant:
    """Terminal states carry provenance, UNKNOWN never does."""

    def test_unknown_rejects_explanation(self):
        with pytest.raises(ValueError):
            Cell(state=CellState.UNKNOWN, explanation=because())

    def test_terminal_requires_explanation(self):
        with pytest.raises(ValueError):
            Cell(state=CellState.HAS)

    def test_opposites(self):
        assert CellState.HAS.opposite() is CellState.LACKS
        assert CellState.LACKS.opposite() is CellState.HAS
        assert not CellState.UNKNOWN.is_terminal


class TestBeliefGrid:

    def test_forward_transition_records_change(self):
        grid, _ = make_grid()
        assert grid.set_state("p0", "rope", CellState.HAS, because())

        assert grid.state_of("p0", "rope") is CellState.HAS
        (change,) = grid.changes
        assert (change.player_id, change.card_id, change.state) == ("p0", "rope", CellState.HAS)

    def test_same_state_is_noop_and_keeps_first_explanation(self):
        grid, _ = make_grid()
        grid.set_state("p0", "rope", CellState.HAS, because("first"))

        assert not grid.set_state("p0", "rope", CellState.HAS, because("second"))
        assert grid.get("p0", "rope").explanation.text == "first"
        assert len(grid.changes) == 1

    def test_opposite_state_raises_in_strict_mode(self):
        grid, _ = make_grid(strict=True)
        grid.set_state("p0", "rope", CellState.HAS, because())

        with pytest.raises(InconsistentStateError) as exc_info:
            grid.set_state("p0", "rope", CellState.LACKS, because())
        assert exc_info.value.error.code is ErrorCode.CONTRADICTION
        assert grid.state_of("p0", "rope") is CellState.HAS

    def test_opposite_state_is_recorded_in_tolerant_mode(self):
        grid, ledger = make_grid(strict=False)
        grid.set_state("p0", "rope", CellState.HAS, because())

        assert not grid.set_state("p0", "rope", CellState.LACKS, because())
        assert grid.state_of("p0", "rope") is CellState.HAS
        (error,) = ledger.errors
        assert ("origin_event_id", "turn_1") in error.context

    def test_repeated_contradiction_recorded_once(self):
        grid, ledger = make_grid(strict=False)
        grid.set_state("p0", "rope", CellState.HAS, because())
        grid.set_state("p0", "rope", CellState.LACKS, because())
        grid.set_state("p0", "rope", CellState.LACKS, because())
        assert len(ledger.errors) == 1

    def test_unknown_is_not_a_target(self):
        grid, _ = make_grid()
        with pytest.raises(InvalidEventError):
            grid.set_state("p0", "rope", CellState.UNKNOWN, because())

    def test_setter_does_not_cascade(self):
        grid, _ = make_grid()
        grid.set_state("p0", "rope", CellState.HAS, because())
        assert grid.state_of("p1", "rope") is CellState.UNKNOWN

    def test_unknown_ids_raise(self):
        grid, _ = make_grid()
        with pytest.raises(UnknownIdentifierError) as exc_info:
            grid.get("p9", "rope")
        assert exc_info.value.error.code is ErrorCode.UNKNOWN_PLAYER

        with pytest.raises(UnknownIdentifierError) as exc_info:
            grid.get("p0", "banana")
        assert exc_info.value.error.code is ErrorCode.UNKNOWN_CARD

    def test_freeze_round_trips_snapshot(self):
        grid, _ = make_grid()
        grid.set_state("p2", "hall", CellState.LACKS, because())
        snapshot = grid.freeze()

        assert snapshot.state("p2", "hall") is CellState.LACKS
        assert BeliefGrid(snapshot).freeze() == snapshot
        assert snapshot.to_dict()["p2"]["hall"] == "lacks"

    def test_counts(self):
        grid, _ = make_grid()
        grid.set_state("p1", "rope", CellState.HAS, because())
        grid.set_state("p1", "hall", CellState.LACKS, because())
        assert grid.counts_for("p1") == (1, len(CARDS) - 2)


class TestConstraintStore:

    def test_ids_are_positional(self):
        store = ConstraintStore()
        first = store.add_constraint("p1", {"rope", "hall"}, "turn_1")
        second = store.add_constraint("p2", {"rope", "hall"}, "turn_2")
        assert (first.constraint_id, second.constraint_id) == ("constraint_1", "constraint_2")

    def test_single_remaining_candidate_is_forced(self):
        grid, ledger = make_grid()
        store = ConstraintStore(ledger=ledger)
        store.add_constraint("p1", {"rope", "hall", "kitchen"}, "turn_1")
        grid.set_state("p1", "rope", CellState.LACKS, because())
        grid.set_state("p1", "hall", CellState.LACKS, because())

        assert store.tighten(grid)
        assert grid.state_of("p1", "kitchen") is CellState.HAS
        constraint = store.get("constraint_1")
        assert constraint.resolution is ConstraintResolution.FORCED
        assert constraint.candidate_cards == frozenset({"kitchen"})

    def test_narrowing_alone_is_not_progress(self):
        grid, ledger = make_grid()
        store = ConstraintStore(ledger=ledger)
        store.add_constraint("p1", {"rope", "hall", "kitchen"}, "turn_1")
        grid.set_state("p1", "rope", CellState.LACKS, because())

        assert not store.tighten(grid)
        assert store.get("constraint_1").candidate_cards == frozenset({"hall", "kitchen"})
        assert not store.get("constraint_1").resolved

    def test_exhausted_candidates_contradict(self):
        grid, ledger = make_grid(strict=False)
        store = ConstraintStore(ledger=ledger)
        store.add_constraint("p1", {"rope", "hall"}, "turn_1")
        grid.set_state("p1", "rope", CellState.LACKS, because())
        grid.set_state("p1", "hall", CellState.LACKS, because())

        assert store.tighten(grid)
        assert store.get("constraint_1").resolution is ConstraintResolution.CONTRADICTED
        assert len(ledger.errors) == 1
        assert store.unresolved() == ()

    def test_resolution_replaces_entry(self):
        grid, ledger = make_grid()
        store = ConstraintStore(ledger=ledger)
        original = store.add_constraint("p1", {"rope", "hall"}, "turn_1")
        grid.set_state("p1", "rope", CellState.HAS, because())
        store.tighten(grid)

        assert not original.resolved
        assert store.get("constraint_1").resolution is ConstraintResolution.SATISFIED
        assert [c.action for c in store.changes] == ["created", "resolved"]
