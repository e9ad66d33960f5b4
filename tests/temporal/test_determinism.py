"""
Temporal Layer Determinism Tests
=================================

Tests verifying temporal immutability invariants.

INVARIANTS TESTED:
1. Same log -> identical state hash
2. Replay of every prefix equals the incremental state at that point
3. Undo and load are recomputations (not mutation)
4. What-if reductions never touch the live log
"""

import pytest

from deduction import DeductionTable
from deduction.contracts.base import (
    CellState, ErrorCode, InconsistentStateError, InvalidQueryError,
    UndoUnavailableError
)
from deduction.contracts.events import GameSetup, ManualClaim, Suggestion, AccusationFailure
from deduction.contracts.temporal import LogEntry, LogSequence
from deduction.temporal import ImmutableEventLog, ReplayEngine, StateMachine


SETUP = GameSetup(player_names=("Ann", "Bob", "Cat"), observer_name="Ann",
                  observer_cards=frozenset({"rope", "hall"}))

EVENTS = (
    Suggestion("p0", ("col_mustard", "dagger", "kitchen"), responder_id="p2"),
    Suggestion("p1", ("prof_plum", "wrench", "lounge"), responder_id="p2", revealed_card=None),
    ManualClaim("p1", frozenset({"prof_plum"}), asserts_possession=False),
    AccusationFailure("p2", ("miss_scarlett", "candlestick", "study")),
    Suggestion("p0", ("col_mustard", "dagger", "library")),
)


def make_log(events=EVENTS):
    return ImmutableEventLog(events)


class TestEventLogImmutability:
    """Test append-only log semantics."""

    def test_append_only(self):
        """Log only supports append, not update or delete."""
        log = ImmutableEventLog()
        assert not hasattr(log, "update")
        assert not hasattr(log, "delete")

        entry = log.append(EVENTS[0])
        assert entry.sequence == LogSequence(1)
        assert entry.event_id == "turn_1"
        assert len(log) == 1

    def test_sequence_is_monotonic_and_chained(self):
        log = make_log()
        entries = list(log.replay())

        assert [e.sequence.value for e in entries] == [1, 2, 3, 4, 5]
        assert entries[0].previous_hash == ""
        for prev, entry in zip(entries, entries[1:]):
            assert entry.previous_hash == prev.entry_hash
        assert log.state.head_hash == entries[-1].entry_hash

    def test_same_events_same_chain(self):
        assert make_log().state.head_hash == make_log().state.head_hash

    def test_next_entry_does_not_append(self):
        log = make_log(EVENTS[:2])
        preview = log.next_entry(EVENTS[2])

        assert len(log) == 2
        assert log.append(EVENTS[2]) == preview

    def test_integrity_passes_for_untouched_log(self):
        ok, error = make_log().verify_integrity()
        assert ok
        assert error is None

    def test_tampered_entry_rejected_on_load(self):
        source = list(make_log().replay())
        forged = LogEntry(
            sequence=source[1].sequence,
            event=EVENTS[2],
            previous_hash=source[1].previous_hash,
            entry_hash=source[1].entry_hash
        )
        log = ImmutableEventLog()
        log.load_verified_entry(source[0])

        with pytest.raises(ValueError, match="Hash mismatch"):
            log.load_verified_entry(forged)
        assert len(log) == 1

    def test_out_of_order_load_rejected(self):
        source = list(make_log().replay())
        with pytest.raises(ValueError, match="Invalid sequence"):
            ImmutableEventLog().load_verified_entry(source[1])

    def test_truncated_is_a_new_log(self):
        log = make_log()
        prefix = log.truncated(LogSequence(2))

        assert len(prefix) == 2
        assert len(log) == 5
        assert prefix.events() == EVENTS[:2]

    def test_lookup_by_event_id(self):
        log = make_log()
        assert log.get_entry_by_event_id("turn_3").event == EVENTS[2]
        assert log.get_entry_by_event_id("turn_9") is None
        assert log.get_entry_by_event_id("constraint_1") is None


class TestStateDerivation:
    """Test that state is derived, never stored."""

    def test_reduce_is_pure(self):
        machine = StateMachine(SETUP)
        initial = machine.initial_state()
        snapshot_hash = initial.state_hash

        outcome = machine.reduce(initial, EVENTS[0])

        assert initial.state_hash == snapshot_hash
        assert outcome.state is not initial
        assert outcome.state.at_sequence == LogSequence(1)

    def test_same_log_same_hash(self):
        first = StateMachine(SETUP).derive_state(make_log())
        second = StateMachine(SETUP).derive_state(make_log())

        assert first == second
        assert first.state_hash == second.state_hash

    def test_every_prefix_replays_to_incremental_state(self):
        machine = StateMachine(SETUP)
        log = make_log()
        state = machine.initial_state()
        incremental = [state]
        for event in EVENTS:
            state = machine.reduce(state, event).state
            incremental.append(state)

        engine = ReplayEngine(log, machine)
        for k, expected in enumerate(incremental):
            assert engine.get_state_at(LogSequence(k)) == expected

    def test_verify_determinism(self):
        ok, difference = ReplayEngine(make_log(), StateMachine(SETUP)).verify_determinism()
        assert ok
        assert difference is None

    def test_replay_reports_changed_cells(self):
        engine = ReplayEngine(make_log(), StateMachine(SETUP))
        engine.replay_to(LogSequence(2))
        result = engine.replay_to(LogSequence(3))

        assert result.success
        assert result.changed_cells == (("p1", "prof_plum"),)


class TestUndo:

    def test_undo_equals_replay_of_prefix(self):
        machine = StateMachine(SETUP)
        prefix_log, result = ReplayEngine(make_log(), machine).undo()

        assert result.success
        assert len(prefix_log) == 4
        assert result.state == machine.derive_from_events(EVENTS[:4])

    def test_undo_on_empty_log(self):
        log, result = ReplayEngine(ImmutableEventLog(), StateMachine(SETUP)).undo()
        assert not result.success
        assert result.error.code is ErrorCode.EMPTY_LOG
        assert len(log) == 0

    def test_table_undo_restores_previous_state(self):
        table = DeductionTable.from_setup(SETUP, EVENTS[:3])
        before = table.state
        table.submit(EVENTS[3])

        dropped = table.undo_last()

        assert dropped == EVENTS[3]
        assert table.state == before
        assert table.event_log() == EVENTS[:3]

    def test_table_undo_on_empty_log_raises(self):
        table = DeductionTable.from_setup(SETUP)
        with pytest.raises(UndoUnavailableError) as exc_info:
            table.undo_last()
        assert exc_info.value.error.code is ErrorCode.EMPTY_LOG


class TestRestore:

    def test_restore_matches_incremental_submission(self):
        incremental = DeductionTable.from_setup(SETUP)
        for event in EVENTS:
            incremental.submit(event)

        restored = DeductionTable.from_setup(SETUP)
        restored.restore_from_log(EVENTS)

        assert restored.state == incremental.state
        assert restored.dumps() == incremental.dumps()

    def test_restore_is_all_or_nothing(self):
        table = DeductionTable.from_setup(SETUP, EVENTS[:2])
        before_state = table.state
        before_log = table.event_log()

        # The observer holds rope, so nobody else can.
        bad = EVENTS + (ManualClaim("p1", frozenset({"rope"})),)
        with pytest.raises(InconsistentStateError):
            table.restore_from_log(bad)

        assert table.state == before_state
        assert table.event_log() == before_log


class TestPointInTime:

    def test_state_at_zero_is_initial(self):
        table = DeductionTable.from_setup(SETUP, EVENTS)
        initial = table.state_at(0)

        assert initial.at_sequence == LogSequence(0)
        assert initial.grid.state("p0", "rope") is CellState.HAS
        assert table.state_at(len(EVENTS)) == table.state

    def test_state_at_out_of_range(self):
        table = DeductionTable.from_setup(SETUP, EVENTS)
        with pytest.raises(InvalidQueryError):
            table.state_at(len(EVENTS) + 1)
        with pytest.raises(InvalidQueryError):
            table.state_at(-1)

    def test_verify_integrity(self):
        ok, message = DeductionTable.from_setup(SETUP, EVENTS).verify_integrity()
        assert ok
        assert message is None


class TestWhatIf:

    def test_what_if_leaves_live_log_alone(self):
        machine = StateMachine(SETUP)
        log = make_log()
        head = log.state
        live = machine.derive_state(log)

        result = ReplayEngine(log, machine).what_if(ManualClaim("p2", frozenset({"ballroom"})))

        assert result.success
        assert result.outcome.state.grid.state("p2", "ballroom") is CellState.HAS
        assert log.state == head
        assert machine.derive_state(log) == live

    def test_contradictory_what_if_reports_error(self):
        result = ReplayEngine(make_log(), StateMachine(SETUP)).what_if(
            ManualClaim("p1", frozenset({"hall"}))
        )
        assert not result.success
        assert result.error.code is ErrorCode.CONTRADICTION
        assert result.settled_cells == 0
