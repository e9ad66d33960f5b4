"""
State Machine
=============

Pure function state derivation from the event log.

INVARIANT: reduce(state, event) is a PURE FUNCTION.
The input state is never modified; a new DeductionState is returned.
derive_state(log, seq) is reduce folded over the log, so
same log at same sequence -> identical derived state.

This module DOES NOT store state.
It COMPUTES state from the event log on demand.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple
import hashlib

from ..contracts.base import (
    Player, Triple, Error, ErrorCode, InvalidSetupError, UnknownIdentifierError
)
from ..contracts.catalog import CardUniverse, distribute_hand_sizes, universe_for
from ..contracts.events import (
    GameEvent, GameSetup, Constraint, CellChange, ConstraintChange
)
from ..contracts.temporal import LogSequence, event_id_for
from ..core.constraints import ConstraintStore
from ..core.grid import BeliefGrid, ContradictionLedger, GridSnapshot
from ..core.inference import InferenceConfig, InferenceEngine, Workspace
from ..core.validation import EventValidator

from .event_log import ImmutableEventLog


# =============================================================================
# DERIVED STATE STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class DeductionState:
    """
    Complete derived state at a point in the log.

    This is the OUTPUT of the state machine. Two states compare equal
    exactly when grid, explanations, constraints, negative triples and
    recorded contradictions are identical.
    """
    players: Tuple[Player, ...]
    grid: GridSnapshot
    constraints: Tuple[Constraint, ...] = field(default_factory=tuple)
    negative_triples: Tuple[Triple, ...] = field(default_factory=tuple)

    # Contradictions tolerated in non-strict mode
    contradictions: Tuple[Error, ...] = field(default_factory=tuple)

    at_sequence: LogSequence = LogSequence(0)

    @property
    def state_hash(self) -> str:
        """Deterministic hash for replay verification."""
        return compute_state_hash(self)

    def player(self, player_id: str) -> Player:
        for p in self.players:
            if p.player_id == player_id:
                return p
        raise UnknownIdentifierError(ErrorCode.UNKNOWN_PLAYER, player_id)

    def unresolved_constraints(self) -> Tuple[Constraint, ...]:
        return tuple(c for c in self.constraints if not c.resolved)


def compute_state_hash(state: DeductionState) -> str:
    lines = [f"seq={state.at_sequence.value}"]
    for player_id, card_id, cell in state.grid.items():
        explanation = cell.explanation
        lines.append(
            f"{player_id}|{card_id}|{cell.state.value}|"
            f"{explanation.kind.value if explanation else ''}|"
            f"{explanation.origin_event_id or '' if explanation else ''}|"
            f"{explanation.text if explanation else ''}"
        )
    for c in state.constraints:
        lines.append(
            f"{c.constraint_id}|{c.player_id}|{','.join(sorted(c.candidate_cards))}|"
            f"{c.resolved}|{c.resolution.value if c.resolution else ''}|{c.origin_event_id or ''}"
        )
    for triple in state.negative_triples:
        lines.append("neg|" + ",".join(triple))
    for error in state.contradictions:
        lines.append(f"err|{error.code.name}|{error.message}")
    return hashlib.sha256("\n".join(lines).encode()).hexdigest()[:16]


@dataclass(frozen=True)
class ReduceOutcome:
    """
    Result of applying one event: the new state plus what changed.

    The effects are a diff for callers (UI, audit); the state alone is
    authoritative.
    """
    state: DeductionState
    event_id: str
    cell_changes: Tuple[CellChange, ...] = field(default_factory=tuple)
    constraint_changes: Tuple[ConstraintChange, ...] = field(default_factory=tuple)
    new_contradictions: Tuple[Error, ...] = field(default_factory=tuple)
    passes: int = 0


# =============================================================================
# SETUP
# =============================================================================

def build_players(setup: GameSetup, universe: CardUniverse) -> Tuple[Player, ...]:
    """Players p0..pn-1 in turn order with dealt hand sizes."""
    names = setup.player_names
    if len(names) < 2:
        raise InvalidSetupError("A game needs at least two players")
    if len(set(names)) != len(names):
        raise InvalidSetupError("Player names must be unique")
    if setup.observer_name not in names:
        raise InvalidSetupError(
            f"Observer {setup.observer_name!r} is not one of the players",
            (("observer", setup.observer_name),)
        )

    sizes = distribute_hand_sizes(len(names), universe.dealt_card_count)
    players = tuple(
        Player(
            player_id=f"p{i}",
            display_name=name,
            hand_size=sizes[i],
            is_observer=(name == setup.observer_name)
        )
        for i, name in enumerate(names)
    )

    observer = next(p for p in players if p.is_observer)
    for card_id in setup.observer_cards:
        universe.get(card_id)
    if len(setup.observer_cards) > observer.hand_size:
        raise InvalidSetupError(
            f"Observer holds {len(setup.observer_cards)} cards but the hand size is {observer.hand_size}"
        )
    return players


# =============================================================================
# STATE MACHINE
# =============================================================================

class StateMachine:
    """
    Derives DeductionState from a setup and a sequence of events.

    Holds only immutable configuration: the universe, the players and
    the inference engine. Never holds derived state.
    """

    def __init__(self, setup: GameSetup, config: Optional[InferenceConfig] = None):
        self._setup = setup
        self._universe = universe_for(setup.edition)
        self._players = build_players(setup, self._universe)
        self._engine = InferenceEngine(config)
        self._validator = EventValidator(self._players, self._universe)
        self._initial: Optional[DeductionState] = None

    @property
    def setup(self) -> GameSetup:
        return self._setup

    @property
    def universe(self) -> CardUniverse:
        return self._universe

    @property
    def players(self) -> Tuple[Player, ...]:
        return self._players

    @property
    def observer(self) -> Player:
        return next(p for p in self._players if p.is_observer)

    @property
    def validator(self) -> EventValidator:
        return self._validator

    @property
    def config(self) -> InferenceConfig:
        return self._engine.config

    def _ledger(self, event_id: Optional[str], known: Tuple[Error, ...] = ()) -> ContradictionLedger:
        return ContradictionLedger(
            strict=self._engine.config.strict_contradictions,
            origin_event_id=event_id,
            known=known
        )

    def _workspace(self, state: DeductionState, ledger: ContradictionLedger) -> Workspace:
        return Workspace(
            grid=BeliefGrid(state.grid, ledger),
            constraints=ConstraintStore(state.constraints, ledger),
            players=state.players,
            negative_triples=list(state.negative_triples),
            ledger=ledger
        )

    def _freeze(self, ws: Workspace, at_sequence: LogSequence, contradictions: Tuple[Error, ...]) -> DeductionState:
        return DeductionState(
            players=ws.players,
            grid=ws.grid.freeze(),
            constraints=ws.constraints.freeze(),
            negative_triples=tuple(ws.negative_triples),
            contradictions=contradictions,
            at_sequence=at_sequence
        )

    def initial_state(self) -> DeductionState:
        """All-UNKNOWN grid plus the observer's own hand, propagated."""
        if self._initial is None:
            empty = DeductionState(
                players=self._players,
                grid=GridSnapshot.empty(
                    [p.player_id for p in self._players],
                    self._universe.card_ids
                )
            )
            ledger = self._ledger(None)
            ws = self._workspace(empty, ledger)
            self._engine.seed_hand(ws, self.observer.player_id, self._setup.observer_cards)
            self._engine.run_fixpoint(ws)
            self._initial = self._freeze(ws, LogSequence(0), tuple(ledger.errors))
        return self._initial

    def validate(self, event: GameEvent) -> None:
        self._validator.validate(event)

    def reduce(self, state: DeductionState, event: GameEvent) -> ReduceOutcome:
        """
        Apply one event to a state. PURE: `state` is not modified.

        Raises before producing any new state if the event is invalid,
        contradictory (strict mode) or propagation fails to converge.
        """
        self._validator.validate(event)
        sequence = state.at_sequence.next()
        event_id = event_id_for(sequence)

        ledger = self._ledger(event_id, state.contradictions)
        ws = self._workspace(state, ledger)
        self._engine.apply_event(ws, event, event_id)
        passes = self._engine.run_fixpoint(ws, event_id)

        new_errors = tuple(ledger.errors)
        return ReduceOutcome(
            state=self._freeze(ws, sequence, state.contradictions + new_errors),
            event_id=event_id,
            cell_changes=tuple(ws.grid.changes),
            constraint_changes=tuple(ws.constraints.changes),
            new_contradictions=new_errors,
            passes=passes
        )

    def derive_from_events(self, events: Iterable[GameEvent]) -> DeductionState:
        state = self.initial_state()
        for event in events:
            state = self.reduce(state, event).state
        return state

    def derive_state(
        self,
        log: ImmutableEventLog,
        until_sequence: Optional[LogSequence] = None
    ) -> DeductionState:
        """Fold reduce over the log from the initial state."""
        return self.derive_from_events(entry.event for entry in log.replay(until_seq=until_sequence))
