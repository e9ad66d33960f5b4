"""
Engine Orchestration Module

This module provides the unified interface for one deduction table
while keeping the layers strictly separated.

DESIGN PRINCIPLES:
==================
1. Layers communicate ONLY through contracts
2. The table holds exactly two live values: the event log and the
   state derived from it; every mutation replaces both together
3. All operations are traceable through observability
4. Queries never mutate; what-ifs run on scratch derivations
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .contracts.base import (
    CardId, PlayerId, Player, Category, CellState, Explanation,
    DeductionError, Error, InvalidEventError, InvalidQueryError,
    UndoUnavailableError, raise_for
)
from .contracts.events import (
    GameEvent, GameSetup, Suggestion, AccusationFailure, ManualClaim,
    Constraint, SolutionStatus, AuditLogEntry
)
from .contracts.catalog import CardUniverse
from .contracts.temporal import LogEntry, LogSequence
from .core import GridSnapshot, InferenceConfig
from .temporal import (
    ImmutableEventLog, StateMachine, DeductionState, ReduceOutcome, ReplayEngine
)
from .query import QueryEngine, QueryEngineConfig, SimulationReport
from .observability import ObservabilityEngine, ObservabilityConfig, MetricsCollector
from .domain.serialization import dumps_game, loads_game, game_to_dict


@dataclass
class TableConfig:
    """Unified configuration for a deduction table."""
    inference: InferenceConfig = None
    query: QueryEngineConfig = None
    observability: ObservabilityConfig = None
    edition: str = "classic"

    def __post_init__(self):
        self.inference = self.inference or InferenceConfig()
        self.query = self.query or QueryEngineConfig()
        self.observability = self.observability or ObservabilityConfig()


class DeductionTable:
    """
    One game's deduction table.

    LAYER FLOW:
    ===========
    1. Validation: event ids checked against the universe (all-or-nothing)
    2. State machine: reduce(state, event) -> new immutable state
    3. Event log: the event is appended only after reduce succeeded
    4. Observability: the submission and its effects are recorded
    5. Query: read-only access to the current state

    NO CALL BYPASSES THIS FLOW. Direct cell writes are ManualClaim events.
    """

    def __init__(
        self,
        player_names: Sequence[str],
        observer_name: str,
        observer_cards: Iterable[CardId] = (),
        config: Optional[TableConfig] = None
    ):
        self._config = config or TableConfig()
        self._setup = GameSetup(
            player_names=tuple(player_names),
            observer_name=observer_name,
            observer_cards=frozenset(observer_cards),
            edition=self._config.edition
        )

        self._state_machine = StateMachine(self._setup, self._config.inference)
        self._query = QueryEngine(self._state_machine, self._config.query)
        self._observability = ObservabilityEngine(self._config.observability)

        self._log = ImmutableEventLog()
        self._state = self._state_machine.initial_state()

        self._observability.log_audit(
            action="table_created",
            entity_type="table",
            metadata=(
                ("players", ",".join(p.player_id for p in self._state.players)),
                ("observer", self._state_machine.observer.player_id),
                ("edition", self._setup.edition),
                ("state_hash", self._state.state_hash),
            )
        )
        self._refresh_gauges()

    @classmethod
    def from_setup(
        cls,
        setup: GameSetup,
        events: Iterable[GameEvent] = (),
        config: Optional[TableConfig] = None
    ) -> 'DeductionTable':
        """Build a table for a persisted setup and replay its events."""
        config = replace(config or TableConfig(), edition=setup.edition)
        table = cls(setup.player_names, setup.observer_name, setup.observer_cards, config)
        events = tuple(events)
        if events:
            table.restore_from_log(events)
        return table

    @classmethod
    def loads(cls, text: str, config: Optional[TableConfig] = None) -> 'DeductionTable':
        setup, events = loads_game(text)
        return cls.from_setup(setup, events, config)

    def dumps(self) -> str:
        return dumps_game(self._setup, self._log)

    def to_dict(self) -> Dict:
        return game_to_dict(self._setup, self._log)

    # =========================================================================
    # MUTATING INTERFACE
    # =========================================================================

    def submit_suggestion(
        self,
        asker_id: PlayerId,
        triple: Optional[Sequence[CardId]] = None,
        responder_id: Optional[PlayerId] = None,
        revealed_card: Optional[CardId] = None
    ) -> ReduceOutcome:
        return self.submit(Suggestion(
            asker_id=asker_id,
            triple=tuple(triple) if triple is not None else None,
            responder_id=responder_id,
            revealed_card=revealed_card
        ))

    def submit_accusation_failure(self, accuser_id: PlayerId, triple: Sequence[CardId]) -> ReduceOutcome:
        return self.submit(AccusationFailure(accuser_id=accuser_id, triple=tuple(triple)))

    def submit_manual_claim(
        self,
        player_id: PlayerId,
        cards: Iterable[CardId],
        asserts_possession: bool = True
    ) -> ReduceOutcome:
        return self.submit(ManualClaim(
            player_id=player_id,
            cards=frozenset(cards),
            asserts_possession=asserts_possession
        ))

    def set_cell(
        self,
        player_id: PlayerId,
        card_id: CardId,
        state: Union[CellState, str]
    ) -> ReduceOutcome:
        """
        Grid write as an event: HAS / LACKS become a single-card ManualClaim.

        There is no event for UNKNOWN; use undo_last() instead.
        """
        try:
            state = CellState(state)
        except ValueError as e:
            raise InvalidEventError(
                f"Unknown cell state: {state!r}",
                (("player_id", player_id), ("card_id", card_id))
            ) from e
        if state is CellState.UNKNOWN:
            raise InvalidEventError(
                "A cell cannot be set back to UNKNOWN; undo the event that settled it",
                (("player_id", player_id), ("card_id", card_id))
            )
        return self.submit(ManualClaim(
            player_id=player_id,
            cards=frozenset((card_id,)),
            asserts_possession=state is CellState.HAS
        ))

    def submit(self, event: GameEvent) -> ReduceOutcome:
        """
        Apply one event.

        Nothing changes unless reduce succeeds: a rejected or
        contradictory (strict mode) event leaves log and state as they were.
        """
        try:
            outcome = self._state_machine.reduce(self._state, event)
        except DeductionError as e:
            self._observability.record_rejection(e.error)
            raise

        self._log.append(event)
        self._state = outcome.state

        self._observability.record_submission(
            event_id=outcome.event_id,
            event_kind=event.kind.value,
            cell_changes=outcome.cell_changes,
            constraint_changes=outcome.constraint_changes,
            new_contradictions=outcome.new_contradictions,
            passes=outcome.passes
        )
        self._refresh_gauges()
        return outcome

    def undo_last(self) -> GameEvent:
        """Drop the last event by replaying all but it. Returns the dropped event."""
        if len(self._log) == 0:
            raise UndoUnavailableError("Nothing to undo: the event log is empty")

        dropped = self._log.get_entry(self._log.state.head_sequence).event
        prefix, result = ReplayEngine(self._log, self._state_machine).undo()
        self._adopt(prefix, result.state, result.error, action="undo")
        return dropped

    def restore_from_log(self, events: Iterable[GameEvent]) -> DeductionState:
        """
        Reset to the initial state and replay events through reduce.

        All-or-nothing: if any event fails, the table keeps its current log.
        """
        log = ImmutableEventLog(events)
        result = ReplayEngine(log, self._state_machine).replay_full()
        self._adopt(log, result.state, result.error, action="restore")
        return self._state

    def _adopt(
        self,
        log: ImmutableEventLog,
        state: Optional[DeductionState],
        error: Optional[Error],
        action: str
    ):
        if error is not None:
            self._observability.record_error(error, layer="temporal")
            raise_for(error)
        self._log = log
        self._state = state
        self._observability.record_replay(action, len(log), state.state_hash)
        self._refresh_gauges()

    # =========================================================================
    # READ INTERFACE
    # =========================================================================

    @property
    def state(self) -> DeductionState:
        return self._state

    @property
    def setup(self) -> GameSetup:
        return self._setup

    @property
    def config(self) -> TableConfig:
        return self._config

    @property
    def universe(self) -> CardUniverse:
        return self._state_machine.universe

    def players(self) -> Tuple[Player, ...]:
        return self._state.players

    def grid_snapshot(self) -> GridSnapshot:
        return self._state.grid

    def constraints_snapshot(self, unresolved_only: bool = False) -> Tuple[Constraint, ...]:
        if unresolved_only:
            return self._state.unresolved_constraints()
        return self._state.constraints

    def contradictions(self) -> Tuple[Error, ...]:
        return self._state.contradictions

    def event_log(self) -> Tuple[GameEvent, ...]:
        return self._log.events()

    def log_entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._log.replay())

    def state_at(self, sequence: int) -> DeductionState:
        """Derived state after the first `sequence` events."""
        if not 0 <= sequence <= len(self._log):
            raise InvalidQueryError(
                f"sequence must be between 0 and {len(self._log)}",
                (("sequence", str(sequence)),)
            )
        result = ReplayEngine(self._log, self._state_machine).replay_to(LogSequence(sequence))
        if not result.success:
            raise_for(result.error)
        return result.state

    def verify_integrity(self) -> Tuple[bool, Optional[str]]:
        """Hash chain intact and replay reproduces the live state."""
        ok, error = self._log.verify_integrity()
        if not ok:
            return (False, error.message)
        deterministic, difference = ReplayEngine(self._log, self._state_machine).verify_determinism()
        if not deterministic:
            return (False, difference)
        if self._state_machine.derive_state(self._log) != self._state:
            return (False, "Live state differs from replay of the log")
        return (True, None)

    # =========================================================================
    # QUERY INTERFACE
    # =========================================================================

    def solution_status(self) -> Dict[CardId, SolutionStatus]:
        return self._run_query(self._query.solution_status)

    def solution_verdict(self) -> Dict[Category, Optional[CardId]]:
        return self._run_query(self._query.solution_verdict)

    def explain(self, player_id: PlayerId, card_id: CardId) -> Optional[Explanation]:
        return self._run_query(self._query.explain, player_id, card_id)

    def explain_cell(self, player_id: PlayerId, card_id: CardId) -> Dict:
        return self._run_query(self._query.explain_cell, player_id, card_id)

    def board_state(
        self,
        players: Optional[Sequence[PlayerId]] = None,
        cards: Optional[Sequence[CardId]] = None
    ) -> Dict[str, Dict[str, str]]:
        return self._run_query(self._query.board_state, players, cards)

    def turn_history(
        self,
        limit: Optional[int] = None,
        involved_player: Optional[str] = None
    ) -> List[str]:
        return self._run_query(self._query.turn_history, self._log, limit, involved_player)

    def describe_event(self, event: GameEvent) -> str:
        return self._query.describe_event(self._state, event)

    def simulate_suggestion(
        self,
        asker_id: PlayerId,
        triple: Sequence[CardId],
        responder_id: Optional[PlayerId] = None,
        revealed_card: Optional[CardId] = None
    ) -> SimulationReport:
        return self._run_query(
            self._query.simulate_suggestion, self._log, asker_id, triple, responder_id, revealed_card
        )

    # =========================================================================
    # OBSERVABILITY INTERFACE
    # =========================================================================

    def get_audit_log(self, layers: Optional[List[str]] = None) -> List[AuditLogEntry]:
        """Get unified audit log."""
        self._sync_audit_logs()
        return self._observability.get_unified_log(layers)

    def get_audit_report(self) -> Dict:
        self._sync_audit_logs()
        return self._observability.generate_audit_report()

    def get_metrics(self) -> Optional[MetricsCollector]:
        return self._observability.get_metrics()

    def _run_query(self, query, *args):
        try:
            return query(self._state, *args)
        finally:
            self._sync_audit_logs()

    def _sync_audit_logs(self):
        """Move query-layer entries into observability, where max_entries applies."""
        for entry in self._query.drain_audit_log():
            self._observability.collect_audit(entry)

    def _refresh_gauges(self):
        self._observability.update_gauges(
            unknown_cells=self._state.grid.count(CellState.UNKNOWN),
            unresolved_constraints=len(self._state.unresolved_constraints())
        )
