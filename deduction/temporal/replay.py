"""
Replay Engine
=============

Recomputation for undo, load and what-if queries.

INVARIANT: a log prefix always folds to the same state.

REPLAY USES:
1. Undo      - derive from all-but-last into a NEW log
2. Load      - derive from an externally stored log
3. What-if   - reduce a hypothetical event on a scratch copy;
               the live log and state are never touched
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

from ..contracts.base import DeductionError, Error, ErrorCode
from ..contracts.events import GameEvent
from ..contracts.temporal import LogSequence

from .event_log import ImmutableEventLog
from .state_machine import StateMachine, DeductionState, ReduceOutcome


@dataclass(frozen=True)
class ReplayResult:
    """
    State derived by folding a log prefix.

    changed_cells lists cells that differ from the previous fold made
    by the same engine; it is empty on the first fold.
    """
    success: bool
    state: Optional[DeductionState] = None
    error: Optional[Error] = None

    # Cells whose state differs from the previous derivation
    changed_cells: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class WhatIfResult:
    """Outcome of a hypothetical event on a scratch instance."""
    success: bool
    outcome: Optional[ReduceOutcome] = None
    error: Optional[Error] = None

    @property
    def settled_cells(self) -> int:
        return len(self.outcome.cell_changes) if self.outcome else 0


class ReplayEngine:
    """
    Re-derives states from the log on demand.

    GUARANTEES:
    ===========
    1. Folding the same prefix twice yields equal states
    2. Undo and load are full recomputations, never patches
    3. Scratch derivations never alias the live log or state
    """

    def __init__(self, log: ImmutableEventLog, state_machine: StateMachine):
        self._log = log
        self._state_machine = state_machine

        # last fold, diffed by the next replay_to
        self._current_state: Optional[DeductionState] = None

    @property
    def log(self) -> ImmutableEventLog:
        return self._log

    def replay_to(self, sequence: LogSequence) -> ReplayResult:
        """Fold the log up to and including the given sequence."""
        try:
            state = self._state_machine.derive_state(
                log=self._log,
                until_sequence=sequence
            )
        except DeductionError as e:
            return ReplayResult(success=False, error=e.error.with_context("sequence", str(sequence.value)))

        changes = self._detect_changes(state)
        self._current_state = state
        return ReplayResult(success=True, state=state, changed_cells=changes)

    def replay_full(self) -> ReplayResult:
        """Fold every event in the log."""
        return self.replay_to(self._log.state.head_sequence)

    def get_state_at(self, sequence: LogSequence) -> Optional[DeductionState]:
        """State as of the given turn, or None if folding fails."""
        result = self.replay_to(sequence)
        if result.success:
            return result.state
        return None

    def undo(self) -> Tuple[ImmutableEventLog, ReplayResult]:
        """
        Drop the last event by deriving from a NEW prefix log.

        The current log is left as it was; the caller adopts the new one.
        """
        head = self._log.state.head_sequence
        if head.value == 0:
            return self._log, ReplayResult(
                success=False,
                error=Error(code=ErrorCode.EMPTY_LOG, message="Nothing to undo")
            )
        prefix = self._log.truncated(head.previous())
        engine = ReplayEngine(prefix, self._state_machine)
        engine._current_state = self._current_state
        return prefix, engine.replay_full()

    def what_if(self, event: GameEvent, base: Optional[DeductionState] = None) -> WhatIfResult:
        """
        Reduce a hypothetical event against a scratch derivation.

        States are immutable values, so the scratch copy is the derived
        state itself; nothing the hypothetical does can reach the live log.
        """
        try:
            state = base if base is not None else self._state_machine.derive_state(self._log)
            outcome = self._state_machine.reduce(state, event)
        except DeductionError as e:
            return WhatIfResult(success=False, error=e.error)
        return WhatIfResult(success=True, outcome=outcome)

    def verify_determinism(self) -> Tuple[bool, Optional[str]]:
        """
        Fold the log twice, once through a rebuilt copy, and compare.

        Returns (True, None) or (False, what differed).
        """
        state1 = self._state_machine.derive_state(self._log)
        state2 = self._state_machine.derive_state(ImmutableEventLog(self._log.events()))

        if state1.state_hash != state2.state_hash:
            return (False, f"Hash mismatch: {state1.state_hash} != {state2.state_hash}")

        if state1 != state2:
            return (False, "States differ despite matching hashes")

        return (True, None)

    def _detect_changes(self, new_state: DeductionState) -> Tuple[Tuple[str, str], ...]:
        """Cells whose state differs from the previous derivation."""
        if self._current_state is None:
            return ()
        old_grid = self._current_state.grid
        return tuple(
            (player_id, card_id)
            for player_id, card_id, cell in new_state.grid.items()
            if old_grid.state(player_id, card_id) is not cell.state
        )
