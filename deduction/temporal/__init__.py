"""
Temporal Immutability Layer
===========================

Event-sourced state management for the deduction engine.

INVARIANTS:
- All state is derived from the append-only event log
- No mutation of stored events
- Same log -> same derived state (deterministic)
- Undo and load trigger recomputation, not mutation

Modules:
- event_log: Append-only event storage
- state_machine: Pure function state derivation
- replay: Undo, load and what-if recomputation
"""

from .event_log import ImmutableEventLog, LogState
from ..contracts.temporal import LogEntry, LogSequence
from .state_machine import StateMachine, DeductionState, ReduceOutcome
from .replay import ReplayEngine, ReplayResult, WhatIfResult

__all__ = [
    'ImmutableEventLog',
    'LogState',
    'LogEntry',
    'LogSequence',
    'StateMachine',
    'DeductionState',
    'ReduceOutcome',
    'ReplayEngine',
    'ReplayResult',
    'WhatIfResult',
]
