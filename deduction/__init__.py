"""
Clue Deduction Engine

This package turns the public record of a Clue-style game into the
tightest sound belief grid over "does player P hold card C", a
per-category solution verdict, and an explanation for every settled
cell. Each layer communicates only through explicit contracts, never
through shared mutable state.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Responsibility: Immutable ids, cards, players, cells, events, errors
   - Outputs: Frozen dataclasses shared by every layer
   - MUST NOT: Hold behavior beyond validation

2. CORE DEDUCTION ENGINE (core/)
   - Responsibility: Belief grid, disjunctive constraints, fixpoint rules
   - Allowed inputs: Validated game events
   - Outputs: Forward-only cell transitions with provenance
   - MUST NOT: Store events, answer queries, reverse a settled cell

3. TEMPORAL LAYER (temporal/)
   - Responsibility: Append-only event log, pure reduce, replay and undo
   - Allowed inputs: Game events
   - Outputs: DeductionState (immutable), derived on demand
   - MUST NOT: Edit stored events

4. QUERY INTERFACES (query/)
   - Responsibility: Solution verdicts, explanations, tool queries, what-ifs
   - Allowed inputs: Immutable states and the event log
   - MUST NOT: Mutate state or the live log

5. OBSERVABILITY & AUDIT LAYER (observability/)
   - Responsibility: Audit trail, counters, effect lineage
   - MUST NOT: Modify system behavior or contribute to state equality

6. DOMAIN (domain/)
   - Responsibility: Persisted game shape (setup + tagged event records)

CONSTRAINTS ENFORCED:
=====================
- Immutability-first: All derived state is frozen
- Append-only: Corrections are new events, never edits
- Deterministic: Same log always produces the same state
- Explicit errors: Contradictions raise (strict) or are recorded (tolerant)
- Exact logic only: No probabilities, no movement, no turn-order enforcement
"""

from .engine import DeductionTable, TableConfig

__all__ = ['DeductionTable', 'TableConfig']
