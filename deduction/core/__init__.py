"""
Core Deduction Engine

RESPONSIBILITY: Belief grid, disjunctive constraints, fixpoint inference
ALLOWED INPUTS: Validated GameEvents
OUTPUTS: Forward-only cell transitions and constraint changes

WHAT THIS LAYER MUST NOT DO:
============================
- Store events or derived state between reductions (temporal layer's job)
- Answer queries (query layer's job)
- Move a settled cell back or to the opposite state
- Estimate probabilities: beliefs are exact three-valued logic
"""

from .grid import BeliefGrid, GridSnapshot, ContradictionLedger
from .constraints import ConstraintStore
from .inference import InferenceEngine, InferenceConfig, Workspace
from .validation import EventValidator

__all__ = [
    'BeliefGrid',
    'GridSnapshot',
    'ContradictionLedger',
    'ConstraintStore',
    'InferenceEngine',
    'InferenceConfig',
    'Workspace',
    'EventValidator',
]
