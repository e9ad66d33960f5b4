"""
Contracts Module

This module defines the explicit interfaces and data transfer objects
that form the contracts between layers. All inter-layer communication
MUST use these contracts. No layer may import implementation details
from another layer.

DESIGN PRINCIPLES:
==================
1. All contract types are immutable (frozen dataclasses)
2. All contracts include explicit error states
3. Settled cells always carry provenance, unknown cells never do
4. Hash-based identity for log integrity verification
"""
