"""
Integration Tests Package

End-to-end tests through the DeductionTable facade.

TEST AXIOMS:
=============
1. Determinism: same setup + events = identical state and hashes
2. All-or-nothing: a rejected event leaves log and state untouched
3. Explicit failure: no silent fallbacks
"""
