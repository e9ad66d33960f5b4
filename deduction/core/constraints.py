"""
Constraint Store
================

Disjunctive clauses "player holds at least one of {cards}".

Constraints live in an arena keyed by a stable id. Narrowing and
resolution REPLACE the entry; nothing outside the store ever holds
a reference that could be invalidated mid-propagation.

Evaluation order across constraints does not affect the fixpoint.
"""

from __future__ import annotations
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from ..contracts.base import CardId, PlayerId, CellState, Explanation, ExplanationKind
from ..contracts.events import Constraint, ConstraintChange, ConstraintResolution
from .grid import BeliefGrid, ContradictionLedger


def _fmt(cards: Iterable[CardId]) -> str:
    return ", ".join(sorted(cards))


class ConstraintStore:
    """Mutable working copy of the constraint arena for one reduction."""

    def __init__(
        self,
        constraints: Sequence[Constraint] = (),
        ledger: Optional[ContradictionLedger] = None
    ):
        self._arena: Dict[str, Constraint] = {c.constraint_id: c for c in constraints}
        self._ledger = ledger or ContradictionLedger()
        self.changes: List[ConstraintChange] = []

    def __len__(self) -> int:
        return len(self._arena)

    def get(self, constraint_id: str) -> Constraint:
        return self._arena[constraint_id]

    def unresolved(self) -> Tuple[Constraint, ...]:
        return tuple(c for c in self._arena.values() if not c.resolved)

    def add_constraint(
        self,
        player_id: PlayerId,
        candidate_cards: Iterable[CardId],
        origin_event_id: Optional[str]
    ) -> Constraint:
        """Record a new clause. Ids are positional, so replay reproduces them."""
        constraint = Constraint(
            constraint_id=f"constraint_{len(self._arena) + 1}",
            player_id=player_id,
            candidate_cards=frozenset(candidate_cards),
            origin_event_id=origin_event_id
        )
        self._arena[constraint.constraint_id] = constraint
        self.changes.append(ConstraintChange(
            constraint_id=constraint.constraint_id,
            player_id=player_id,
            action="created"
        ))
        return constraint

    def tighten(self, grid: BeliefGrid) -> bool:
        """
        Re-evaluate every unresolved constraint against the grid.

        Returns True if any cell was forced or any constraint resolved.
        Narrowing alone is not progress: it is recomputed every pass.
        """
        progressed = False
        for constraint in self.unresolved():
            states = {card: grid.state_of(constraint.player_id, card)
                      for card in constraint.candidate_cards}
            remaining: FrozenSet[CardId] = frozenset(
                card for card, state in states.items() if state is not CellState.LACKS
            )

            if any(state is CellState.HAS for state in states.values()):
                self._replace(constraint.narrowed(remaining).resolve(ConstraintResolution.SATISFIED))
                progressed = True
            elif not remaining:
                self._replace(constraint.narrowed(remaining).resolve(ConstraintResolution.CONTRADICTED))
                progressed = True
                self._ledger.report(
                    f"{constraint.player_id} must hold one of [{_fmt(constraint.candidate_cards)}] "
                    f"({constraint.constraint_id}) but lacks all of them",
                    (("constraint_id", constraint.constraint_id),
                     ("player_id", constraint.player_id))
                )
            elif len(remaining) == 1:
                (forced,) = remaining
                grid.set_state(
                    constraint.player_id,
                    forced,
                    CellState.HAS,
                    Explanation(
                        kind=ExplanationKind.CONSTRAINT_FORCED,
                        text=(
                            f"{constraint.player_id} must hold one of [{_fmt(constraint.candidate_cards)}]; "
                            f"{forced} is the only candidate left"
                        ),
                        origin_event_id=constraint.origin_event_id
                    )
                )
                self._replace(constraint.narrowed(remaining).resolve(ConstraintResolution.FORCED))
                progressed = True
            elif remaining != constraint.candidate_cards:
                self._arena[constraint.constraint_id] = constraint.narrowed(remaining)
        return progressed

    def _replace(self, constraint: Constraint) -> None:
        self._arena[constraint.constraint_id] = constraint
        self.changes.append(ConstraintChange(
            constraint_id=constraint.constraint_id,
            player_id=constraint.player_id,
            action="resolved",
            resolution=constraint.resolution
        ))

    def freeze(self) -> Tuple[Constraint, ...]:
        return tuple(self._arena.values())
