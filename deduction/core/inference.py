"""
Inference Engine
================

Two stages per event:

1. DIRECT CONSEQUENCES - event-specific, applied once
2. FIXPOINT            - rules A-D repeated until a full pass changes nothing

The engine holds no game state. It operates on a Workspace (mutable
working copies of grid and constraints) built by the state machine
and frozen again afterwards.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from ..contracts.base import (
    CardId, Player, PlayerId, Triple, CellState, Explanation, ExplanationKind,
    FixpointNonConvergenceError
)
from ..contracts.events import (
    GameEvent, Suggestion, AccusationFailure, ManualClaim
)
from .constraints import ConstraintStore
from .grid import BeliefGrid, ContradictionLedger
from .rules import RULES, RuleContext


@dataclass
class InferenceConfig:
    """Configuration for the inference engine."""
    strict_contradictions: bool = True
    # Maximum number of productive passes. None derives the provable bound
    # players x cards + constraints from the game size.
    iteration_bound: Optional[int] = None


@dataclass
class Workspace:
    """Mutable state for one reduction. Never shared between reductions."""
    grid: BeliefGrid
    constraints: ConstraintStore
    players: Tuple[Player, ...]
    negative_triples: List[Triple] = field(default_factory=list)
    ledger: ContradictionLedger = field(default_factory=ContradictionLedger)


def _fmt(cards: Iterable[CardId]) -> str:
    return ", ".join(cards)


class InferenceEngine:
    """
    Stateless deduction engine.

    GUARANTEES:
    ===========
    1. Only forward lattice transitions
    2. Every transition carries an Explanation
    3. Fixpoint is reached or FixpointNonConvergenceError is raised
    """

    def __init__(self, config: Optional[InferenceConfig] = None):
        self._config = config or InferenceConfig()

    @property
    def config(self) -> InferenceConfig:
        return self._config

    # =========================================================================
    # DIRECT CONSEQUENCES
    # =========================================================================

    def seed_hand(self, ws: Workspace, player_id: PlayerId, cards: Iterable[CardId]) -> None:
        """Observer's own cards: initial facts, not inferences."""
        for card_id in sorted(cards):
            ws.grid.set_state(
                player_id, card_id, CellState.HAS,
                Explanation(
                    kind=ExplanationKind.INITIAL_HAND,
                    text=f"{card_id} is in {player_id}'s own hand"
                )
            )

    def apply_event(self, ws: Workspace, event: GameEvent, event_id: str) -> None:
        if isinstance(event, Suggestion):
            self._apply_suggestion(ws, event, event_id)
        elif isinstance(event, AccusationFailure):
            ws.negative_triples.append(event.triple)
        elif isinstance(event, ManualClaim):
            self._apply_manual_claim(ws, event, event_id)

    def _players_between(self, ws: Workspace, asker_id: PlayerId, responder_id: PlayerId) -> List[PlayerId]:
        """Players strictly after the asker and before the responder, wrapping."""
        order = [p.player_id for p in ws.players]
        idx = (order.index(asker_id) + 1) % len(order)
        stop = order.index(responder_id)
        between = []
        while idx != stop:
            between.append(order[idx])
            idx = (idx + 1) % len(order)
        return between

    def _apply_suggestion(self, ws: Workspace, event: Suggestion, event_id: str) -> None:
        if event.triple is None:
            return
        triple_text = _fmt(event.triple)

        if event.responder_id is None:
            for player in ws.players:
                if player.player_id == event.asker_id:
                    continue
                for card_id in event.triple:
                    ws.grid.set_state(
                        player.player_id, card_id, CellState.LACKS,
                        Explanation(
                            kind=ExplanationKind.NO_RESPONSE,
                            text=f"Nobody could answer {event.asker_id}'s suggestion [{triple_text}]",
                            origin_event_id=event_id
                        )
                    )
            return

        for player_id in self._players_between(ws, event.asker_id, event.responder_id):
            for card_id in event.triple:
                ws.grid.set_state(
                    player_id, card_id, CellState.LACKS,
                    Explanation(
                        kind=ExplanationKind.SUGGESTION_PASS,
                        text=f"{player_id} passed on {event.asker_id}'s suggestion [{triple_text}]",
                        origin_event_id=event_id
                    )
                )

        if event.revealed_card is not None:
            ws.grid.set_state(
                event.responder_id, event.revealed_card, CellState.HAS,
                Explanation(
                    kind=ExplanationKind.CARD_SHOWN,
                    text=f"{event.responder_id} showed {event.revealed_card} "
                         f"in answer to {event.asker_id}'s suggestion",
                    origin_event_id=event_id
                )
            )
        else:
            ws.constraints.add_constraint(event.responder_id, event.triple, event_id)

    def _apply_manual_claim(self, ws: Workspace, event: ManualClaim, event_id: str) -> None:
        cards = sorted(event.cards)
        if not event.asserts_possession:
            for card_id in cards:
                ws.grid.set_state(
                    event.player_id, card_id, CellState.LACKS,
                    Explanation(
                        kind=ExplanationKind.MANUAL_CLAIM,
                        text=f"Claimed: {event.player_id} holds none of [{_fmt(cards)}]",
                        origin_event_id=event_id
                    )
                )
        elif len(cards) == 1:
            ws.grid.set_state(
                event.player_id, cards[0], CellState.HAS,
                Explanation(
                    kind=ExplanationKind.MANUAL_CLAIM,
                    text=f"Claimed: {event.player_id} holds {cards[0]}",
                    origin_event_id=event_id
                )
            )
        else:
            ws.constraints.add_constraint(event.player_id, cards, event_id)

    # =========================================================================
    # FIXPOINT
    # =========================================================================

    def convergence_bound(self, ws: Workspace) -> int:
        if self._config.iteration_bound is not None:
            return self._config.iteration_bound
        # Each productive pass settles a cell or resolves a constraint.
        return len(ws.grid.player_ids) * len(ws.grid.card_ids) + len(ws.constraints)

    def run_fixpoint(self, ws: Workspace, origin_event_id: Optional[str] = None) -> int:
        """
        Apply all rules until a full pass makes no progress.

        Returns the number of passes, including the final quiescent one.
        """
        ctx = RuleContext(
            grid=ws.grid,
            constraints=ws.constraints,
            players=ws.players,
            negative_triples=tuple(ws.negative_triples),
            ledger=ws.ledger,
            origin_event_id=origin_event_id
        )
        bound = self.convergence_bound(ws)
        passes = 0
        while True:
            passes += 1
            progressed = False
            for rule in RULES:
                progressed = rule(ctx) or progressed
            if not progressed:
                return passes
            if passes > bound:
                raise FixpointNonConvergenceError(
                    f"Propagation still changing after {passes} passes (bound {bound})",
                    (("bound", str(bound)),)
                    + ((("origin_event_id", origin_event_id),) if origin_event_id else ())
                )
