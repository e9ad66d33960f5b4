"""
Deduction Rules
===============

The four rule families of the fixpoint loop. Each rule reads the
working grid, writes only forward transitions through set_state,
and returns True when it made progress.

Rules commute: any interleaving reaches the same fixpoint.

A - constraint tightening   (ConstraintStore.tighten)
B - cross-exclusion         (a card has at most one holder)
C - hand-size counting      (full hands and hands with no room to spare)
D - solution deduction      (all-LACKS cards, failed accusations)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Optional, Sequence, Set, Tuple

from ..contracts.base import (
    CardId, Player, Triple, CellState, Explanation, ExplanationKind
)
from .constraints import ConstraintStore
from .grid import BeliefGrid, ContradictionLedger


@dataclass
class RuleContext:
    """Everything a rule may read or write during one reduction."""
    grid: BeliefGrid
    constraints: ConstraintStore
    players: Tuple[Player, ...]
    negative_triples: Tuple[Triple, ...]
    ledger: ContradictionLedger
    origin_event_id: Optional[str] = None

    def explain(self, kind: ExplanationKind, text: str) -> Explanation:
        return Explanation(kind=kind, text=text, origin_event_id=self.origin_event_id)


# =============================================================================
# SHARED SOLUTION LOGIC (also used by the query layer)
# =============================================================================

def solution_cards(card_ids: Iterable[CardId], all_lack: Callable[[CardId], bool]) -> FrozenSet[CardId]:
    """Cards no player can hold: they must be in the solution."""
    return frozenset(c for c in card_ids if all_lack(c))


def excluded_by_accusations(
    negative_triples: Sequence[Triple],
    in_solution: FrozenSet[CardId]
) -> Tuple[Tuple[CardId, Triple], ...]:
    """
    Cards proven not in the solution by failed accusations.

    If two cards of a failed triple are confirmed solution cards,
    the third cannot be. Returns (card, triple) pairs in log order.
    """
    excluded = []
    seen: Set[CardId] = set()
    for triple in negative_triples:
        confirmed = [c for c in triple if c in in_solution]
        if len(confirmed) != 2:
            continue
        (third,) = [c for c in triple if c not in in_solution]
        if third not in seen:
            seen.add(third)
            excluded.append((third, triple))
    return tuple(excluded)


# =============================================================================
# RULES
# =============================================================================

def rule_constraint_tightening(ctx: RuleContext) -> bool:
    """Rule A."""
    return ctx.constraints.tighten(ctx.grid)


def rule_cross_exclusion(ctx: RuleContext) -> bool:
    """Rule B: the single holder of a card excludes everyone else."""
    progressed = False
    for card_id in ctx.grid.card_ids:
        owners = ctx.grid.owners_of(card_id)
        if not owners:
            continue
        if len(owners) > 1:
            ctx.ledger.report(
                f"{card_id} is held by more than one player: {', '.join(owners)}",
                (("card_id", card_id),)
            )
            continue
        (owner,) = owners
        for player_id in ctx.grid.player_ids:
            if player_id == owner:
                continue
            if ctx.grid.state_of(player_id, card_id) is CellState.UNKNOWN:
                progressed |= ctx.grid.set_state(
                    player_id, card_id, CellState.LACKS,
                    ctx.explain(ExplanationKind.CROSS_EXCLUSION, f"{owner} holds {card_id}")
                )
    return progressed


def rule_hand_size(ctx: RuleContext) -> bool:
    """Rule C: hand full -> rest LACKS; no room to spare -> rest HAS."""
    progressed = False
    for player in ctx.players:
        has, unknown = ctx.grid.counts_for(player.player_id)
        if has > player.hand_size:
            ctx.ledger.report(
                f"{player.player_id} holds {has} cards but the hand size is {player.hand_size}",
                (("player_id", player.player_id),)
            )
            continue
        if has + unknown < player.hand_size:
            ctx.ledger.report(
                f"{player.player_id} can hold at most {has + unknown} cards "
                f"but the hand size is {player.hand_size}",
                (("player_id", player.player_id),)
            )
            continue
        if unknown == 0:
            continue

        if has == player.hand_size:
            new_state = CellState.LACKS
            explanation = ctx.explain(
                ExplanationKind.HAND_FULL,
                f"{player.player_id}'s hand is full ({has}/{player.hand_size} cards known)"
            )
        elif has + unknown == player.hand_size:
            new_state = CellState.HAS
            explanation = ctx.explain(
                ExplanationKind.HAND_EXHAUSTED,
                f"{player.player_id} needs {player.hand_size - has} more cards "
                f"and only {unknown} remain possible"
            )
        else:
            continue

        for card_id, state in ctx.grid.row(player.player_id):
            if state is CellState.UNKNOWN:
                progressed |= ctx.grid.set_state(player.player_id, card_id, new_state, explanation)
    return progressed


def rule_solution_deduction(ctx: RuleContext) -> bool:
    """
    Rule D.

    (i)   every player LACKS a card -> it is in the solution
    (ii)  failed triple with two solution cards -> third is not
    (iii) a card not in the solution with one possible holder -> HAS
    """
    progressed = False
    grid = ctx.grid
    in_solution = solution_cards(grid.card_ids, grid.all_lack)

    for triple in ctx.negative_triples:
        if all(c in in_solution for c in triple):
            ctx.ledger.report(
                f"Failed accusation [{', '.join(triple)}] names only confirmed solution cards",
                (("triple", ",".join(triple)),)
            )

    for card_id, triple in excluded_by_accusations(ctx.negative_triples, in_solution):
        candidates = grid.possible_owners_of(card_id)
        if len(candidates) != 1:
            continue
        (holder,) = candidates
        if grid.state_of(holder, card_id) is CellState.UNKNOWN:
            progressed |= grid.set_state(
                holder, card_id, CellState.HAS,
                ctx.explain(
                    ExplanationKind.SOLUTION_EXCLUSION,
                    f"{card_id} is not in the solution (failed accusation "
                    f"[{', '.join(triple)}]) and only {holder} can hold it"
                )
            )
    return progressed


RULES: Tuple[Callable[[RuleContext], bool], ...] = (
    rule_constraint_tightening,
    rule_cross_exclusion,
    rule_hand_size,
    rule_solution_deduction,
)
