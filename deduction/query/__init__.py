"""
Query & Analysis Interfaces

RESPONSIBILITY: Read-only derivations over a DeductionState and its log
ALLOWED INPUTS: Immutable states, the event log, explicit query parameters
OUTPUTS: Solution verdicts, explanations, board views, turn history, what-if reports

WHAT THIS LAYER MUST NOT DO:
============================
- Mutate any state or the live event log
- Resolve contradictions (only report them)
- Estimate probabilities: every answer is exact three-valued logic

BOUNDARY ENFORCEMENT:
=====================
- Reads states as immutable values
- What-if queries reduce on a scratch derivation, never the live table
- Unknown ids fail fast with UnknownIdentifierError
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
from datetime import datetime, timezone
import hashlib

# Contracts first; the temporal layer is used only through its public interface
from ..contracts.base import (
    CardId, PlayerId, Triple, Category, CellState, Explanation, Error, ErrorCode,
    InvalidQueryError, UnknownIdentifierError
)
from ..contracts.events import (
    Suggestion, AccusationFailure, ManualClaim, SolutionStatus,
    AuditLogEntry, AuditEventType
)
from ..core.rules import solution_cards, excluded_by_accusations

from ..temporal.event_log import ImmutableEventLog
from ..temporal.replay import ReplayEngine
from ..temporal.state_machine import StateMachine, DeductionState


@dataclass
class QueryEngineConfig:
    """Configuration for the query layer."""
    default_history_limit: int = 5
    max_history_limit: int = 20
    # Score per suggested card whose solution status is still open
    undetermined_card_value: int = 10


@dataclass(frozen=True)
class SimulationReport:
    """
    What a hypothetical suggestion would settle.

    The hypothetical is evaluated on a scratch derivation; nothing here
    reflects a change to the live table.
    """
    success: bool
    triple: Triple
    unknown_before: int = 0
    unknown_after: int = 0
    newly_confirmed: Tuple[Tuple[CardId, SolutionStatus], ...] = field(default_factory=tuple)
    heuristic_value: int = 0
    error: Optional[Error] = None

    @property
    def settled_cells(self) -> int:
        return self.unknown_before - self.unknown_after

    def to_dict(self) -> Dict:
        return {
            "success": self.success,
            "triple": list(self.triple),
            "settled_cells": self.settled_cells,
            "unknown_before": self.unknown_before,
            "unknown_after": self.unknown_after,
            "newly_confirmed": {card: status.value for card, status in self.newly_confirmed},
            "heuristic_value": self.heuristic_value,
            "error": self.error.message if self.error else None,
        }


# =============================================================================
# PURE DERIVATIONS
# =============================================================================

def compute_solution_status(state: DeductionState) -> Dict[CardId, SolutionStatus]:
    """
    CONFIRMED_IN when every player LACKS the card; CONFIRMED_OUT when some
    player HAS it or a failed accusation proves it out; else UNDETERMINED.
    """
    grid = state.grid

    def all_lack(card_id: CardId) -> bool:
        return all(grid.state(p, card_id) is CellState.LACKS for p in grid.player_ids)

    in_solution = solution_cards(grid.card_ids, all_lack)
    proven_out = {card for card, _ in excluded_by_accusations(state.negative_triples, in_solution)}

    status: Dict[CardId, SolutionStatus] = {}
    for card_id in grid.card_ids:
        if any(grid.state(p, card_id) is CellState.HAS for p in grid.player_ids):
            status[card_id] = SolutionStatus.CONFIRMED_OUT
        elif card_id in in_solution:
            status[card_id] = SolutionStatus.CONFIRMED_IN
        elif card_id in proven_out:
            status[card_id] = SolutionStatus.CONFIRMED_OUT
        else:
            status[card_id] = SolutionStatus.UNDETERMINED
    return status


def count_unknown(state: DeductionState) -> int:
    return state.grid.count(CellState.UNKNOWN)


# =============================================================================
# QUERY ENGINE
# =============================================================================

class QueryEngine:
    """
    Read-only query surface for one table.

    Holds the state machine (for the universe and scratch replays) and
    its own audit log. Never holds derived state: every call is given
    the state or log to read.
    """

    def __init__(self, state_machine: StateMachine, config: Optional[QueryEngineConfig] = None):
        self._state_machine = state_machine
        self._config = config or QueryEngineConfig()
        self._audit_log: List[AuditLogEntry] = []
        self._query_counter = 0

    @property
    def config(self) -> QueryEngineConfig:
        return self._config

    # =========================================================================
    # SOLUTION
    # =========================================================================

    def solution_status(self, state: DeductionState) -> Dict[CardId, SolutionStatus]:
        self._log_audit("solution_status")
        return compute_solution_status(state)

    def solution_verdict(self, state: DeductionState) -> Dict[Category, Optional[CardId]]:
        """
        Per category: the confirmed solution card, or the only card left
        once every other card of the category is confirmed out.
        """
        status = compute_solution_status(state)
        universe = self._state_machine.universe
        verdict: Dict[Category, Optional[CardId]] = {}
        for category in Category:
            cards = [c.card_id for c in universe.in_category(category)]
            confirmed = [c for c in cards if status[c] is SolutionStatus.CONFIRMED_IN]
            open_cards = [c for c in cards if status[c] is SolutionStatus.UNDETERMINED]
            if confirmed:
                verdict[category] = confirmed[0]
            elif len(open_cards) == 1:
                verdict[category] = open_cards[0]
            else:
                verdict[category] = None
        self._log_audit("solution_verdict")
        return verdict

    # =========================================================================
    # PROVENANCE
    # =========================================================================

    def explain(self, state: DeductionState, player_id: PlayerId, card_id: CardId) -> Optional[Explanation]:
        """Why a cell holds its value. None while the cell is UNKNOWN."""
        cell = state.grid.cell(player_id, card_id)
        self._log_audit("explain", entity_id=f"{player_id}:{card_id}")
        return cell.explanation

    def explain_cell(self, state: DeductionState, player_id: PlayerId, card_id: CardId) -> Dict:
        """explain() as a plain mapping for tool callers."""
        cell = state.grid.cell(player_id, card_id)
        self._log_audit("explain_cell", entity_id=f"{player_id}:{card_id}")
        explanation = cell.explanation
        return {
            "player_id": player_id,
            "card_id": card_id,
            "state": cell.state.value,
            "reason": explanation.text if explanation else None,
            "kind": explanation.kind.value if explanation else None,
            "origin_event_id": explanation.origin_event_id if explanation else None,
        }

    # =========================================================================
    # TOOL QUERIES
    # =========================================================================

    def board_state(
        self,
        state: DeductionState,
        players: Optional[Sequence[PlayerId]] = None,
        cards: Optional[Sequence[CardId]] = None
    ) -> Dict[str, Dict[str, str]]:
        """Display name -> card label -> cell state, optionally filtered."""
        validator = self._state_machine.validator
        for player_id in players or ():
            validator.check_player(player_id)
        validator.check_cards(cards or ())

        universe = self._state_machine.universe
        target_players = [p for p in state.players if players is None or p.player_id in players]
        target_cards = [c for c in universe.cards if cards is None or c.card_id in cards]

        result: Dict[str, Dict[str, str]] = {}
        for player in target_players:
            result[player.display_name] = {
                card.label: state.grid.state(player.player_id, card.card_id).value
                for card in target_cards
            }
        self._log_audit("board_state", metadata=(
            ("players", str(len(target_players))),
            ("cards", str(len(target_cards))),
        ))
        return result

    def resolve_player(self, state: DeductionState, name_or_id: str) -> PlayerId:
        """
        Match a player id, then a whole display name, then a unique
        display-name prefix. Name matching ignores case.
        """
        for player in state.players:
            if player.player_id == name_or_id:
                return player.player_id
        needle = name_or_id.lower()
        matches = [p.player_id for p in state.players if p.display_name.lower() == needle]
        if not matches:
            matches = [p.player_id for p in state.players if p.display_name.lower().startswith(needle)]
        if len(matches) != 1:
            raise UnknownIdentifierError(ErrorCode.UNKNOWN_PLAYER, name_or_id)
        return matches[0]

    def turn_history(
        self,
        state: DeductionState,
        log: ImmutableEventLog,
        limit: Optional[int] = None,
        involved_player: Optional[str] = None
    ) -> List[str]:
        """One line per turn, newest first."""
        limit = self._config.default_history_limit if limit is None else limit
        if not 1 <= limit <= self._config.max_history_limit:
            raise InvalidQueryError(
                f"limit must be between 1 and {self._config.max_history_limit}",
                (("limit", str(limit)),)
            )
        player_id = self.resolve_player(state, involved_player) if involved_player else None
        lines: List[str] = []
        for entry in reversed(list(log.replay())):
            event = entry.event
            if player_id is not None and player_id not in event.involved_players:
                continue
            lines.append(f"Turn {entry.sequence.value}: {self.describe_event(state, event)}")
            if len(lines) == limit:
                break
        self._log_audit("turn_history", metadata=(("returned", str(len(lines))),))
        return lines

    def describe_event(self, state: DeductionState, event) -> str:
        """One-line human summary of an event."""
        def names(player_id):
            return state.player(player_id).display_name

        if isinstance(event, Suggestion):
            asker = names(event.asker_id)
            if event.triple is None:
                return f"{asker} made no suggestion."
            responder = names(event.responder_id) if event.responder_id else "None"
            text = f"{asker} asked [{', '.join(event.triple)}]. Responder: {responder}."
            if event.revealed_card:
                text += f" (Showed {event.revealed_card})"
            return text
        if isinstance(event, AccusationFailure):
            return f"{names(event.accuser_id)} accused [{', '.join(event.triple)}] and was wrong."
        if isinstance(event, ManualClaim):
            cards = ", ".join(sorted(event.cards))
            verb = "holds one of" if event.asserts_possession else "holds none of"
            return f"Claim: {names(event.player_id)} {verb} [{cards}]."
        return type(event).__name__

    def simulate_suggestion(
        self,
        state: DeductionState,
        log: ImmutableEventLog,
        asker_id: PlayerId,
        triple: Sequence[CardId],
        responder_id: Optional[PlayerId] = None,
        revealed_card: Optional[CardId] = None
    ) -> SimulationReport:
        """
        Evaluate a hypothetical suggestion on a scratch replay of the log.

        Reports how many UNKNOWN cells it would settle and which cards'
        solution status it would decide. Unknown ids and malformed
        suggestions raise; an inconsistent hypothetical is reported.
        """
        event = Suggestion(
            asker_id=asker_id,
            triple=tuple(triple),
            responder_id=responder_id,
            revealed_card=revealed_card
        )
        # Bad ids are the caller's error, not an outcome of the hypothetical
        self._state_machine.validate(event)
        before = compute_solution_status(state)
        value = sum(
            self._config.undetermined_card_value
            for card in event.triple
            if before.get(card) is SolutionStatus.UNDETERMINED
        )

        result = ReplayEngine(ImmutableEventLog(log.events()), self._state_machine).what_if(event)
        self._log_audit("simulate_suggestion", metadata=(("success", str(result.success)),))

        if not result.success:
            return SimulationReport(
                success=False,
                triple=event.triple,
                unknown_before=count_unknown(state),
                unknown_after=count_unknown(state),
                heuristic_value=value,
                error=result.error
            )

        after_state = result.outcome.state
        after = compute_solution_status(after_state)
        return SimulationReport(
            success=True,
            triple=event.triple,
            unknown_before=count_unknown(state),
            unknown_after=count_unknown(after_state),
            newly_confirmed=tuple(
                (card, after[card]) for card in after
                if before[card] is SolutionStatus.UNDETERMINED
                and after[card] is not SolutionStatus.UNDETERMINED
            ),
            heuristic_value=value
        )

    # =========================================================================
    # AUDIT
    # =========================================================================

    def _log_audit(
        self,
        action: str,
        entity_id: Optional[str] = None,
        metadata: tuple = ()
    ):
        """Add entry to internal audit log."""
        self._query_counter += 1
        entry_id = hashlib.sha256(
            f"query_{action}|{self._query_counter}".encode()
        ).hexdigest()[:16]

        entry = AuditLogEntry(
            entry_id=f"audit_q{entry_id}",
            event_type=AuditEventType.QUERY,
            timestamp=datetime.now(timezone.utc),
            layer="query",
            action=action,
            entity_id=entity_id,
            metadata=metadata
        )
        self._audit_log.append(entry)

    def drain_audit_log(self) -> List[AuditLogEntry]:
        """Hand over entries not yet collected and forget them."""
        entries, self._audit_log = self._audit_log, []
        return entries


__all__ = [
    'QueryEngine',
    'QueryEngineConfig',
    'SimulationReport',
    'compute_solution_status',
    'count_unknown',
]
