"""
Event and Record Contracts

These contracts define the explicit interfaces between layers:
- Game events: the ONLY input the inference engine consumes
- Constraints and effects: what the engine produces
- Audit entries: what the observability layer records

All event types are immutable once created. The event log stores them
verbatim; derived state is recomputed from them, never edited in place.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union
from enum import Enum
from datetime import datetime

from .base import (
    CardId, PlayerId, Triple, CellState, Explanation, InvalidEventError
)


# =============================================================================
# GAME EVENTS (Tagged, immutable)
# =============================================================================

class EventKind(Enum):
    SUGGESTION = "suggestion"
    ACCUSATION_FAILURE = "accusation_failure"
    MANUAL_CLAIM = "manual_claim"


def _check_triple(triple: Optional[Tuple[CardId, ...]]) -> None:
    if triple is None:
        return
    if len(triple) != 3:
        raise InvalidEventError(
            f"A triple needs exactly three cards, got {len(triple)}",
            (("triple", ",".join(triple)),)
        )


@dataclass(frozen=True)
class Suggestion:
    """
    One turn's public suggestion and its response.

    triple=None          -> no suggestion this turn (pure pass/movement)
    responder_id=None    -> nobody at the table could respond
    revealed_card        -> set only when the observer saw the card
    """
    asker_id: PlayerId
    triple: Optional[Triple] = None
    responder_id: Optional[PlayerId] = None
    revealed_card: Optional[CardId] = None

    kind = EventKind.SUGGESTION

    def __post_init__(self):
        if self.triple is not None:
            object.__setattr__(self, "triple", tuple(self.triple))
        _check_triple(self.triple)
        if self.triple is None and self.responder_id is not None:
            raise InvalidEventError("A responder requires a suggested triple")
        if self.revealed_card is not None:
            if self.triple is None or self.revealed_card not in self.triple:
                raise InvalidEventError(
                    "Revealed card must be one of the suggested cards",
                    (("revealed_card", self.revealed_card),)
                )
            if self.responder_id is None:
                raise InvalidEventError("A revealed card requires a responder")
        if self.responder_id is not None and self.responder_id == self.asker_id:
            raise InvalidEventError(
                "The asker cannot respond to their own suggestion",
                (("player_id", self.asker_id),)
            )

    @property
    def involved_players(self) -> Tuple[PlayerId, ...]:
        if self.responder_id is None:
            return (self.asker_id,)
        return (self.asker_id, self.responder_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "asker_id": self.asker_id,
            "triple": list(self.triple) if self.triple is not None else None,
            "responder_id": self.responder_id,
            "revealed_card": self.revealed_card,
        }


@dataclass(frozen=True)
class AccusationFailure:
    """Public proof that this exact triple is not the solution."""
    accuser_id: PlayerId
    triple: Triple

    kind = EventKind.ACCUSATION_FAILURE

    def __post_init__(self):
        object.__setattr__(self, "triple", tuple(self.triple))
        _check_triple(self.triple)

    @property
    def involved_players(self) -> Tuple[PlayerId, ...]:
        return (self.accuser_id,)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "accuser_id": self.accuser_id,
            "triple": list(self.triple),
        }


@dataclass(frozen=True)
class ManualClaim:
    """
    Out-of-band fact about one player.

    asserts_possession=True:  player holds at least one of cards
                              (a single card means certain possession)
    asserts_possession=False: player holds none of cards
    """
    player_id: PlayerId
    cards: FrozenSet[CardId]
    asserts_possession: bool = True

    kind = EventKind.MANUAL_CLAIM

    def __post_init__(self):
        object.__setattr__(self, "cards", frozenset(self.cards))
        if not self.cards:
            raise InvalidEventError("A manual claim needs at least one card")

    @property
    def involved_players(self) -> Tuple[PlayerId, ...]:
        return (self.player_id,)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "player_id": self.player_id,
            "cards": sorted(self.cards),
            "asserts_possession": self.asserts_possession,
        }


GameEvent = Union[Suggestion, AccusationFailure, ManualClaim]


@dataclass(frozen=True)
class GameSetup:
    """
    Static game metadata. Together with the event list this is
    everything needed to rebuild derived state.
    """
    player_names: Tuple[str, ...]
    observer_name: str
    observer_cards: FrozenSet[CardId] = field(default_factory=frozenset)
    edition: str = "classic"

    def __post_init__(self):
        object.__setattr__(self, "player_names", tuple(self.player_names))
        object.__setattr__(self, "observer_cards", frozenset(self.observer_cards))


# =============================================================================
# CONSTRAINT CONTRACTS
# =============================================================================

class ConstraintResolution(Enum):
    SATISFIED = "satisfied"        # a candidate was already HAS
    FORCED = "forced"              # single remaining candidate forced HAS
    CONTRADICTED = "contradicted"  # every candidate LACKS


@dataclass(frozen=True)
class Constraint:
    """
    Disjunctive clause: player holds at least one of candidate_cards.

    Resolution replaces the entry in the store; entries are never
    mutated in place.
    """
    constraint_id: str
    player_id: PlayerId
    candidate_cards: FrozenSet[CardId]
    origin_event_id: Optional[str]
    resolved: bool = False
    resolution: Optional[ConstraintResolution] = None

    def resolve(self, resolution: ConstraintResolution) -> Constraint:
        return Constraint(
            constraint_id=self.constraint_id,
            player_id=self.player_id,
            candidate_cards=self.candidate_cards,
            origin_event_id=self.origin_event_id,
            resolved=True,
            resolution=resolution
        )

    def narrowed(self, remaining: FrozenSet[CardId]) -> Constraint:
        return Constraint(
            constraint_id=self.constraint_id,
            player_id=self.player_id,
            candidate_cards=remaining,
            origin_event_id=self.origin_event_id,
            resolved=self.resolved,
            resolution=self.resolution
        )


# =============================================================================
# EFFECT CONTRACTS (What one reduction changed)
# =============================================================================

@dataclass(frozen=True)
class CellChange:
    """A single UNKNOWN -> terminal transition."""
    player_id: PlayerId
    card_id: CardId
    state: CellState
    explanation: Explanation


@dataclass(frozen=True)
class ConstraintChange:
    """A constraint was created or resolved."""
    constraint_id: str
    player_id: PlayerId
    action: str  # "created" | "resolved"
    resolution: Optional[ConstraintResolution] = None


class SolutionStatus(Enum):
    CONFIRMED_IN = "confirmed_in"
    CONFIRMED_OUT = "confirmed_out"
    UNDETERMINED = "undetermined"


# =============================================================================
# OBSERVABILITY CONTRACTS
# =============================================================================

class AuditEventType(Enum):
    """Explicit audit event types."""
    EVENT_SUBMITTED = "event_submitted"
    STATE_CHANGE = "state_change"
    REPLAY = "replay"
    QUERY = "query"
    ERROR = "error"
    SYSTEM = "system"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit log entry."""
    entry_id: str
    event_type: AuditEventType
    timestamp: datetime
    layer: str  # Which layer generated this
    action: str
    entity_id: Optional[str] = None
    entity_type: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    parent_entry_id: Optional[str] = None  # For lineage tracking
