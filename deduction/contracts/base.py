"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
All types here are IMMUTABLE and represent pure data.
No behavior beyond validation, no side effects, no dependencies.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Layers may import types but MUST NOT modify this module
- All types are frozen dataclasses for immutability guarantee
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Tuple
from enum import Enum, auto


PlayerId = str
CardId = str
Triple = Tuple[CardId, CardId, CardId]


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    No silent fallbacks - every error state is enumerated.
    """
    # Input validation errors
    UNKNOWN_PLAYER = auto()
    UNKNOWN_CARD = auto()
    MALFORMED_EVENT = auto()
    INVALID_SETUP = auto()

    # Inference errors
    CONTRADICTION = auto()
    FIXPOINT_NON_CONVERGENCE = auto()

    # Log errors
    EMPTY_LOG = auto()
    STRUCTURAL_INCONSISTENCY = auto()
    MALFORMED_RECORD = auto()

    # Query errors
    INVALID_QUERY = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data first - they can be stored in derived state and queried.
    """
    code: ErrorCode
    message: str
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            context=self.context + ((key, value),)
        )


class DeductionError(Exception):
    """Base exception. Always carries the structured Error record."""

    code = ErrorCode.STRUCTURAL_INCONSISTENCY

    def __init__(self, message: str, context: Tuple[Tuple[str, str], ...] = ()):
        super().__init__(message)
        self.error = Error(code=self.code, message=message, context=tuple(context))


class UnknownIdentifierError(DeductionError):
    """Event or query references a player or card outside the universe."""

    def __init__(self, code: ErrorCode, identifier: str):
        self.code = code
        kind = "player" if code == ErrorCode.UNKNOWN_PLAYER else "card"
        super().__init__(f"Unknown {kind} id: {identifier!r}", (("identifier", identifier),))


class InvalidEventError(DeductionError):
    code = ErrorCode.MALFORMED_EVENT


class InvalidSetupError(DeductionError):
    code = ErrorCode.INVALID_SETUP


class InconsistentStateError(DeductionError):
    """The event stream implies a logical contradiction."""
    code = ErrorCode.CONTRADICTION


class FixpointNonConvergenceError(DeductionError):
    code = ErrorCode.FIXPOINT_NON_CONVERGENCE


class UndoUnavailableError(DeductionError):
    code = ErrorCode.EMPTY_LOG


class MalformedRecordError(DeductionError):
    """A persisted record cannot be decoded into an event or setup."""
    code = ErrorCode.MALFORMED_RECORD


class InvalidQueryError(DeductionError):
    code = ErrorCode.INVALID_QUERY


def raise_for(error: Error) -> None:
    """Re-raise an Error record (e.g. from a ReplayResult) as its exception."""
    if error.code in (ErrorCode.UNKNOWN_PLAYER, ErrorCode.UNKNOWN_CARD):
        identifier = dict(error.context).get("identifier", "")
        raise UnknownIdentifierError(error.code, identifier)
    for cls in (
        InvalidEventError, InvalidSetupError, InconsistentStateError,
        FixpointNonConvergenceError, UndoUnavailableError,
        MalformedRecordError, InvalidQueryError,
    ):
        if cls.code == error.code:
            raise cls(error.message, error.context)
    raise DeductionError(error.message, error.context)


# =============================================================================
# CARD AND PLAYER TYPES (Immutable, fixed at construction)
# =============================================================================

class Category(Enum):
    """The three disjoint card categories. Solution holds one of each."""
    SUSPECT = "suspect"
    WEAPON = "weapon"
    ROOM = "room"


CATEGORY_ORDER: Tuple[Category, ...] = (Category.SUSPECT, Category.WEAPON, Category.ROOM)


@dataclass(frozen=True)
class Card:
    card_id: CardId
    label: str
    category: Category


@dataclass(frozen=True)
class Player:
    """
    Immutable player record.

    hand_size is fixed at game start and never changes.
    Exactly one player per game is the observer: their hand is known.
    """
    player_id: PlayerId
    display_name: str
    hand_size: int
    is_observer: bool = False

    def __post_init__(self):
        if self.hand_size < 0:
            raise ValueError("hand_size must be non-negative")


# =============================================================================
# BELIEF CELL TYPES (Closed variant: terminal states carry provenance)
# =============================================================================

class CellState(Enum):
    """
    Tri-state belief for (player, card).

    UNKNOWN is the only non-terminal state:
    UNKNOWN -> HAS | LACKS, never further.
    """
    UNKNOWN = "unknown"
    HAS = "has"
    LACKS = "lacks"

    @property
    def is_terminal(self) -> bool:
        return self is not CellState.UNKNOWN

    def opposite(self) -> CellState:
        if self is CellState.HAS:
            return CellState.LACKS
        if self is CellState.LACKS:
            return CellState.HAS
        return CellState.UNKNOWN


class ExplanationKind(Enum):
    """Which event or rule settled a cell."""
    INITIAL_HAND = "initial_hand"
    CARD_SHOWN = "card_shown"
    SUGGESTION_PASS = "suggestion_pass"
    NO_RESPONSE = "no_response"
    MANUAL_CLAIM = "manual_claim"
    CONSTRAINT_FORCED = "constraint_forced"
    CROSS_EXCLUSION = "cross_exclusion"
    HAND_FULL = "hand_full"
    HAND_EXHAUSTED = "hand_exhausted"
    SOLUTION_EXCLUSION = "solution_exclusion"


@dataclass(frozen=True)
class Explanation:
    """
    Provenance for a settled cell.
    Permanent once attached: settled cells never transition again.
    """
    kind: ExplanationKind
    text: str
    origin_event_id: Optional[str] = None


@dataclass(frozen=True)
class Cell:
    """
    One grid cell.

    INVARIANT: UNKNOWN never carries an explanation,
    HAS and LACKS always do.
    """
    state: CellState = CellState.UNKNOWN
    explanation: Optional[Explanation] = None

    def __post_init__(self):
        if self.state is CellState.UNKNOWN and self.explanation is not None:
            raise ValueError("UNKNOWN cell cannot carry an explanation")
        if self.state.is_terminal and self.explanation is None:
            raise ValueError(f"{self.state.name} cell requires an explanation")


UNKNOWN_CELL = Cell()
