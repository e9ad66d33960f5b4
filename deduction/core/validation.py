"""
Event Validation
================

All-or-nothing admission: an event referencing anything outside the
constructed universe is rejected before any state is touched.
"""

from __future__ import annotations
from typing import Iterable, Sequence

from ..contracts.base import (
    CardId, PlayerId, Player, CATEGORY_ORDER, ErrorCode,
    InvalidEventError, UnknownIdentifierError
)
from ..contracts.catalog import CardUniverse
from ..contracts.events import (
    GameEvent, Suggestion, AccusationFailure, ManualClaim
)


class EventValidator:

    def __init__(self, players: Sequence[Player], universe: CardUniverse):
        self._player_ids = frozenset(p.player_id for p in players)
        self._universe = universe

    def check_player(self, player_id: PlayerId) -> None:
        if player_id not in self._player_ids:
            raise UnknownIdentifierError(ErrorCode.UNKNOWN_PLAYER, str(player_id))

    def check_cards(self, card_ids: Iterable[CardId]) -> None:
        for card_id in card_ids:
            if card_id not in self._universe:
                raise UnknownIdentifierError(ErrorCode.UNKNOWN_CARD, str(card_id))

    def check_triple(self, triple: Sequence[CardId]) -> None:
        """One card per category, in suspect / weapon / room order."""
        self.check_cards(triple)
        categories = tuple(self._universe.category_of(c) for c in triple)
        if categories != CATEGORY_ORDER:
            raise InvalidEventError(
                "A triple must name one suspect, one weapon and one room, in that order",
                (("triple", ",".join(triple)),)
            )

    def validate(self, event: GameEvent) -> None:
        if isinstance(event, Suggestion):
            self.check_player(event.asker_id)
            if event.responder_id is not None:
                self.check_player(event.responder_id)
            if event.triple is not None:
                self.check_triple(event.triple)
        elif isinstance(event, AccusationFailure):
            self.check_player(event.accuser_id)
            self.check_triple(event.triple)
        elif isinstance(event, ManualClaim):
            self.check_player(event.player_id)
            self.check_cards(sorted(event.cards))
        else:
            raise InvalidEventError(f"Unsupported event type: {type(event).__name__}")
