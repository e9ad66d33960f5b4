"""
Card Catalog
============

The fixed card universe and hand-size distribution.

The classic edition has 6 suspects, 6 weapons and 9 rooms. One card
of each category is removed as the solution; the remaining cards are
dealt evenly, remainder going to the earliest players in turn order.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from .base import (
    Card, CardId, Category, CATEGORY_ORDER, ErrorCode,
    InvalidSetupError, UnknownIdentifierError
)


SUSPECTS = (
    ("miss_scarlett", "Miss Scarlett"),
    ("col_mustard", "Col. Mustard"),
    ("mrs_peacock", "Mrs. Peacock"),
    ("prof_plum", "Prof. Plum"),
    ("rev_green", "Rev. Green"),
    ("dr_orchid", "Dr. Orchid"),
)

WEAPONS = (
    ("rope", "Rope"),
    ("dagger", "Dagger"),
    ("wrench", "Wrench"),
    ("revolver", "Revolver"),
    ("candlestick", "Candlestick"),
    ("lead_pipe", "Lead Pipe"),
)

ROOMS = (
    ("kitchen", "Kitchen"),
    ("dining_room", "Dining Room"),
    ("lounge", "Lounge"),
    ("hall", "Hall"),
    ("study", "Study"),
    ("library", "Library"),
    ("billiard_room", "Billiard Room"),
    ("conservatory", "Conservatory"),
    ("ballroom", "Ballroom"),
)


@dataclass(frozen=True)
class CardUniverse:
    """
    Ordered, immutable set of cards.

    Order is stable (suspects, weapons, rooms) so every iteration
    over the universe is deterministic.
    """
    cards: Tuple[Card, ...]

    def __post_init__(self):
        ids = [c.card_id for c in self.cards]
        if len(ids) != len(set(ids)):
            raise InvalidSetupError("Card ids must be unique")
        for category in CATEGORY_ORDER:
            if not any(c.category == category for c in self.cards):
                raise InvalidSetupError(f"No cards in category {category.value}")
        object.__setattr__(self, "_index", {c.card_id: c for c in self.cards})

    @property
    def card_ids(self) -> Tuple[CardId, ...]:
        return tuple(c.card_id for c in self.cards)

    def __len__(self) -> int:
        return len(self.cards)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._index

    def get(self, card_id: CardId) -> Card:
        try:
            return self._index[card_id]
        except KeyError:
            raise UnknownIdentifierError(ErrorCode.UNKNOWN_CARD, str(card_id)) from None

    def category_of(self, card_id: CardId) -> Category:
        return self.get(card_id).category

    def in_category(self, category: Category) -> Tuple[Card, ...]:
        return tuple(c for c in self.cards if c.category == category)

    @property
    def dealt_card_count(self) -> int:
        """Cards dealt to players: everything except the solution."""
        return len(self.cards) - len(CATEGORY_ORDER)


def build_universe(
    suspects: Iterable[Tuple[str, str]],
    weapons: Iterable[Tuple[str, str]],
    rooms: Iterable[Tuple[str, str]]
) -> CardUniverse:
    cards: List[Card] = []
    for category, entries in (
        (Category.SUSPECT, suspects),
        (Category.WEAPON, weapons),
        (Category.ROOM, rooms),
    ):
        cards.extend(Card(card_id=cid, label=label, category=category) for cid, label in entries)
    return CardUniverse(cards=tuple(cards))


CLASSIC = build_universe(SUSPECTS, WEAPONS, ROOMS)

EDITIONS: Dict[str, CardUniverse] = {
    "classic": CLASSIC,
}


def universe_for(edition: str) -> CardUniverse:
    try:
        return EDITIONS[edition]
    except KeyError:
        raise InvalidSetupError(
            f"Unknown edition: {edition!r}",
            (("known", ",".join(sorted(EDITIONS))),)
        ) from None


def distribute_hand_sizes(player_count: int, dealt_cards: int) -> Tuple[int, ...]:
    """
    Even split of dealt cards, remainder to the earliest players.

    >>> distribute_hand_sizes(4, 18)
    (5, 5, 4, 4)
    """
    if player_count < 1:
        raise InvalidSetupError("At least one player is required")
    base, remainder = divmod(dealt_cards, player_count)
    return tuple(base + (1 if i < remainder else 0) for i in range(player_count))
