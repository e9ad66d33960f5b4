"""
Belief Grid
===========

Per (player, card) tri-state cells with provenance.

INVARIANTS:
- Cells move only along UNKNOWN -> HAS | LACKS
- A settled cell is never overwritten with the opposite state
- set_state never cascades; propagation belongs to the rules
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from ..contracts.base import (
    CardId, PlayerId, Cell, CellState, Explanation, Error, ErrorCode,
    InconsistentStateError, InvalidEventError,
    UnknownIdentifierError, UNKNOWN_CELL
)
from ..contracts.events import CellChange


class ContradictionLedger:
    """
    Decides what happens when the event stream contradicts itself.

    strict=True raises InconsistentStateError at the first contradiction.
    strict=False records the Error and lets inference continue.
    """

    def __init__(
        self,
        strict: bool = True,
        origin_event_id: Optional[str] = None,
        known: Sequence[Error] = ()
    ):
        self.strict = strict
        self.origin_event_id = origin_event_id
        self.errors: List[Error] = []
        # A standing contradiction is re-detected on every pass; record it once.
        self._seen = {e.message for e in known}

    def report(self, message: str, context: Tuple[Tuple[str, str], ...] = ()) -> None:
        if self.origin_event_id is not None:
            context = context + (("origin_event_id", self.origin_event_id),)
        if self.strict:
            raise InconsistentStateError(message, context)
        if message in self._seen:
            return
        self._seen.add(message)
        self.errors.append(Error(code=ErrorCode.CONTRADICTION, message=message, context=context))


@dataclass(frozen=True)
class GridSnapshot:
    """
    Immutable view of the grid.

    Rows are ordered by player turn order, then card universe order,
    so two snapshots of the same beliefs compare equal.
    """
    player_ids: Tuple[PlayerId, ...]
    card_ids: Tuple[CardId, ...]
    cells: Tuple[Cell, ...]

    def __post_init__(self):
        if len(self.cells) != len(self.player_ids) * len(self.card_ids):
            raise ValueError("Grid snapshot size does not match its axes")
        object.__setattr__(self, "_player_pos", {p: i for i, p in enumerate(self.player_ids)})
        object.__setattr__(self, "_card_pos", {c: i for i, c in enumerate(self.card_ids)})

    @staticmethod
    def empty(player_ids: Sequence[PlayerId], card_ids: Sequence[CardId]) -> 'GridSnapshot':
        return GridSnapshot(
            player_ids=tuple(player_ids),
            card_ids=tuple(card_ids),
            cells=(UNKNOWN_CELL,) * (len(player_ids) * len(card_ids))
        )

    def _offset(self, player_id: PlayerId, card_id: CardId) -> int:
        try:
            row = self._player_pos[player_id]
        except KeyError:
            raise UnknownIdentifierError(ErrorCode.UNKNOWN_PLAYER, str(player_id)) from None
        try:
            col = self._card_pos[card_id]
        except KeyError:
            raise UnknownIdentifierError(ErrorCode.UNKNOWN_CARD, str(card_id)) from None
        return row * len(self.card_ids) + col

    def cell(self, player_id: PlayerId, card_id: CardId) -> Cell:
        return self.cells[self._offset(player_id, card_id)]

    def state(self, player_id: PlayerId, card_id: CardId) -> CellState:
        return self.cell(player_id, card_id).state

    def items(self) -> Iterator[Tuple[PlayerId, CardId, Cell]]:
        width = len(self.card_ids)
        for i, cell in enumerate(self.cells):
            yield self.player_ids[i // width], self.card_ids[i % width], cell

    def count(self, state: CellState) -> int:
        return sum(1 for c in self.cells if c.state is state)

    def to_dict(self) -> Dict[PlayerId, Dict[CardId, str]]:
        """Plain player -> card -> state mapping for renderers."""
        result: Dict[PlayerId, Dict[CardId, str]] = {p: {} for p in self.player_ids}
        for player_id, card_id, cell in self.items():
            result[player_id][card_id] = cell.state.value
        return result


class BeliefGrid:
    """
    Mutable working copy used during a single reduction.

    Created from a GridSnapshot, mutated forward only, then frozen
    back into a new snapshot. Records every transition as a CellChange.
    """

    def __init__(self, snapshot: GridSnapshot, ledger: Optional[ContradictionLedger] = None):
        self._player_ids = snapshot.player_ids
        self._card_ids = snapshot.card_ids
        self._cells: Dict[Tuple[PlayerId, CardId], Cell] = {
            (p, c): cell for p, c, cell in snapshot.items()
        }
        self._ledger = ledger or ContradictionLedger()
        self.changes: List[CellChange] = []

    @property
    def player_ids(self) -> Tuple[PlayerId, ...]:
        return self._player_ids

    @property
    def card_ids(self) -> Tuple[CardId, ...]:
        return self._card_ids

    def _key(self, player_id: PlayerId, card_id: CardId) -> Tuple[PlayerId, CardId]:
        key = (player_id, card_id)
        if key not in self._cells:
            if player_id not in self._player_ids:
                raise UnknownIdentifierError(ErrorCode.UNKNOWN_PLAYER, str(player_id))
            raise UnknownIdentifierError(ErrorCode.UNKNOWN_CARD, str(card_id))
        return key

    def get(self, player_id: PlayerId, card_id: CardId) -> Cell:
        return self._cells[self._key(player_id, card_id)]

    def state_of(self, player_id: PlayerId, card_id: CardId) -> CellState:
        return self.get(player_id, card_id).state

    def set_state(
        self,
        player_id: PlayerId,
        card_id: CardId,
        new_state: CellState,
        explanation: Explanation
    ) -> bool:
        """
        Move a cell forward along the lattice.

        Returns True only when the cell actually changed. Setting a cell
        to the state it already holds is a no-op and keeps the first
        explanation. Setting the opposite terminal state is reported to
        the contradiction ledger and never overwrites.
        """
        if not new_state.is_terminal:
            raise InvalidEventError(
                "Cells cannot be moved back to UNKNOWN",
                (("player_id", player_id), ("card_id", card_id))
            )
        key = self._key(player_id, card_id)
        current = self._cells[key]

        if current.state is new_state:
            return False
        if current.state.is_terminal:
            self._ledger.report(
                f"{player_id} cannot be {new_state.name} on {card_id}: "
                f"already {current.state.name} ({current.explanation.text})",
                (("player_id", player_id), ("card_id", card_id),
                 ("rejected_reason", explanation.text))
            )
            return False

        self._cells[key] = Cell(state=new_state, explanation=explanation)
        self.changes.append(CellChange(
            player_id=player_id,
            card_id=card_id,
            state=new_state,
            explanation=explanation
        ))
        return True

    def row(self, player_id: PlayerId) -> Tuple[Tuple[CardId, CellState], ...]:
        return tuple((c, self._cells[(player_id, c)].state) for c in self._card_ids)

    def owners_of(self, card_id: CardId) -> Tuple[PlayerId, ...]:
        return tuple(p for p in self._player_ids if self._cells[(p, card_id)].state is CellState.HAS)

    def possible_owners_of(self, card_id: CardId) -> Tuple[PlayerId, ...]:
        """Players not known to lack the card."""
        return tuple(p for p in self._player_ids if self._cells[(p, card_id)].state is not CellState.LACKS)

    def counts_for(self, player_id: PlayerId) -> Tuple[int, int]:
        """(HAS count, UNKNOWN count) for one player."""
        has = unknown = 0
        for card_id in self._card_ids:
            state = self._cells[(player_id, card_id)].state
            if state is CellState.HAS:
                has += 1
            elif state is CellState.UNKNOWN:
                unknown += 1
        return has, unknown

    def all_lack(self, card_id: CardId) -> bool:
        return all(self._cells[(p, card_id)].state is CellState.LACKS for p in self._player_ids)

    def freeze(self) -> GridSnapshot:
        return GridSnapshot(
            player_ids=self._player_ids,
            card_ids=self._card_ids,
            cells=tuple(self._cells[(p, c)] for p in self._player_ids for c in self._card_ids)
        )
