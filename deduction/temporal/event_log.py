"""
Game Event Log
==============

Ordered, hash-linked record of every accepted game event.

INVARIANTS:
- Entries are only ever appended; undo produces a shorter copy
- Positions run 1, 2, 3, ... with no gaps
- Each entry commits to its predecessor's hash
- The same events in the same order always yield the same chain

Belief state is never stored here. It is recomputed by folding these
events through the state machine.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple

from ..contracts.base import Error, ErrorCode
from ..contracts.events import GameEvent
from ..contracts.temporal import LogEntry, LogSequence, compute_entry_hash


_TURN_PREFIX = "turn_"


@dataclass(frozen=True)
class LogState:
    """Where the log currently ends."""
    head_sequence: LogSequence
    head_hash: str
    entry_count: int

    @staticmethod
    def empty() -> 'LogState':
        return LogState(LogSequence(0), "", 0)


def _link_error(entry: LogEntry, expected_sequence: int, expected_previous: str) -> Optional[str]:
    """Reason an entry cannot follow the given head, or None if it can."""
    if entry.sequence.value != expected_sequence:
        return f"Invalid sequence at position {expected_sequence}: got {entry.sequence.value}"
    if entry.previous_hash != expected_previous:
        return (
            f"Broken hash chain at {entry.sequence.value}: "
            f"links to {entry.previous_hash or '<start>'}, head is {expected_previous or '<start>'}"
        )
    if compute_entry_hash(entry.sequence, entry.event, entry.previous_hash) != entry.entry_hash:
        return f"Hash mismatch at sequence {entry.sequence.value}"
    return None


class ImmutableEventLog:
    """
    Hash-linked list of game events.

    append() and load_verified_entry() are the only ways in. Nothing
    already in the log can be rewritten or removed; truncated() hands
    back a fresh log and leaves this one alone.
    """

    def __init__(self, events: Iterable[GameEvent] = ()):
        self._entries: List[LogEntry] = []
        for event in events:
            self.append(event)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def head_hash(self) -> str:
        return self._entries[-1].entry_hash if self._entries else ""

    @property
    def state(self) -> LogState:
        if not self._entries:
            return LogState.empty()
        last = self._entries[-1]
        return LogState(last.sequence, last.entry_hash, len(self._entries))

    # ===== WRITES =====

    def next_entry(self, event: GameEvent) -> LogEntry:
        """Build the entry append() would add for this event, without adding it."""
        return LogEntry.create(
            sequence=LogSequence(len(self._entries) + 1),
            event=event,
            previous_hash=self.head_hash,
        )

    def append(self, event: GameEvent) -> LogEntry:
        entry = self.next_entry(event)
        self._entries.append(entry)
        return entry

    def load_verified_entry(self, entry: LogEntry) -> bool:
        """
        Attach an entry read back from storage.

        Raises ValueError unless the entry sits at the next position,
        links to the current head and its own hash matches its content.
        """
        problem = _link_error(entry, len(self._entries) + 1, self.head_hash)
        if problem is not None:
            raise ValueError(problem)
        self._entries.append(entry)
        return True

    # ===== READS =====

    def replay(self, until_seq: Optional[LogSequence] = None) -> Iterator[LogEntry]:
        """Yield entries oldest first, stopping after until_seq when given."""
        stop = len(self._entries) if until_seq is None else max(0, until_seq.value)
        yield from self._entries[:stop]

    def events(self, until_seq: Optional[LogSequence] = None) -> Tuple[GameEvent, ...]:
        return tuple(entry.event for entry in self.replay(until_seq))

    def get_entry(self, sequence: LogSequence) -> Optional[LogEntry]:
        if 1 <= sequence.value <= len(self._entries):
            return self._entries[sequence.value - 1]
        return None

    def get_entry_by_event_id(self, event_id: str) -> Optional[LogEntry]:
        number = event_id[len(_TURN_PREFIX):]
        if not event_id.startswith(_TURN_PREFIX) or not number.isdigit():
            return None
        return self.get_entry(LogSequence(int(number)))

    def truncated(self, until_seq: LogSequence) -> 'ImmutableEventLog':
        return ImmutableEventLog(self.events(until_seq))

    def verify_integrity(self) -> Tuple[bool, Optional[Error]]:
        """
        Walk the chain from the start and re-check every link.

        Returns (True, None) for an intact log, otherwise False with a
        STRUCTURAL_INCONSISTENCY error naming the first bad entry.
        """
        previous = ""
        for position, entry in enumerate(self._entries, start=1):
            problem = _link_error(entry, position, previous)
            if problem is not None:
                return False, Error(
                    code=ErrorCode.STRUCTURAL_INCONSISTENCY,
                    message=problem,
                    context=(("sequence", str(position)), ("entry_hash", entry.entry_hash)),
                )
            previous = entry.entry_hash
        return True, None
