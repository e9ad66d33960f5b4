"""
Log Position and Entry Contracts
================================

An entry's hash covers its position, the canonical JSON of its event
and the hash of the entry before it. Nothing time-dependent goes in,
so re-recording a game reproduces its chain exactly.
"""

from __future__ import annotations
from dataclasses import dataclass
import hashlib
import json

from .events import GameEvent


@dataclass(frozen=True, order=True)
class LogSequence:
    """1-based position in the event log; 0 means before the first event."""
    value: int

    def next(self) -> 'LogSequence':
        return LogSequence(self.value + 1)

    def previous(self) -> 'LogSequence':
        return LogSequence(max(0, self.value - 1))


def event_id_for(sequence: LogSequence) -> str:
    return f"turn_{sequence.value}"


def canonical_event(event: GameEvent) -> str:
    return json.dumps(event.to_dict(), sort_keys=True, separators=(",", ":"))


def compute_entry_hash(sequence: LogSequence, event: GameEvent, previous_hash: str) -> str:
    payload = "|".join((str(sequence.value), canonical_event(event), previous_hash))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class LogEntry:
    """One committed event together with its place in the chain."""
    sequence: LogSequence
    event: GameEvent
    previous_hash: str
    entry_hash: str

    @property
    def event_id(self) -> str:
        return event_id_for(self.sequence)

    @staticmethod
    def create(sequence: LogSequence, event: GameEvent, previous_hash: str) -> 'LogEntry':
        return LogEntry(
            sequence=sequence,
            event=event,
            previous_hash=previous_hash,
            entry_hash=compute_entry_hash(sequence, event, previous_hash),
        )
