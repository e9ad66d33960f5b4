"""
Persisted game shape.

A game is static metadata plus the ordered, tagged event records.
That pair is everything restore_from_log needs. Each record also
carries its log position and hash-chain links so an exported file
can be verified without the engine that wrote it.
"""
import json
from dataclasses import asdict
from datetime import datetime, date
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..contracts.base import InvalidEventError, MalformedRecordError
from ..contracts.events import (
    EventKind, GameEvent, GameSetup, Suggestion, AccusationFailure, ManualClaim
)
from ..contracts.temporal import LogEntry, LogSequence
from ..temporal.event_log import ImmutableEventLog

FORMAT_VERSION = "clue-deduction/1"


class StrictForensicEncoder(json.JSONEncoder):
    """
    JSON Encoder that prioritizes Fidelity over Flexibility.

    RULES:
    1. Dates MUST be ISO 8601 strings (UTC).
    2. Enums MUST use their .value.
    3. Sets -> Lists (sorted for determinism).
    4. Events and other contract types use to_dict() when they have one.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return sorted(list(obj))
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        if hasattr(obj, "__dataclass_fields__"):
            return asdict(obj)

        return super().default(obj)


# =============================================================================
# DECODING HELPERS
# =============================================================================

def _require(record: Mapping[str, Any], key: str, kind: type) -> Any:
    if key not in record:
        raise MalformedRecordError(f"Record is missing {key!r}", (("key", key),))
    value = record[key]
    if not isinstance(value, kind):
        raise MalformedRecordError(
            f"{key!r} must be {kind.__name__}, got {type(value).__name__}",
            (("key", key),)
        )
    return value


def _optional(record: Mapping[str, Any], key: str, kind: type) -> Optional[Any]:
    value = record.get(key)
    if value is not None and not isinstance(value, kind):
        raise MalformedRecordError(
            f"{key!r} must be {kind.__name__} or null, got {type(value).__name__}",
            (("key", key),)
        )
    return value


def _strings(values: Iterable[Any], key: str) -> Tuple[str, ...]:
    values = tuple(values)
    if not all(isinstance(v, str) for v in values):
        raise MalformedRecordError(f"{key!r} must contain only strings", (("key", key),))
    return values


# =============================================================================
# EVENTS
# =============================================================================

def event_to_dict(event: GameEvent) -> Dict[str, Any]:
    return event.to_dict()


def event_from_dict(record: Mapping[str, Any]) -> GameEvent:
    """Decode one tagged record. Raises MalformedRecordError."""
    if not isinstance(record, Mapping):
        raise MalformedRecordError(f"Event record must be an object, got {type(record).__name__}")
    tag = _require(record, "type", str)
    try:
        kind = EventKind(tag)
    except ValueError:
        raise MalformedRecordError(f"Unknown event type: {tag!r}", (("type", tag),)) from None

    try:
        if kind is EventKind.SUGGESTION:
            triple = _optional(record, "triple", list)
            return Suggestion(
                asker_id=_require(record, "asker_id", str),
                triple=_strings(triple, "triple") if triple is not None else None,
                responder_id=_optional(record, "responder_id", str),
                revealed_card=_optional(record, "revealed_card", str)
            )
        if kind is EventKind.ACCUSATION_FAILURE:
            return AccusationFailure(
                accuser_id=_require(record, "accuser_id", str),
                triple=_strings(_require(record, "triple", list), "triple")
            )
        asserts = record.get("asserts_possession", True)
        if not isinstance(asserts, bool):
            raise MalformedRecordError("'asserts_possession' must be a boolean")
        return ManualClaim(
            player_id=_require(record, "player_id", str),
            cards=frozenset(_strings(_require(record, "cards", list), "cards")),
            asserts_possession=asserts
        )
    except InvalidEventError as e:
        raise MalformedRecordError(str(e), e.error.context) from e


# =============================================================================
# GAME
# =============================================================================

def setup_to_dict(setup: GameSetup) -> Dict[str, Any]:
    return {
        "players": list(setup.player_names),
        "observer": setup.observer_name,
        "observer_cards": sorted(setup.observer_cards),
        "edition": setup.edition,
    }


def setup_from_dict(record: Mapping[str, Any]) -> GameSetup:
    if not isinstance(record, Mapping):
        raise MalformedRecordError("'setup' must be an object")
    return GameSetup(
        player_names=_strings(_require(record, "players", list), "players"),
        observer_name=_require(record, "observer", str),
        observer_cards=frozenset(_strings(record.get("observer_cards", []), "observer_cards")),
        edition=_optional(record, "edition", str) or "classic"
    )


def game_to_dict(setup: GameSetup, events: Iterable[GameEvent]) -> Dict[str, Any]:
    """Setup plus event records with their log positions and hash links."""
    log = events if isinstance(events, ImmutableEventLog) else ImmutableEventLog(events)
    records: List[Dict[str, Any]] = []
    for entry in log.replay():
        record = event_to_dict(entry.event)
        record["sequence"] = entry.sequence.value
        record["event_id"] = entry.event_id
        record["previous_hash"] = entry.previous_hash
        record["entry_hash"] = entry.entry_hash
        records.append(record)
    return {
        "format": FORMAT_VERSION,
        "setup": setup_to_dict(setup),
        "events": records,
        "head_hash": log.state.head_hash,
    }


def load_log(data: Mapping[str, Any]) -> ImmutableEventLog:
    """
    Rebuild the event log from a game record.

    Records carrying hash links are verified against the chain;
    records without them are appended as fresh entries.
    """
    records = _require(data, "events", list)
    log = ImmutableEventLog()
    for position, record in enumerate(records, start=1):
        event = event_from_dict(record)
        if "entry_hash" not in record:
            log.append(event)
            continue
        entry = LogEntry(
            sequence=LogSequence(record.get("sequence", position)),
            event=event,
            previous_hash=record.get("previous_hash", ""),
            entry_hash=record["entry_hash"]
        )
        try:
            log.load_verified_entry(entry)
        except ValueError as e:
            raise MalformedRecordError(str(e), (("sequence", str(position)),)) from e
    return log


def game_from_dict(data: Mapping[str, Any]) -> Tuple[GameSetup, Tuple[GameEvent, ...]]:
    if not isinstance(data, Mapping):
        raise MalformedRecordError("Game record must be an object")
    version = data.get("format", FORMAT_VERSION)
    if version != FORMAT_VERSION:
        raise MalformedRecordError(f"Unsupported format: {version!r}", (("format", str(version)),))
    setup = setup_from_dict(_require(data, "setup", dict))
    return setup, load_log(data).events()


def dumps_game(setup: GameSetup, events: Iterable[GameEvent], indent: Optional[int] = 2) -> str:
    return json.dumps(game_to_dict(setup, events), cls=StrictForensicEncoder, indent=indent)


def loads_game(text: str) -> Tuple[GameSetup, Tuple[GameEvent, ...]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedRecordError(f"Invalid JSON: {e.msg}", (("line", str(e.lineno)),)) from e
    return game_from_dict(data)
