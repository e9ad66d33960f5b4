"""
Observability & Audit Layer

RESPONSIBILITY: Audit trail, counters, lineage between events and their effects
ALLOWED INPUTS: Reduce outcomes, replay results, audit entries from other layers
OUTPUTS: AuditLog, counters, audit report

WHAT THIS LAYER MUST NOT DO:
============================
- Change how events are validated or reduced
- Drop or reinterpret anything it is handed
- Feed counters back into inference
- Contribute to derived state (audit entries never affect state equality)

BOUNDARY ENFORCEMENT:
=====================
- Receives immutable outcomes (never live working copies)
- Never touches events, grids or constraint stores
- Provides read-only access to logs and counters
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from enum import Enum
import hashlib

# Contracts only; no imports from sibling layers
from ..contracts.base import Error
from ..contracts.events import (
    AuditLogEntry, AuditEventType, CellChange, ConstraintChange
)


def make_entry_id(layer: str, action: str, sequence: int) -> str:
    """Audit entry id: stable for a given layer, action and position."""
    digest = hashlib.sha256(f"{layer}_{action}|{sequence}".encode()).hexdigest()[:16]
    return f"audit_{digest}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# PER-LAYER COLLECTORS
# =============================================================================

class LogCollector:
    """
    Per-layer audit collector.

    Append-only. With max_entries set, the oldest entries are
    dropped once the collector is full. Each entry is kept with the
    position it was collected at, so the merged log can be ordered
    across layers without a separate index.
    """

    def __init__(self, layer_name: str, max_entries: Optional[int] = None):
        self._layer_name = layer_name
        self._max_entries = max_entries
        self._entries: List[Tuple[int, AuditLogEntry]] = []
        self._dropped = 0

    def collect(self, entry: AuditLogEntry, position: Optional[int] = None):
        """Append, evicting the oldest entry once max_entries is reached."""
        if position is None:
            position = self._dropped + len(self._entries) + 1
        self._entries.append((position, entry))
        if self._max_entries is not None and len(self._entries) > self._max_entries:
            overflow = len(self._entries) - self._max_entries
            del self._entries[:overflow]
            self._dropped += overflow

    def get_positioned_entries(
        self,
        event_type: Optional[AuditEventType] = None
    ) -> List[Tuple[int, AuditLogEntry]]:
        if event_type is None:
            return list(self._entries)
        return [(pos, e) for pos, e in self._entries if e.event_type == event_type]

    def get_entries(
        self,
        event_type: Optional[AuditEventType] = None
    ) -> List[AuditLogEntry]:
        """Entries in arrival order, optionally narrowed to one event type."""
        return [e for _, e in self.get_positioned_entries(event_type)]

    @property
    def layer_name(self) -> str:
        return self._layer_name

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    @property
    def dropped_count(self) -> int:
        return self._dropped


# =============================================================================
# COUNTERS
# =============================================================================

class MetricType(Enum):
    """How a metric value changes when recorded."""
    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass
class MetricDefinition:
    """A registered metric name with its kind."""
    name: str
    metric_type: MetricType
    description: str


class MetricsCollector:
    """
    Counters and gauges for the table.

    Counters only grow; gauges hold the latest value.
    """

    def __init__(self):
        self._values: Dict[str, float] = {}
        self._definitions: Dict[str, MetricDefinition] = {}
        self._register_default_metrics()

    def _register_default_metrics(self):
        defaults = [
            MetricDefinition(
                name="events_submitted_total",
                metric_type=MetricType.COUNTER,
                description="Events accepted into the log"
            ),
            MetricDefinition(
                name="events_rejected_total",
                metric_type=MetricType.COUNTER,
                description="Events rejected before touching state"
            ),
            MetricDefinition(
                name="cells_settled_total",
                metric_type=MetricType.COUNTER,
                description="UNKNOWN -> terminal cell transitions"
            ),
            MetricDefinition(
                name="constraints_created_total",
                metric_type=MetricType.COUNTER,
                description="Disjunctive constraints recorded"
            ),
            MetricDefinition(
                name="contradictions_total",
                metric_type=MetricType.COUNTER,
                description="Contradictions tolerated in non-strict mode"
            ),
            MetricDefinition(
                name="replays_total",
                metric_type=MetricType.COUNTER,
                description="Full recomputations (undo, restore)"
            ),
            MetricDefinition(
                name="unknown_cells",
                metric_type=MetricType.GAUGE,
                description="Cells still UNKNOWN in the current state"
            ),
            MetricDefinition(
                name="unresolved_constraints",
                metric_type=MetricType.GAUGE,
                description="Constraints not yet resolved in the current state"
            ),
        ]
        for definition in defaults:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        self._definitions[definition.name] = definition
        self._values.setdefault(definition.name, 0.0)

    def record(self, metric_name: str, value: float = 1.0):
        """Increment a counter or set a gauge."""
        definition = self._definitions.get(metric_name)
        if definition is None:
            raise KeyError(f"Unregistered metric: {metric_name}")
        if definition.metric_type is MetricType.COUNTER:
            self._values[metric_name] += value
        else:
            self._values[metric_name] = value

    def get(self, metric_name: str) -> float:
        return self._values.get(metric_name, 0.0)

    def get_all_metrics(self) -> Dict[str, float]:
        """All metric values (copy)."""
        return dict(self._values)


# =============================================================================
# AUDIT HUB
# =============================================================================

@dataclass
class ObservabilityConfig:
    """Audit and counter switches for a table."""
    # One STATE_CHANGE entry per settled cell; off keeps only per-event entries
    record_cell_changes: bool = True
    max_entries: Optional[int] = None  # per layer; None keeps everything
    enable_metrics: bool = True


LAYERS = ('engine', 'core', 'temporal', 'query')


class ObservabilityEngine:
    """
    Audit hub for one table.

    BOUNDARY ENFORCEMENT:
    - Records what it is given and changes nothing else
    - Receives immutable outcomes
    - Hands out copies of entries and metric values
    """

    def __init__(self, config: Optional[ObservabilityConfig] = None):
        self._config = config or ObservabilityConfig()

        self._collectors: Dict[str, LogCollector] = {
            name: LogCollector(name, self._config.max_entries) for name in LAYERS
        }
        self._metrics = MetricsCollector() if self._config.enable_metrics else None

        # Collection position shared by every layer
        self._sequence = 0

    @property
    def config(self) -> ObservabilityConfig:
        return self._config

    def collect_audit(self, entry: AuditLogEntry):
        """Route an entry to the collector for its layer."""
        collector = self._collectors.get(entry.layer)
        if collector is None:
            raise KeyError(f"Unknown audit layer: {entry.layer}")
        self._sequence += 1
        collector.collect(entry, self._sequence)

    def log_audit(
        self,
        action: str,
        event_type: AuditEventType = AuditEventType.SYSTEM,
        layer: str = "engine",
        entity_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        metadata: Tuple[Tuple[str, str], ...] = (),
        parent_entry_id: Optional[str] = None
    ) -> AuditLogEntry:
        """Build and collect an entry. Returns it for lineage."""
        entry = AuditLogEntry(
            entry_id=make_entry_id(layer, action, self._sequence + 1),
            event_type=event_type,
            timestamp=utc_now(),
            layer=layer,
            action=action,
            entity_id=entity_id,
            entity_type=entity_type,
            metadata=tuple(metadata),
            parent_entry_id=parent_entry_id
        )
        self.collect_audit(entry)
        return entry

    def collect_metric(self, metric_name: str, value: float = 1.0):
        if self._metrics:
            self._metrics.record(metric_name, value)

    # =========================================================================
    # RECORDING HELPERS
    # =========================================================================

    def record_submission(
        self,
        event_id: str,
        event_kind: str,
        cell_changes: Tuple[CellChange, ...],
        constraint_changes: Tuple[ConstraintChange, ...],
        new_contradictions: Tuple[Error, ...],
        passes: int
    ) -> AuditLogEntry:
        """
        Record one accepted event and everything it caused.

        Effects are children of the submission entry.
        """
        root = self.log_audit(
            action="event_submitted",
            event_type=AuditEventType.EVENT_SUBMITTED,
            layer="engine",
            entity_id=event_id,
            entity_type=event_kind,
            metadata=(
                ("cells_settled", str(len(cell_changes))),
                ("constraint_changes", str(len(constraint_changes))),
                ("contradictions", str(len(new_contradictions))),
                ("passes", str(passes)),
            )
        )
        self.collect_metric("events_submitted_total")

        for change in cell_changes:
            if self._config.record_cell_changes:
                self.log_audit(
                    action="cell_settled",
                    event_type=AuditEventType.STATE_CHANGE,
                    layer="core",
                    entity_id=f"{change.player_id}:{change.card_id}",
                    entity_type="cell",
                    metadata=(
                        ("state", change.state.value),
                        ("kind", change.explanation.kind.value),
                        ("reason", change.explanation.text),
                    ),
                    parent_entry_id=root.entry_id
                )
            self.collect_metric("cells_settled_total")

        for change in constraint_changes:
            self.log_audit(
                action=f"constraint_{change.action}",
                event_type=AuditEventType.STATE_CHANGE,
                layer="core",
                entity_id=change.constraint_id,
                entity_type="constraint",
                metadata=(
                    ("player_id", change.player_id),
                    ("resolution", change.resolution.value if change.resolution else ""),
                ),
                parent_entry_id=root.entry_id
            )
            if change.action == "created":
                self.collect_metric("constraints_created_total")

        for error in new_contradictions:
            self.record_error(error, parent_entry_id=root.entry_id, layer="core")
            self.collect_metric("contradictions_total")

        return root

    def record_error(
        self,
        error: Error,
        parent_entry_id: Optional[str] = None,
        layer: str = "engine"
    ) -> AuditLogEntry:
        return self.log_audit(
            action=error.code.name.lower(),
            event_type=AuditEventType.ERROR,
            layer=layer,
            entity_type="error",
            metadata=(("message", error.message),) + tuple(error.context),
            parent_entry_id=parent_entry_id
        )

    def record_rejection(self, error: Error) -> AuditLogEntry:
        """An event that never reached the log."""
        self.collect_metric("events_rejected_total")
        return self.record_error(error)

    def record_replay(self, action: str, event_count: int, state_hash: str) -> AuditLogEntry:
        self.collect_metric("replays_total")
        return self.log_audit(
            action=action,
            event_type=AuditEventType.REPLAY,
            layer="temporal",
            metadata=(
                ("event_count", str(event_count)),
                ("state_hash", state_hash),
            )
        )

    def update_gauges(self, unknown_cells: int, unresolved_constraints: int):
        self.collect_metric("unknown_cells", float(unknown_cells))
        self.collect_metric("unresolved_constraints", float(unresolved_constraints))

    # =========================================================================
    # READ ACCESS
    # =========================================================================

    def get_unified_log(
        self,
        layers: Optional[List[str]] = None,
        event_type: Optional[AuditEventType] = None
    ) -> List[AuditLogEntry]:
        """Entries from all or the given layers, in collection order."""
        target_layers = layers or list(self._collectors.keys())

        positioned: List[Tuple[int, AuditLogEntry]] = []
        for layer_name in target_layers:
            collector = self._collectors.get(layer_name)
            if collector:
                positioned.extend(collector.get_positioned_entries(event_type))

        positioned.sort(key=lambda pair: pair[0])
        return [entry for _, entry in positioned]

    def get_children(self, entry_id: str) -> List[AuditLogEntry]:
        """Entries recorded as effects of the given entry."""
        return [e for e in self.get_unified_log() if e.parent_entry_id == entry_id]

    def get_metrics(self) -> Optional[MetricsCollector]:
        """The counter registry, or None when metrics are off."""
        return self._metrics

    def generate_audit_report(self) -> Dict:
        """Aggregate entries by layer and event type, plus counters."""
        entries = self.get_unified_log()

        by_layer: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        for entry in entries:
            by_layer[entry.layer] = by_layer.get(entry.layer, 0) + 1
            by_type[entry.event_type.value] = by_type.get(entry.event_type.value, 0) + 1

        return {
            'total_entries': len(entries),
            'dropped_entries': sum(c.dropped_count for c in self._collectors.values()),
            'by_layer': by_layer,
            'by_event_type': by_type,
            'metrics': self._metrics.get_all_metrics() if self._metrics else {},
            'time_range': {
                'start': entries[0].timestamp.isoformat() if entries else None,
                'end': entries[-1].timestamp.isoformat() if entries else None,
            },
            'generated_at': utc_now().isoformat()
        }


__all__ = [
    'LogCollector',
    'MetricType',
    'MetricDefinition',
    'MetricsCollector',
    'ObservabilityConfig',
    'ObservabilityEngine',
    'make_entry_id',
]
