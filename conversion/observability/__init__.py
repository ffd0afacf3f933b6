"""
Observability & Audit Layer

RESPONSIBILITY: Record every rewrite decision the engine takes
ALLOWED INPUTS: Rewrite events from the core
OUTPUTS: RewriteAuditEntry stream, summary report

WHAT THIS LAYER MUST NOT DO:
============================
- Modify engine behavior
- Make decisions based on logged data
- Hold references to trackers (only node ids)

BOUNDARY ENFORCEMENT:
=====================
- Entries are immutable once recorded
- Provides read-only access to the collected trail
- Sequence numbers, not wall-clock time, order the trail, so two runs
  with the same draws produce identical reports
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional

from ..contracts.events import RewriteAuditEntry, RewriteEventType


class RewriteLog:
    """
    Append-only collector of rewrite events.

    A disabled collector accepts and discards records so callers never
    branch on configuration.
    """

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self._entries: List[RewriteAuditEntry] = []
        self._sequence: int = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    def record(
        self,
        event_type: RewriteEventType,
        node_id: int,
        layer: int,
        rule_index: int = -1,
        reason: str = "",
        **metadata: Any,
    ) -> Optional[RewriteAuditEntry]:
        """Build and collect an entry. Returns None when disabled."""
        if not self._enabled:
            return None
        entry = RewriteAuditEntry(
            sequence=self._sequence,
            event_type=event_type,
            node_id=node_id,
            layer=layer,
            rule_index=rule_index,
            reason=reason,
            metadata=tuple(sorted((key, str(value)) for key, value in metadata.items())),
        )
        self.collect(entry)
        return entry

    def collect(self, entry: RewriteAuditEntry) -> None:
        """Collect an audit entry (append-only)."""
        self._entries.append(entry)
        self._sequence += 1

    def get_entries(
        self,
        event_type: Optional[RewriteEventType] = None,
        node_id: Optional[int] = None,
        layer: Optional[int] = None,
    ) -> List[RewriteAuditEntry]:
        """Get entries, optionally filtered."""
        entries = self._entries

        if event_type is not None:
            entries = [e for e in entries if e.event_type == event_type]

        if node_id is not None:
            entries = [e for e in entries if e.node_id == node_id]

        if layer is not None:
            entries = [e for e in entries if e.layer == layer]

        return list(entries)

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        """Start a new trail. Sequence numbers restart at zero."""
        self._entries.clear()
        self._sequence = 0

    def generate_report(self) -> Dict:
        """Summarize the trail by event type and layer."""
        by_layer: Dict[int, int] = {}
        by_type: Dict[str, int] = {}

        for entry in self._entries:
            by_layer[entry.layer] = by_layer.get(entry.layer, 0) + 1
            by_type[entry.event_type.value] = by_type.get(entry.event_type.value, 0) + 1

        return {
            'total_entries': len(self._entries),
            'by_layer': by_layer,
            'by_event_type': by_type,
            'sequence_range': {
                'start': self._entries[0].sequence if self._entries else None,
                'end': self._entries[-1].sequence if self._entries else None,
            },
        }


__all__ = ['RewriteLog']
