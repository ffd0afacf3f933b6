"""
Rewrite Event Contracts

Immutable records of the decisions the engine takes. The audit layer
collects them; nothing reads them back to make decisions.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class RewriteEventType(Enum):
    """Explicit rewrite event types."""
    UNDERLYING = "underlying"    # seed entry of a tracker
    TRANSFORM = "transform"
    PROMOTE = "promote"
    EXPAND = "expand"
    REVERT = "revert"            # history rewound during replay
    CHOICE_EDIT = "choice_edit"  # explicit update_choice
    DROP = "drop"                # future layers discarded


@dataclass(frozen=True)
class RewriteAuditEntry:
    """
    Immutable audit entry.

    Sequence numbers replace wall-clock timestamps so that two runs
    with the same draws produce identical trails.
    """
    sequence: int
    event_type: RewriteEventType
    node_id: int
    layer: int
    rule_index: int = -1
    reason: str = ""
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def get(self, key: str) -> Optional[str]:
        for name, value in self.metadata:
            if name == key:
                return value
        return None
