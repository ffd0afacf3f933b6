"""
Rewrite History
===============

Append-only, cursor-addressed timeline of rewrite decisions, one per
(tracker, layer).

INVARIANTS:
- Entries are only appended; the only truncation is the one `insert`
  performs beyond the cursor (redo-discarding undo semantics)
- `revert` moves the cursor without dropping anything
- Confirming the current selection never grows history
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from ..matching import ALWAYS, Matcher


@dataclass
class TrackerChoices:
    """
    One rewrite event.

    Holds every candidate the rule offered, which one is selected, the
    environment precondition that held when the decision was taken,
    and provenance (rule index, justification).
    """
    choices: List[Any] = field(default_factory=list)
    reason: str = ""
    rule: int = -1
    environment: Matcher = ALWAYS
    current: int = 0

    def choose(self, idx: int) -> None:
        if not 0 <= idx < len(self.choices):
            raise IndexError(f"Choice {idx} out of range for {len(self.choices)} candidates")
        self.current = idx

    @property
    def current_choice(self) -> Any:
        return self.choices[self.current]


class TrackerHistory:
    """
    Timeline of TrackerChoices with a movable cursor.

    The cursor addresses the entry whose selection is the current value;
    -1 means the layer holds no value.
    """

    def __init__(self):
        self._entries: List[TrackerChoices] = []
        self._cursor = -1

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, idx: int) -> TrackerChoices:
        return self._entries[idx]

    @property
    def entries(self) -> Tuple[TrackerChoices, ...]:
        return tuple(self._entries)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current_entry(self) -> Optional[TrackerChoices]:
        if self._cursor < 0:
            return None
        return self._entries[self._cursor]

    def revert(self, idx: int) -> None:
        """Move the cursor. Later entries stay until the next insert."""
        if not -1 <= idx < len(self._entries):
            raise IndexError(f"Cannot revert to {idx}; history has {len(self._entries)} entries")
        self._cursor = idx

    def insert(self, *entries: TrackerChoices) -> None:
        """Discard everything beyond the cursor, append, move to the new end."""
        del self._entries[self._cursor + 1:]
        self._entries.extend(entries)
        self._cursor = len(self._entries) - 1

    def insert_one(
        self,
        choices: Sequence[Any],
        reason: str = "",
        rule: int = -1,
        environment: Matcher = ALWAYS,
        current: int = 0,
    ) -> TrackerChoices:
        entry = TrackerChoices(list(choices), reason, rule, environment, current)
        self.insert(entry)
        return entry

    def choose(self, idx: int) -> bool:
        """
        Select candidate `idx` of the entry at the cursor.

        Returns False when `idx` is already selected: the cursor advances
        past the entry (clamped to the last entry) and nothing changes.
        Otherwise the selection is mutated, forward history truncated and
        True returned; the caller must then insert the consequences.
        """
        entry = self.current_entry
        if entry is None:
            raise IndexError("No entry at the cursor to choose from")
        if idx == entry.current:
            self.revert(min(self._cursor + 1, len(self._entries) - 1))
            return False
        entry.choose(idx)
        self.insert()
        return True

    def choice_at(self, idx: int) -> Any:
        return self._entries[idx].current_choice

    def current_choice(self) -> Any:
        entry = self.current_entry
        return entry.current_choice if entry is not None else None
