"""
Dependency Environment
======================

Per-tracker, per-layer projection handed to environment preconditions.

Relations (next, prev and their consonant/vowel-filtered variants) are
resolved lazily through the tracker's memoized dependency links; the
constants `type`, `word` and `context` are read directly.

A resolved relation is a Neighbor. Its `deps` is the neighbor's own
environment, so a pattern can look further away:

    {"prev": {"deps": {"prev": {"type": "vowel"}}}}

Reads made through `deps` are attributed to the tracker that started
the lookup, which is then replayed when anything along the path changes.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Mapping, Optional

from ..contracts.base import DependencyKind, Segment

if TYPE_CHECKING:
    from .tracker import Tracker


@dataclass(frozen=True)
class Neighbor:
    """
    Resolved relation.

    exists=False is the explicit "does not exist" marker (sequence
    boundary). pending=True means the neighbor exists but has no value
    at the queried layer yet.
    """
    exists: bool
    pending: bool = False
    type: Any = None
    features: Mapping[str, Any] = field(default=None, compare=False)
    value: Any = None
    segment: Optional[Segment] = field(default=None, compare=False, repr=False)
    deps: Optional[Environment] = field(default=None, compare=False, repr=False)
    node_id: Optional[int] = None

    @staticmethod
    def of(tracker: Tracker, layer: int) -> Neighbor:
        deps = Environment(tracker, layer)
        segment = tracker.segment_at(layer)
        if segment is None:
            return Neighbor(exists=True, pending=True, deps=deps, node_id=tracker.node_id)
        return Neighbor(
            exists=True,
            type=segment.type,
            features=segment.features,
            value=segment.value,
            segment=segment,
            deps=deps,
            node_id=tracker.node_id,
        )

    def seen_by(self, reader: Tracker) -> Neighbor:
        if self.deps is None:
            return self
        return replace(self, deps=self.deps.for_reader(reader))

    def __bool__(self) -> bool:
        return self.exists


MISSING = Neighbor(exists=False)


class Environment:
    """
    Live environment of `tracker` at `layer`.

    `reader` is the tracker on whose behalf relations are resolved; it
    defaults to the owner.
    """

    def __init__(self, tracker: Tracker, layer: int, reader: Optional[Tracker] = None):
        self.tracker = tracker
        self.layer = layer
        self.reader = reader if reader is not None else tracker

    def for_reader(self, reader: Tracker) -> Environment:
        return Environment(self.tracker, self.layer, reader)

    def lookup(self, key: Any) -> Any:
        kind = DependencyKind.parse(key)
        if kind is DependencyKind.TYPE:
            segment = self.tracker.segment_at(self.layer)
            return segment.type if segment is not None else None
        if kind is DependencyKind.WORD:
            return self.tracker.context.word.metadata
        if kind is DependencyKind.CONTEXT:
            return self.tracker.context.word.context

        result = self.tracker.dependency(self.layer, kind)
        if self.reader is self.tracker:
            return result.seen_by(self.reader)

        graph = self.tracker.context.graph
        graph.add(self.tracker.node_id, self.reader.node_id, self.layer, kind)
        if result.node_id is not None:
            graph.add(result.node_id, self.reader.node_id, self.layer, kind)
        return result.seen_by(self.reader)

    def __getitem__(self, key: Any) -> Any:
        return self.lookup(key)

    def __repr__(self) -> str:
        return f"Environment(node={self.tracker.node_id}, layer={self.layer})"
