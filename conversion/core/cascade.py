"""
Invalidation Cascade
====================

Work queue of (tracker, layer) reapplications.

A tracker whose value changes at a layer calls `changed`; the
dependency graph drops every cache that resolved through it and the
affected dependents are queued in the order they were reached. `drain`
replays them until the queue is empty (fixpoint).

INVARIANTS:
- A (tracker, layer) pair is queued at most once at a time
- Draining is not reentrant; replays that change values extend the
  queue instead of recursing
- Inactive trackers are skipped: discarded expansion alternatives, and
  top-level trackers whose first turn in `init` has not come yet
"""

from __future__ import annotations
from collections import deque
from typing import TYPE_CHECKING, Deque, Set, Tuple
import logging

from ..contracts.base import CascadeLimitExceeded
from .dependencies import DependencyGraph, NodeArena

if TYPE_CHECKING:
    from .tracker import Tracker

logger = logging.getLogger(__name__)


class Cascade:

    def __init__(self, arena: NodeArena, graph: DependencyGraph, layer_count: int, max_steps: int):
        self._arena = arena
        self._graph = graph
        self._layer_count = layer_count
        self._max_steps = max_steps
        self._queue: Deque[Tuple[int, int]] = deque()
        self._queued: Set[Tuple[int, int]] = set()
        self._draining = False
        self.steps = 0  # total replays across drains

    def changed(self, tracker: Tracker, layer: int, deep: bool = False) -> None:
        """
        Invalidate dependents of `tracker` at `layer`.

        With `deep`, every higher layer is invalidated as well (the value
        at `layer` is, or replaced, a nested list standing in for the
        tracker at all later layers).
        """
        last = self._layer_count if deep else layer + 1
        for current in range(layer, last):
            for dependent_id in self._graph.invalidate(tracker.node_id, current):
                self.schedule(dependent_id, current)

    def schedule(self, node_id: int, layer: int) -> None:
        key = (node_id, layer)
        if key in self._queued:
            return
        self._queued.add(key)
        self._queue.append(key)

    def drain(self) -> int:
        """Replay queued dependents until fixpoint. Returns replays run."""
        if self._draining:
            return 0
        self._draining = True
        replays = 0
        try:
            while self._queue:
                key = self._queue.popleft()
                self._queued.discard(key)
                node_id, layer = key
                tracker = self._arena[node_id]
                if not tracker.active:
                    continue
                replays += 1
                self.steps += 1
                if replays > self._max_steps:
                    self._queue.clear()
                    self._queued.clear()
                    raise CascadeLimitExceeded(
                        f"No fixpoint after {self._max_steps} replays "
                        f"(last: node {node_id}, layer {layer})"
                    )
                tracker.reapply_rules(layer)
        finally:
            self._draining = False
        if replays:
            logger.debug("Cascade drained after %d replays", replays)
        return replays
