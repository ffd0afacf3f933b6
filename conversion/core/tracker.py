"""
Trackers and Tracker Lists
==========================

A Tracker follows one segment through the layer pipeline. It owns one
TrackerHistory per layer (from its minimum layer up) and one memoized
relation cache per layer, and is linked to its siblings.

A TrackerList is the ordered sequence of trackers built from a word or
from one expansion candidate. An expansion's lists are held as the
choices of the expanding tracker's history entry, so the structure is a
graph: a list contains trackers, a tracker's current choice may be a
list. Trackers are addressed by stable arena ids; the dependency graph
never holds objects.

INVARIANTS:
- A list's head and tail are both set or both empty
- Relation caches are reused until the dependency graph drops them
- Advancing to layer+1 discards all history at layer+1 first
- Only active trackers are replayed; discarded expansion candidates
  are deactivated together with everything nested in them
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional
import logging

from ..contracts.base import (
    DependencyKind, InvariantViolation, RewriteAction, Segment, UnknownDependencyKind, Word,
)
from ..contracts.events import RewriteEventType
from ..contracts.rules import Rule
from ..observability import RewriteLog
from ..temporal.choice import WeightedChoiceSource
from ..temporal.history import TrackerHistory
from .cascade import Cascade
from .dependencies import DependencyGraph, NodeArena
from .environment import MISSING, Environment, Neighbor
from .registry import RuleRegistry

logger = logging.getLogger(__name__)

UNDERLYING_REASON = "Underlying."


@dataclass
class RunContext:
    """Shared, per-run collaborators of every tracker."""
    word: Word
    registry: RuleRegistry
    arena: NodeArena
    graph: DependencyGraph
    cascade: Cascade
    chooser: WeightedChoiceSource
    audit: RewriteLog

    @property
    def layer_count(self) -> int:
        return self.registry.layer_count


# =============================================================================
# TRACKER
# =============================================================================

class Tracker:
    """
    One segment followed through the layer pipeline.

    RESPONSIBILITIES:
    - Hold the per-layer histories, starting at `min_layer`
    - Resolve and memoize environment relations, recording each read
      in the dependency graph
    - Apply and replay rules, feeding value changes to the cascade

    Trackers are only replayed while `active`.
    """

    def __init__(self, segment: Segment, owner: TrackerList, context: RunContext, min_layer: int = 0):
        self.owner = owner
        self.context = context
        self.min_layer = min_layer
        self.node_prev: Optional[Tracker] = None
        self.node_next: Optional[Tracker] = None
        self.active = False
        self.history: Dict[int, TrackerHistory] = {
            layer: TrackerHistory() for layer in range(min_layer, context.layer_count)
        }
        self._cache: Dict[int, Dict[DependencyKind, Neighbor]] = {}
        self.node_id = context.arena.register(self)

        self.history[min_layer].insert_one([segment], reason=UNDERLYING_REASON)
        context.audit.record(
            RewriteEventType.UNDERLYING, self.node_id, min_layer,
            reason=UNDERLYING_REASON, value=segment.value,
        )

    def __repr__(self) -> str:
        return f"Tracker(node={self.node_id}, min_layer={self.min_layer}, active={self.active})"

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    @property
    def prev(self) -> Optional[Tracker]:
        """Backward sibling, or the enclosing sequence's one at the list edge."""
        if self.node_prev is not None:
            return self.node_prev
        return self.owner.prev

    @property
    def next(self) -> Optional[Tracker]:
        if self.node_next is not None:
            return self.node_next
        return self.owner.next

    def _step(self, backward: bool) -> Optional[Tracker]:
        return self.prev if backward else self.next

    # -------------------------------------------------------------------------
    # Values
    # -------------------------------------------------------------------------

    def history_at(self, layer: int) -> TrackerHistory:
        try:
            return self.history[layer]
        except KeyError:
            raise IndexError(
                f"Layer {layer} outside tracker range "
                f"[{self.min_layer}, {self.context.layer_count})"
            ) from None

    def value_at(self, layer: int) -> Any:
        """Current choice at `layer`: a Segment, a TrackerList or None."""
        history = self.history.get(layer)
        return history.current_choice() if history is not None else None

    def segment_at(self, layer: int) -> Optional[Segment]:
        value = self.value_at(layer)
        return value if isinstance(value, Segment) else None

    def expansion(self, layer: int) -> Optional[TrackerList]:
        """The nested list standing in for this tracker at `layer`, if any."""
        for current in range(layer, self.min_layer - 1, -1):
            value = self.value_at(current)
            if value is not None:
                return value if isinstance(value, TrackerList) else None
        return None

    # -------------------------------------------------------------------------
    # Dependency resolution
    # -------------------------------------------------------------------------

    def environment(self, layer: int) -> Environment:
        return Environment(self, layer)

    def dependency(self, layer: int, kind: Any) -> Neighbor:
        """Resolve a relation at `layer`, memoized until invalidated."""
        kind = DependencyKind.parse(kind)
        if not kind.is_relation:
            raise UnknownDependencyKind(kind.value)
        cache = self._cache.setdefault(layer, {})
        if kind not in cache:
            cache[kind] = self._resolve(layer, kind)
        return cache[kind]

    def _resolve(self, layer: int, kind: DependencyKind) -> Neighbor:
        wanted = kind.segment_filter
        neighbor = self._step(kind.backward)

        while neighbor is not None:
            self._depend_on(neighbor, layer, kind)

            nested = neighbor.expansion(layer)
            if nested is not None:
                edge = nested.tail if kind.backward else nested.head
                neighbor = edge if edge is not None else neighbor._step(kind.backward)
                continue

            if wanted is None:
                return Neighbor.of(neighbor, layer)
            segment = neighbor.segment_at(layer)
            if segment is not None and segment.type == wanted:
                return Neighbor.of(neighbor, layer)

            # skip through the neighbor's own link of the same kind
            result = neighbor.dependency(layer, kind)
            if result.node_id is not None:
                self._depend_on(self.context.arena[result.node_id], layer, kind)
            return result

        return MISSING

    def _depend_on(self, provider: Tracker, layer: int, kind: DependencyKind) -> None:
        self.context.graph.add(provider.node_id, self.node_id, layer, kind)

    def forget(self, layer: int, kinds: Optional[Iterable[DependencyKind]] = None) -> None:
        """Drop cached relations at `layer` (all of them when `kinds` is None)."""
        cache = self._cache.get(layer)
        if not cache:
            return
        if kinds is None:
            cache.clear()
            return
        for kind in kinds:
            cache.pop(kind, None)

    def forget_all(self) -> None:
        self._cache.clear()

    def detach(self) -> None:
        """Drop this tracker's dependency records and cached relations."""
        self.context.graph.detach(self.node_id, self.history)
        self.forget_all()

    def cached(self, layer: int) -> Dict[DependencyKind, Neighbor]:
        return dict(self._cache.get(layer, {}))

    # -------------------------------------------------------------------------
    # Rule application
    # -------------------------------------------------------------------------

    def apply_rules(self, layer: int, start: int = 0) -> None:
        """
        Scan rules of `layer` in registration order from rule index `start`.

        Transforms append to the layer and the scan goes on; a promote
        advances and restarts at rule 0 of the next layer; an expand
        advances and hands over to the selected sub-list. Ending a scan
        without advancing drops whatever this tracker held above `layer`.
        """
        registry = self.context.registry
        while True:
            if not isinstance(self.value_at(layer), Segment):
                return
            env = self.environment(layer)
            advanced = False
            for rule in registry.rules_for(layer):
                if rule.index < start:
                    continue
                segment = self.segment_at(layer)
                if not rule.fires(segment, env):
                    continue
                if rule.action is RewriteAction.TRANSFORM:
                    self._transform(layer, rule, segment)
                    continue
                if rule.action is RewriteAction.PROMOTE:
                    self._promote(layer, rule, segment)
                    advanced = True
                    break
                self._expand(layer, rule, segment)
                return
            if not advanced:
                self._drop_future(layer)
                return
            layer += 1
            start = 0

    def _draw(self, rule: Rule) -> int:
        return self.context.chooser.choose(rule.weights)

    def _transform(self, layer: int, rule: Rule, segment: Segment) -> None:
        selected = self._draw(rule)
        choices = [outcome.realize(segment) for outcome in rule.outcomes]
        self.history[layer].insert_one(choices, rule.reason, rule.index, rule.where, selected)
        logger.debug("Node %d layer %d: rule %d transforms to %r",
                     self.node_id, layer, rule.index, choices[selected].value)
        self.context.audit.record(
            RewriteEventType.TRANSFORM, self.node_id, layer, rule.index, rule.reason,
            value=choices[selected].value,
        )
        self.context.cascade.changed(self, layer)

    def _promote(self, layer: int, rule: Rule, segment: Segment) -> None:
        selected = self._draw(rule)
        choices = [outcome.realize(segment) for outcome in rule.outcomes]
        self._advance(layer, rule, choices, selected)
        logger.debug("Node %d layer %d: rule %d promotes %r",
                     self.node_id, layer, rule.index, choices[selected].value)
        self.context.audit.record(
            RewriteEventType.PROMOTE, self.node_id, layer + 1, rule.index, rule.reason,
            value=choices[selected].value,
        )
        self.context.cascade.changed(self, layer + 1, deep=True)

    def _expand(self, layer: int, rule: Rule, segment: Segment) -> None:
        selected = self._draw(rule)
        lists = [
            TrackerList(outcome.realize_sequence(segment), self.context, layer + 1, parent=self)
            for outcome in rule.outcomes
        ]
        self._advance(layer, rule, lists, selected)
        self._drop_future(layer + 1)
        logger.debug("Node %d layer %d: rule %d expands into %d segments",
                     self.node_id, layer, rule.index, len(lists[selected]))
        self.context.audit.record(
            RewriteEventType.EXPAND, self.node_id, layer + 1, rule.index, rule.reason,
            arity=len(lists[selected]),
        )
        self.context.cascade.changed(self, layer + 1, deep=True)
        lists[selected].activate()

    def _advance(self, layer: int, rule: Rule, choices: List[Any], selected: int) -> None:
        target = self.history[layer + 1]
        self._release(layer + 1)
        target.revert(-1)
        target.insert_one(choices, rule.reason, rule.index, rule.where, selected)

    def _release(self, layer: int) -> None:
        value = self.value_at(layer)
        if isinstance(value, TrackerList):
            value.deactivate()

    def _drop_future(self, layer: int) -> None:
        """Revert every layer above `layer` to "no value". Entries are kept."""
        dropped = []
        for current in range(layer + 1, self.context.layer_count):
            history = self.history[current]
            if history.cursor >= 0:
                self._release(current)
                history.revert(-1)
                dropped.append(current)
        if not dropped:
            return
        self.context.audit.record(
            RewriteEventType.DROP, self.node_id, dropped[0],
            layers=",".join(str(current) for current in dropped),
        )
        self.context.cascade.changed(self, dropped[0], deep=True)

    def _first_firing(self, layer: int, start: int) -> Optional[Rule]:
        segment = self.segment_at(layer)
        env = self.environment(layer)
        for rule in self.context.registry.rules_for(layer):
            if rule.index >= start and rule.fires(segment, env):
                return rule
        return None

    def _advanced_by(self, layer: int) -> Optional[int]:
        history = self.history.get(layer + 1)
        if history is None or history.cursor < 0:
            return None
        return history[0].rule

    def reapply_rules(self, layer: int) -> None:
        """
        Replay `layer` after an invalidation.

        History is rewound to the last entry whose recorded environment
        precondition still holds against the fresh environment; rule
        application resumes right after the rule that produced it.
        """
        if not isinstance(self.value_at(layer), Segment):
            return
        history = self.history[layer]
        env = self.environment(layer)

        keep = 0
        for idx in range(1, history.cursor + 1):
            if not history[idx].environment.matches(env):
                break
            keep = idx
        start = 0 if keep == 0 else history[keep].rule + 1

        if keep == history.cursor:
            rule = self._first_firing(layer, start)
            advanced_by = self._advanced_by(layer)
            if rule is None and advanced_by is None:
                return
            if rule is not None and rule.index == advanced_by:
                return
        else:
            history.revert(keep)
            self.context.audit.record(
                RewriteEventType.REVERT, self.node_id, layer, history[keep].rule, entry=keep,
            )
            self.context.cascade.changed(self, layer)

        logger.debug("Node %d layer %d: replaying from rule %d", self.node_id, layer, start)
        self.apply_rules(layer, start)

    def resume(self) -> None:
        """(Re)start this tracker from its seed, e.g. when its list is activated."""
        self.forget_all()
        self.history[self.min_layer].revert(0)
        self.apply_rules(self.min_layer)

    # -------------------------------------------------------------------------
    # Choice editing
    # -------------------------------------------------------------------------

    def update_choice(self, layer: int, entry_idx: int, choice_idx: int) -> bool:
        """
        Select candidate `choice_idx` of history entry `entry_idx`.

        Returns False when that candidate is already selected (the cursor
        is left where it was). Otherwise forward history is discarded and
        the consequences are recomputed; the caller drains the cascade.
        """
        history = self.history_at(layer)
        if not 0 <= entry_idx < len(history):
            raise IndexError(f"Entry {entry_idx} out of range for {len(history)} entries at layer {layer}")
        entry = history[entry_idx]
        if not 0 <= choice_idx < len(entry.choices):
            raise IndexError(f"Choice {choice_idx} out of range for {len(entry.choices)} candidates")

        cursor = history.cursor
        previous = self.value_at(layer)
        history.revert(entry_idx)
        if not history.choose(choice_idx):
            history.revert(cursor)
            return False

        self.context.audit.record(
            RewriteEventType.CHOICE_EDIT, self.node_id, layer, entry.rule, entry.reason,
            entry=entry_idx, choice=choice_idx,
        )
        value = self.value_at(layer)
        if isinstance(previous, TrackerList) and previous is not value:
            previous.deactivate()

        if isinstance(value, TrackerList):
            self._drop_future(layer)
            self.context.cascade.changed(self, layer, deep=True)
            value.activate()
        else:
            self.context.cascade.changed(self, layer, deep=True)
            self.apply_rules(layer, 0 if entry_idx == 0 else entry.rule + 1)
        return True

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def collect_into(self, layer: int, out: List[Any]) -> None:
        nested = self.expansion(layer)
        if nested is not None:
            nested.collect_into(layer, out)
            return
        segment = self.segment_at(layer)
        out.append(segment.value if segment is not None else None)

    def nested_lists(self) -> Iterator[TrackerList]:
        """Lists currently selected at any layer of this tracker."""
        for layer in self.history:
            value = self.value_at(layer)
            if isinstance(value, TrackerList):
                yield value


# =============================================================================
# TRACKER LIST
# =============================================================================

class TrackerList:
    """
    Ordered trackers of a word or an expansion candidate.

    `head` and `tail` are effective ends: they follow sibling links
    outward, so trackers inserted at either edge are picked up.
    """

    def __init__(
        self,
        segments: Iterable[Segment],
        context: RunContext,
        min_layer: int = 0,
        parent: Optional[Tracker] = None,
    ):
        self.context = context
        self.min_layer = min_layer
        self.parent = parent
        self._head: Optional[Tracker] = None
        self._tail: Optional[Tracker] = None

        previous: Optional[Tracker] = None
        for segment in segments:
            tracker = Tracker(segment, self, context, min_layer)
            if previous is None:
                self._head = tracker
            else:
                previous.node_next = tracker
                tracker.node_prev = previous
            previous = tracker
        self._tail = previous

    def _check_ends(self) -> None:
        if (self._head is None) != (self._tail is None):
            raise InvariantViolation(
                f"Tracker list has exactly one empty end (head={self._head}, tail={self._tail})"
            )

    @property
    def is_empty(self) -> bool:
        self._check_ends()
        return self._head is None

    @property
    def head(self) -> Optional[Tracker]:
        self._check_ends()
        node = self._head
        if node is None:
            return None
        while node.node_prev is not None:
            node = node.node_prev
        return node

    @property
    def tail(self) -> Optional[Tracker]:
        self._check_ends()
        node = self._tail
        if node is None:
            return None
        while node.node_next is not None:
            node = node.node_next
        return node

    @property
    def prev(self) -> Optional[Tracker]:
        return self.parent.prev if self.parent is not None else None

    @property
    def next(self) -> Optional[Tracker]:
        return self.parent.next if self.parent is not None else None

    def __iter__(self) -> Iterator[Tracker]:
        node = self.head
        while node is not None:
            yield node
            node = node.node_next

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __repr__(self) -> str:
        return f"TrackerList(size={len(self)}, min_layer={self.min_layer})"

    def walk(self) -> Iterator[Tracker]:
        """Depth-first: every tracker, then the lists it currently holds."""
        for tracker in self:
            yield tracker
            for nested in tracker.nested_lists():
                yield from nested.walk()

    def activate(self) -> None:
        for tracker in self:
            tracker.active = True
        for tracker in self:
            tracker.resume()

    def deactivate(self) -> None:
        for tracker in self:
            tracker.active = False
            tracker.detach()
            for nested in tracker.nested_lists():
                nested.deactivate()

    def insert_after(self, anchor: Tracker, segment: Segment) -> Tracker:
        self._check_anchor(anchor)
        tracker = Tracker(segment, self, self.context, self.min_layer)
        tracker.node_prev = anchor
        tracker.node_next = anchor.node_next
        if anchor.node_next is not None:
            anchor.node_next.node_prev = tracker
        anchor.node_next = tracker
        tracker.active = anchor.active
        return tracker

    def insert_before(self, anchor: Tracker, segment: Segment) -> Tracker:
        self._check_anchor(anchor)
        tracker = Tracker(segment, self, self.context, self.min_layer)
        tracker.node_next = anchor
        tracker.node_prev = anchor.node_prev
        if anchor.node_prev is not None:
            anchor.node_prev.node_next = tracker
        anchor.node_prev = tracker
        tracker.active = anchor.active
        return tracker

    def _check_anchor(self, anchor: Tracker) -> None:
        if anchor.owner is not self:
            raise InvariantViolation(f"{anchor!r} does not belong to {self!r}")

    def collect_into(self, layer: int, out: List[Any]) -> None:
        for tracker in self:
            tracker.collect_into(layer, out)
