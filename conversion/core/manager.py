"""
Word Manager
============

Binds the rule registry and the layer ordering to the tracker list of
one word, and drives the cascade.

LIFECYCLE:
1. BUILD: `add_rule` appends rules (registration order = priority)
2. RUN: `init()` freezes the registry, builds trackers and runs rule
   application at layer 0 left to right, draining the invalidation
   queue after every tracker. It may be called again; each call starts
   from the frozen word and registry with a rewound choice source.
3. QUERY / EDIT: `collect`, `update_choice`, `insert_segment`
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple
import logging

from ..contracts.base import EngineError, Segment, Word
from ..contracts.rules import Rule
from ..observability import RewriteLog
from ..temporal.choice import WeightedChoiceSource
from .cascade import Cascade
from .dependencies import DependencyGraph, NodeArena
from .registry import RuleRegistry
from .tracker import RunContext, Tracker, TrackerList

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Configuration for the conversion engine."""
    random_seed: int = 42
    max_cascade_steps: int = 100_000
    enable_audit: bool = True


class WordManager:

    def __init__(
        self,
        word: Word,
        layer_names: Sequence[str],
        config: Optional[EngineConfig] = None,
        chooser: Optional[WeightedChoiceSource] = None,
    ):
        self._config = config or EngineConfig()
        self.word = word
        self.registry = RuleRegistry(layer_names)
        self.chooser = chooser or WeightedChoiceSource.live(self._config.random_seed)
        self.audit = RewriteLog(enabled=self._config.enable_audit)
        self._context: Optional[RunContext] = None
        self._trackers: Optional[TrackerList] = None

    # -------------------------------------------------------------------------
    # Layers and rules
    # -------------------------------------------------------------------------

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def layer_names(self) -> Tuple[str, ...]:
        return self.registry.layer_names

    def layer_index(self, layer: Any) -> int:
        return self.registry.layer_index(layer)

    def add_rule(self, config: Any) -> Rule:
        return self.registry.add(config)

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def init(self) -> None:
        self.registry.freeze()
        self.chooser.reset()
        self.audit.clear()

        arena = NodeArena()
        graph = DependencyGraph(arena)
        cascade = Cascade(arena, graph, self.registry.layer_count, self._config.max_cascade_steps)
        self._context = RunContext(
            word=self.word,
            registry=self.registry,
            arena=arena,
            graph=graph,
            cascade=cascade,
            chooser=self.chooser,
            audit=self.audit,
        )
        self._trackers = TrackerList(self.word.segments, self._context)

        # trackers right of the current one stay inactive until their turn
        trackers = list(self._trackers)
        for tracker in trackers:
            tracker.active = True
            tracker.apply_rules(0)
            cascade.drain()

        logger.info(
            "Initialized %d segments over %d layers: %d draws, %d replays",
            len(trackers), self.registry.layer_count, self.chooser.draw_count(), cascade.steps,
        )

    @property
    def initialized(self) -> bool:
        return self._trackers is not None

    @property
    def trackers(self) -> TrackerList:
        """Top-level tracker list of the current run."""
        if self._trackers is None:
            raise EngineError("The engine has not been initialized; call init() first")
        return self._trackers

    @property
    def context(self) -> RunContext:
        if self._context is None:
            raise EngineError("The engine has not been initialized; call init() first")
        return self._context

    def walk(self) -> List[Tracker]:
        """Every live tracker, nested ones included, in sequence order."""
        return list(self.trackers.walk())

    def collect(self, layer: Any) -> List[Any]:
        """Flattened values at `layer` (by name or rank); None where a tracker has none."""
        rank = self.layer_index(layer)
        out: List[Any] = []
        self.trackers.collect_into(rank, out)
        return out

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    def update_choice(self, tracker: Tracker, layer: Any, entry_idx: int, choice_idx: int) -> bool:
        """Select another candidate of a recorded decision and recompute."""
        rank = self.layer_index(layer)
        changed = tracker.update_choice(rank, entry_idx, choice_idx)
        if changed:
            self.context.cascade.drain()
            logger.debug("Choice edit on node %d layer %d drained", tracker.node_id, rank)
        return changed

    def insert_segment(self, anchor: Tracker, segment: Any, before: bool = False) -> Tracker:
        """
        Link a new tracker next to `anchor` inside the anchor's list.

        Both trackers around the gap drop every relation cache, their
        dependents are invalidated, and the new tracker runs rule
        application from the list's minimum layer.
        """
        context = self.context
        owner = anchor.owner
        if before:
            gap = (anchor.prev, anchor)
            tracker = owner.insert_before(anchor, Segment.from_template(segment))
        else:
            gap = (anchor, anchor.next)
            tracker = owner.insert_after(anchor, Segment.from_template(segment))

        for neighbor in gap:
            if neighbor is None:
                continue
            neighbor.forget_all()
            for layer in range(neighbor.min_layer, context.layer_count):
                for dependent_id in context.graph.invalidate(neighbor.node_id, layer):
                    context.cascade.schedule(dependent_id, layer)
                if neighbor.segment_at(layer) is not None:
                    context.cascade.schedule(neighbor.node_id, layer)

        if tracker.active:
            tracker.apply_rules(tracker.min_layer)
        context.cascade.drain()
        logger.debug("Inserted node %d next to node %d", tracker.node_id, anchor.node_id)
        return tracker

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def dependents_of(self, tracker: Tracker, layer: Any) -> List[Tracker]:
        """Trackers that resolved a relation through `tracker` at `layer`."""
        rank = self.layer_index(layer)
        context = self.context
        return [context.arena[node_id] for node_id, _ in context.graph.dependents(tracker.node_id, rank)]
