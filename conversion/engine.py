"""
Engine Orchestration Module

Public surface of the conversion engine.

DESIGN PRINCIPLES:
==================
1. Callers meet the engine through `construct` and ConversionEngine
2. The word is ingested (copied and frozen) once, at construction
3. Rules are registered before `init()`; afterwards the registry is
   read-only
4. Every decision is traceable through the rewrite audit log
"""

from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
import logging

from .capture import Capture
from .contracts.base import ConfigurationError, Word, ingest
from .contracts.rules import Rule
from .core.manager import EngineConfig, WordManager
from .core.tracker import Tracker
from .observability import RewriteLog
from .temporal.choice import WeightedChoiceSource

logger = logging.getLogger(__name__)

LayerSpec = Union[Sequence[str], Mapping[str, Any]]


class ConversionEngine:
    """
    One word, one ordered pipeline of layers.

    `layers` is either a sequence of layer names or an ordered mapping of
    layer name to alphabet (vocabulary object, kept opaque). Each layer
    gets a Capture in `capture`.
    """

    def __init__(
        self,
        word: Any,
        layers: LayerSpec,
        config: Optional[EngineConfig] = None,
        chooser: Optional[WeightedChoiceSource] = None,
    ):
        if isinstance(layers, str):
            raise ConfigurationError("Layers must be a sequence or mapping of names, not a string")
        if isinstance(layers, Mapping):
            self.alphabets: Dict[str, Any] = dict(layers)
        else:
            self.alphabets = {name: None for name in layers}
            if len(self.alphabets) != len(layers):
                raise ConfigurationError(f"Duplicate layer names in {list(layers)!r}")

        self.word: Word = ingest(word)
        self.manager = WordManager(self.word, list(self.alphabets), config=config, chooser=chooser)
        self.capture: Dict[str, Capture] = {
            name: Capture(name, self.manager, alphabet)
            for name, alphabet in self.alphabets.items()
        }
        logger.debug("Constructed engine for %d segments over layers %s",
                     len(self.word.segments), list(self.alphabets))

    @property
    def config(self) -> EngineConfig:
        return self.manager.config

    @property
    def audit(self) -> RewriteLog:
        return self.manager.audit

    @property
    def layer_names(self):
        return self.manager.layer_names

    def add_rule(self, config: Any) -> Rule:
        return self.manager.add_rule(config)

    def init(self) -> None:
        self.manager.init()

    def collect(self, layer: Any) -> List[Any]:
        return self.manager.collect(layer)

    def update_choice(self, tracker: Tracker, layer: Any, entry_idx: int, choice_idx: int) -> bool:
        return self.manager.update_choice(tracker, layer, entry_idx, choice_idx)

    def insert_segment(self, anchor: Tracker, segment: Any, before: bool = False) -> Tracker:
        return self.manager.insert_segment(anchor, segment, before=before)

    @property
    def trackers(self) -> List[Tracker]:
        return list(self.manager.trackers)


def construct(
    word: Any,
    layers: LayerSpec,
    config: Optional[EngineConfig] = None,
    chooser: Optional[WeightedChoiceSource] = None,
) -> ConversionEngine:
    """Create an engine for `word` over the ordered `layers`."""
    return ConversionEngine(word, layers, config=config, chooser=chooser)
