"""
Rule Registry
=============

Ordered, two-phase rule collection.

LIFECYCLE:
- BUILD: rules are appended; registration order is priority
- RUN: `freeze()` makes the registry read-only; further registration
  raises RegistryFrozen
"""

from __future__ import annotations
from typing import Any, Dict, Iterator, List, Sequence, Tuple
import logging

from ..contracts.base import ConfigurationError, RegistryFrozen
from ..contracts.rules import Rule, RuleConfig, normalize_rule

logger = logging.getLogger(__name__)


class RuleRegistry:

    def __init__(self, layer_names: Sequence[str]):
        names = list(layer_names)
        if not names:
            raise ConfigurationError("At least one layer is required")
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate layer names in {names!r}")
        self._layer_names: Tuple[str, ...] = tuple(names)
        self._ranks: Dict[str, int] = {name: rank for rank, name in enumerate(names)}
        self._rules: List[Rule] = []
        self._by_layer: Dict[int, List[Rule]] = {rank: [] for rank in range(len(names))}
        self._frozen = False

    @property
    def layer_names(self) -> Tuple[str, ...]:
        return self._layer_names

    @property
    def layer_count(self) -> int:
        return len(self._layer_names)

    def layer_index(self, layer: Any) -> int:
        """Resolve a layer name (or an in-range rank) to its rank."""
        if isinstance(layer, int) and not isinstance(layer, bool):
            if 0 <= layer < len(self._layer_names):
                return layer
            raise ConfigurationError(f"Layer rank {layer} out of range")
        try:
            return self._ranks[layer]
        except (KeyError, TypeError):
            raise ConfigurationError(
                f"Unknown layer {layer!r}; known layers: {list(self._layer_names)}"
            ) from None

    def add(self, config: Any) -> Rule:
        """Validate, normalize and append a rule. Returns the stored Rule."""
        if self._frozen:
            raise RegistryFrozen("Rules cannot be added once the engine has been initialized")
        config = RuleConfig.coerce(config)
        layer = self.layer_index(config.layer)
        rule = normalize_rule(config, len(self._rules), layer, self.layer_count)
        self._rules.append(rule)
        self._by_layer[layer].append(rule)
        logger.debug("Registered rule %d (%s) on layer %r", rule.index, rule.action.value, config.layer)
        return rule

    def freeze(self) -> None:
        if not self._frozen:
            self._frozen = True
            logger.info("Rule registry frozen with %d rules", len(self._rules))

    @property
    def frozen(self) -> bool:
        return self._frozen

    def rules_for(self, layer: int) -> Tuple[Rule, ...]:
        return tuple(self._by_layer[layer])

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __getitem__(self, index: int) -> Rule:
        return self._rules[index]
