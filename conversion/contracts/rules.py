"""
Rule Contracts
==============

Rule configuration as supplied by rule packs, and the canonical rule
representation the engine runs on.

TYPES:
- RuleConfig is the external shape (validated with pydantic); outcomes
  may be a list (uniform or explicit weights) or a candidate -> weight
  mapping
- Rule is the normalized, immutable form; the list/mapping ambiguity
  never reaches the hot path
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from ..matching import Matcher, match
from .base import ConfigurationError, RewriteAction, Segment


# =============================================================================
# EXTERNAL CONFIGURATION
# =============================================================================

class RuleConfig(BaseModel):
    """
    One rule as authored in a rule pack.

    `trigger` and `where` are patterns for the matcher collaborator;
    `reason` is the justification recorded with every decision.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    layer: str
    trigger: Any = None
    action: RewriteAction
    outcomes: Any
    where: Any = None
    weights: Optional[List[float]] = None
    reason: str = ""

    @field_validator("outcomes")
    @classmethod
    def check_outcomes_shape(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            if not value:
                raise ValueError("outcome mapping must not be empty")
            for weight in value.values():
                if not isinstance(weight, (int, float)) or isinstance(weight, bool):
                    raise ValueError(f"outcome weight must be a number, got {weight!r}")
            return value
        if isinstance(value, (list, tuple)):
            if not value:
                raise ValueError("outcome list must not be empty")
            return list(value)
        raise ValueError("outcomes must be a list or a mapping of candidate to weight")

    @model_validator(mode="after")
    def check_weights_consistent(self) -> RuleConfig:
        if self.weights is None:
            return self
        if isinstance(self.outcomes, Mapping):
            raise ValueError("weights may only accompany a list of outcomes")
        if len(self.weights) != len(self.outcomes):
            raise ValueError(
                f"{len(self.weights)} weights given for {len(self.outcomes)} outcomes"
            )
        return self

    @classmethod
    def coerce(cls, config: Any) -> RuleConfig:
        """Accept a RuleConfig or a plain mapping; wrap validation errors."""
        if isinstance(config, RuleConfig):
            return config
        try:
            return cls.model_validate(config)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid rule configuration: {exc}") from exc


# =============================================================================
# CANONICAL FORM
# =============================================================================

@dataclass(frozen=True)
class Outcome:
    """
    A candidate rewrite result and its relative selection weight.

    For expansions `candidate` is a tuple of items, each realized into
    one segment of the sub-sequence.
    """
    candidate: Any
    weight: float

    def realize(self, current: Segment) -> Segment:
        return Segment.from_template(self.candidate, default=current)

    def realize_sequence(self, current: Segment) -> List[Segment]:
        return [Segment.from_template(item, default=current) for item in self.candidate]


@dataclass(frozen=True)
class Rule:
    """
    Immutable, registered rule.

    `index` is the registration position and therefore the priority.
    """
    index: int
    layer: int
    trigger: Matcher
    where: Matcher
    action: RewriteAction
    outcomes: Tuple[Outcome, ...]
    reason: str

    @property
    def weights(self) -> Tuple[float, ...]:
        return tuple(o.weight for o in self.outcomes)

    def fires(self, segment: Any, environment: Any) -> bool:
        return self.trigger.matches(segment) and self.where.matches(environment)


def _as_sequence(candidate: Any) -> Tuple[Any, ...]:
    if isinstance(candidate, (str, bytes, Mapping, Segment)):
        return (candidate,)
    if isinstance(candidate, Sequence):
        return tuple(candidate)
    return (candidate,)


def _pairs(config: RuleConfig) -> List[Tuple[Any, float]]:
    if isinstance(config.outcomes, Mapping):
        return [(candidate, float(weight)) for candidate, weight in config.outcomes.items()]
    weights = config.weights or [1.0] * len(config.outcomes)
    return [(candidate, float(weight)) for candidate, weight in zip(config.outcomes, weights)]


def normalize_rule(config: RuleConfig, index: int, layer: int, layer_count: int) -> Rule:
    """
    Normalize a validated configuration into a Rule.

    Raises ConfigurationError for weights that cannot be drawn from and
    for advancing rules bound to the final layer.
    """
    if config.action.advances and layer >= layer_count - 1:
        raise ConfigurationError(
            f"Rule {index} ({config.action.value}) cannot advance past final layer {config.layer!r}"
        )

    pairs = _pairs(config)
    if any(weight < 0 for _, weight in pairs):
        raise ConfigurationError(f"Rule {index} has a negative outcome weight")
    if sum(weight for _, weight in pairs) <= 0:
        raise ConfigurationError(f"Rule {index} has no outcome with positive weight")

    if config.action is RewriteAction.EXPAND:
        outcomes = tuple(Outcome(_as_sequence(candidate), weight) for candidate, weight in pairs)
    else:
        outcomes = tuple(Outcome(candidate, weight) for candidate, weight in pairs)

    return Rule(
        index=index,
        layer=layer,
        trigger=match(config.trigger),
        where=match(config.where),
        action=config.action,
        outcomes=outcomes,
        reason=config.reason,
    )
