"""
Rule-Definition Front End
=========================

Thin builders that bind a segment-shape pattern to one layer:

    engine.capture["phonic"].vowel({"value": "a"}).transform(
        into=["e"], where={"prev": {"type": "consonant"}}, because="fronting",
    )

A Capture holds no state of its own beyond the layer it targets; every
verb packages a RuleConfig and forwards it to the manager.
"""

from __future__ import annotations
from typing import Any, Dict, Mapping, Optional, Sequence

from .contracts.base import RewriteAction, SegmentType
from .contracts.rules import RuleConfig
from .matching import all_of


def merge_patterns(*patterns: Any) -> Any:
    """
    Combine trigger patterns.

    Mapping patterns are merged key by key (recursively); as soon as a
    non-mapping pattern is involved the patterns are conjoined instead.
    """
    present = [p for p in patterns if p is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    if all(isinstance(p, Mapping) for p in present):
        merged: Dict[Any, Any] = {}
        for pattern in present:
            for key, sub in pattern.items():
                merged[key] = merge_patterns(merged[key], sub) if key in merged else sub
        return merged
    return all_of(*present)


class CaptureApplier:
    """Registers rules for one captured segment shape; verbs chain."""

    def __init__(self, layer: str, manager: Any, captured: Any):
        self.layer = layer
        self.manager = manager
        self.captured = captured

    def apply(
        self,
        action: RewriteAction,
        into: Any,
        where: Any = None,
        because: str = "",
        weights: Optional[Sequence[float]] = None,
    ) -> CaptureApplier:
        config = RuleConfig.coerce({
            "layer": self.layer,
            "trigger": self.captured,
            "action": action,
            "outcomes": into,
            "where": where,
            "weights": list(weights) if weights is not None else None,
            "reason": because,
        })
        self.manager.add_rule(config)
        return self

    def transform(self, into: Any, where: Any = None, because: str = "", weights=None) -> CaptureApplier:
        return self.apply(RewriteAction.TRANSFORM, into, where, because, weights)

    def promote(self, into: Any, where: Any = None, because: str = "", weights=None) -> CaptureApplier:
        return self.apply(RewriteAction.PROMOTE, into, where, because, weights)

    def expand(self, into: Any, where: Any = None, because: str = "", weights=None) -> CaptureApplier:
        return self.apply(RewriteAction.EXPAND, into, where, because, weights)


class Capture:
    """Pattern builder for one layer."""

    def __init__(self, layer: str, manager: Any, alphabet: Any = None):
        self.layer = layer
        self.manager = manager
        self.alphabet = alphabet

    def segment(self, *patterns: Any, **features: Any) -> CaptureApplier:
        if features:
            patterns = patterns + ({"features": features},)
        return CaptureApplier(self.layer, self.manager, merge_patterns(*patterns))

    def segment_of_type(self, type: Any, *patterns: Any, **features: Any) -> CaptureApplier:
        return self.segment({"type": type}, *patterns, **features)

    def consonant(self, *patterns: Any, **features: Any) -> CaptureApplier:
        return self.segment_of_type(SegmentType.CONSONANT, *patterns, **features)

    def vowel(self, *patterns: Any, **features: Any) -> CaptureApplier:
        return self.segment_of_type(SegmentType.VOWEL, *patterns, **features)

    def epenthetic(self, *patterns: Any, **features: Any) -> CaptureApplier:
        return self.segment_of_type(SegmentType.EPENTHETIC, *patterns, **features)

    def suffix(self, *patterns: Any, **features: Any) -> CaptureApplier:
        return self.segment_of_type(SegmentType.SUFFIX, *patterns, **features)

    def prefix(self, *patterns: Any, **features: Any) -> CaptureApplier:
        return self.segment_of_type(SegmentType.PREFIX, *patterns, **features)

    def augmentation(self, *patterns: Any, **features: Any) -> CaptureApplier:
        return self.segment_of_type(SegmentType.AUGMENTATION, *patterns, **features)
