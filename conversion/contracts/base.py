"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
Segments and words are IMMUTABLE once ingested and never alias caller
state: ingestion deep-copies every segment and freezes word metadata.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Layers may import types but MUST NOT modify this module
- No behavior beyond construction and copying
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, FrozenSet, Mapping, Optional, Tuple
import copy


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class EngineError(Exception):
    """Base class for every error raised by the conversion engine."""


class ConfigurationError(EngineError):
    """
    Rule or layer configuration is invalid.

    Fatal to the registration that raised it.
    """


class RegistryFrozen(ConfigurationError):
    """A rule was registered after the registry entered its run phase."""


class InvariantViolation(EngineError):
    """
    Internal bookkeeping is inconsistent.

    Never expected under correct operation.
    """


class UnknownDependencyKind(EngineError):
    """
    An environment lookup named a relation outside the recognized set.

    Deliberately not a KeyError: pattern matchers treat KeyError as an
    absent field, and an unknown relation is a configuration defect.
    """

    def __init__(self, key: Any):
        super().__init__(f"Unknown dependency kind: {key!r}")
        self.key = key


class CascadeLimitExceeded(EngineError):
    """Recomputation did not reach a fixpoint within the configured bound."""


# =============================================================================
# CLOSED VOCABULARIES
# =============================================================================

class SegmentType(str, Enum):
    """
    Segment type tags the core knows by name.

    The alphabet vocabulary may use any other tag; the core only needs
    consonant and vowel to resolve filtered relations.
    """
    CONSONANT = "consonant"
    VOWEL = "vowel"
    EPENTHETIC = "epenthetic"
    SUFFIX = "suffix"
    PREFIX = "prefix"
    AUGMENTATION = "augmentation"
    MODIFIER = "modifier"
    DELIMITER = "delimiter"


class RewriteAction(str, Enum):
    """What a firing rule does with the segment it matched."""
    TRANSFORM = "transform"  # replace in place, same layer
    PROMOTE = "promote"      # advance to the next layer
    EXPAND = "expand"        # advance by fanning out into a sub-sequence

    @property
    def advances(self) -> bool:
        return self is not RewriteAction.TRANSFORM


class DependencyKind(Enum):
    """
    Keys of a tracker's environment.

    Six directional relations are resolved reactively and cached;
    TYPE, WORD and CONTEXT are constants read directly.
    """
    NEXT = "next"
    PREV = "prev"
    NEXT_CONSONANT = "next_consonant"
    PREV_CONSONANT = "prev_consonant"
    NEXT_VOWEL = "next_vowel"
    PREV_VOWEL = "prev_vowel"
    TYPE = "type"
    WORD = "word"
    CONTEXT = "context"

    @classmethod
    def parse(cls, key: Any) -> DependencyKind:
        if isinstance(key, DependencyKind):
            return key
        try:
            return cls(key)
        except ValueError:
            raise UnknownDependencyKind(key) from None

    @property
    def is_relation(self) -> bool:
        return self not in _CONSTANT_KINDS

    @property
    def backward(self) -> bool:
        return self.value.startswith("prev")

    @property
    def segment_filter(self) -> Optional[SegmentType]:
        if self.value.endswith("consonant"):
            return SegmentType.CONSONANT
        if self.value.endswith("vowel"):
            return SegmentType.VOWEL
        return None


_CONSTANT_KINDS = frozenset({
    DependencyKind.TYPE, DependencyKind.WORD, DependencyKind.CONTEXT,
})


# =============================================================================
# VALUE TYPES (Immutable)
# =============================================================================

def _freeze_mapping(value: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(copy.deepcopy(dict(value or {})))


@dataclass(frozen=True)
class Segment:
    """
    Smallest typed unit of a word at a given layer.

    `type` is a tag from the alphabet vocabulary, `features` a read-only
    feature map, `value` the raw value the layer assigns.
    """
    type: Any
    features: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    value: Any = None

    @staticmethod
    def create(type: Any, value: Any = None, features: Optional[Mapping[str, Any]] = None) -> Segment:
        """Build a segment from caller data, copying the feature map."""
        return Segment(type=type, features=_freeze_mapping(features), value=copy.deepcopy(value))

    @staticmethod
    def from_template(template: Any, default: Optional[Segment] = None) -> Segment:
        """
        Copy a caller segment.

        Accepts a Segment, or a mapping with `type`, `features` (or the
        nested `meta.features` shape) and `value`. Anything else is kept
        as the raw value of an untyped segment; ingestion never fails.
        Missing parts are inherited from `default` when given.
        """
        if isinstance(template, Segment):
            return Segment.create(template.type, template.value, template.features)
        if isinstance(template, Mapping):
            features = template.get("features")
            if features is None:
                meta = template.get("meta")
                if isinstance(meta, Mapping):
                    features = meta.get("features")
            if features is None and default is not None:
                features = default.features
            seg_type = template.get("type", default.type if default is not None else None)
            if "value" in template:
                value = template["value"]
            else:
                value = default.value if default is not None else None
            return Segment.create(seg_type, value, features if isinstance(features, Mapping) else None)
        if default is not None:
            return Segment.create(default.type, template, default.features)
        return Segment.create(None, template)


@dataclass(frozen=True)
class Word:
    """
    Immutable word snapshot for one engine run.

    Metadata is frozen at ingestion; every tracker, including those of
    nested expansions, shares this exact object.
    """
    type: Any
    metadata: Mapping[str, Any]
    segments: Tuple[Segment, ...]
    context: FrozenSet[Any] = frozenset()


def ingest(template: Any) -> Word:
    """
    Produce an internal Word from a caller word.

    Accepts a Word or a mapping with `type`, `meta` (or `metadata`),
    `value` (or `segments`) and optional `context`. Every segment is
    deep-copied; no semantic normalization happens here.
    """
    if isinstance(template, Word):
        return Word(
            type=template.type,
            metadata=_freeze_mapping(template.metadata),
            segments=tuple(Segment.from_template(s) for s in template.segments),
            context=frozenset(template.context),
        )
    metadata = template.get("meta")
    if metadata is None:
        metadata = template.get("metadata")
    segments = template.get("value")
    if segments is None:
        segments = template.get("segments", ())
    return Word(
        type=template.get("type"),
        metadata=_freeze_mapping(metadata),
        segments=tuple(Segment.from_template(s) for s in segments),
        context=frozenset(template.get("context") or ()),
    )
