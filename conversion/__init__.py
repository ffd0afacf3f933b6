"""
Segment Conversion Engine

Converts a word, a sequence of typed segments, through an ordered
pipeline of representation layers by applying declarative rewrite
rules (transform, promote, expand). Rule eligibility depends on live
context; dependencies are resolved lazily, cached and recomputed when
an upstream decision changes.

LAYER STRUCTURE:
================
- contracts/: immutable value types, rule contracts, errors
- matching: default pattern matcher
- temporal/: rewrite history and the replayable weighted-choice source
- core/: dependency graph, trackers, cascade, WordManager
- observability/: rewrite audit log
- capture: rule-definition front end
- engine: `construct` and ConversionEngine
"""

from .contracts import (
    EngineError, ConfigurationError, RegistryFrozen, InvariantViolation,
    UnknownDependencyKind, CascadeLimitExceeded,
    SegmentType, RewriteAction, DependencyKind,
    Segment, Word, ingest, RuleConfig, RewriteEventType,
)
from .core import EngineConfig, WordManager, Tracker, TrackerList, Neighbor, MISSING
from .temporal import WeightedChoiceSource, ChoicesExhausted
from .observability import RewriteLog
from .capture import Capture, CaptureApplier, merge_patterns
from .engine import ConversionEngine, construct
from .matching import match, any_of, all_of

__all__ = [
    'EngineError',
    'ConfigurationError',
    'RegistryFrozen',
    'InvariantViolation',
    'UnknownDependencyKind',
    'CascadeLimitExceeded',
    'SegmentType',
    'RewriteAction',
    'DependencyKind',
    'Segment',
    'Word',
    'ingest',
    'RuleConfig',
    'RewriteEventType',
    'EngineConfig',
    'WordManager',
    'Tracker',
    'TrackerList',
    'Neighbor',
    'MISSING',
    'WeightedChoiceSource',
    'ChoicesExhausted',
    'RewriteLog',
    'Capture',
    'CaptureApplier',
    'merge_patterns',
    'ConversionEngine',
    'construct',
    'match',
    'any_of',
    'all_of',
]
