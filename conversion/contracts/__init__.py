"""
Contracts Module

Immutable value types, rule contracts and the error taxonomy shared by
every layer. No layer imports implementation details from another;
they meet here.

DESIGN PRINCIPLES:
==================
1. Segments and words are frozen and never alias caller state
2. Rule configuration is validated once, then normalized into a
   canonical immutable Rule
3. Errors are explicit exception types, never silent fallbacks
"""

from .base import (
    EngineError, ConfigurationError, RegistryFrozen, InvariantViolation,
    UnknownDependencyKind, CascadeLimitExceeded,
    SegmentType, RewriteAction, DependencyKind,
    Segment, Word, ingest,
)
from .rules import RuleConfig, Rule, Outcome, normalize_rule
from .events import RewriteEventType, RewriteAuditEntry

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
    'Rule',
    'Outcome',
    'normalize_rule',
    'RewriteEventType',
    'RewriteAuditEntry',
]
