"""
Core Rewrite Engine

RESPONSIBILITY: Run registered rules over the trackers of one word and
keep every derived value consistent as decisions change
ALLOWED INPUTS: Word, rule configuration, choice source
OUTPUTS: Layer values (collect), rewrite audit entries

WHAT THIS LAYER MUST NOT DO:
============================
- Read files or environment variables
- Configure logging handlers
- Mutate caller segments (everything is copied at ingestion)

Modules:
- dependencies: node arena and networkx dependency graph
- environment: lazily resolved per-layer environment, Neighbor records
- cascade: invalidation work queue
- tracker: Tracker and TrackerList
- registry: two-phase rule registry
- manager: WordManager and EngineConfig
"""

from .dependencies import NodeArena, DependencyGraph
from .environment import Environment, Neighbor, MISSING
from .cascade import Cascade
from .registry import RuleRegistry
from .tracker import RunContext, Tracker, TrackerList
from .manager import EngineConfig, WordManager

__all__ = [
    'NodeArena',
    'DependencyGraph',
    'Environment',
    'Neighbor',
    'MISSING',
    'Cascade',
    'RuleRegistry',
    'RunContext',
    'Tracker',
    'TrackerList',
    'EngineConfig',
    'WordManager',
]
