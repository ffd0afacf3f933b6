"""
Temporal Layer
==============

Decision history for the rewrite engine.

INVARIANTS:
- Every rewrite decision is an appended TrackerChoices entry
- Edits truncate forward history instead of mutating it in place
- Same draws -> same decisions (deterministic replay)

Modules:
- history: TrackerChoices and cursor-addressed TrackerHistory
- choice: seedable, replayable weighted-choice source
"""

from .history import TrackerChoices, TrackerHistory
from .choice import WeightedChoiceSource, ChoicesExhausted

__all__ = [
    'TrackerChoices',
    'TrackerHistory',
    'WeightedChoiceSource',
    'ChoicesExhausted',
]
