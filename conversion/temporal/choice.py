"""
Weighted Choice Source
======================

Injectable source of weighted-random draws that enables deterministic
execution and replay.

GUARANTEES:
- Same word + same rules + same draw sequence = identical output
- Never uses an unseeded generator
- All draws are recorded so a run can be replayed exactly
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import random


class ChoicesExhausted(Exception):
    """Raised when a replaying source runs out of recorded draws."""
    pass


@dataclass
class WeightedChoiceSource:
    """
    Pluggable weighted-choice source.

    MODES:
    ======
    1. LIVE mode: draws from a seeded random.Random, records every draw
    2. REPLAY mode: returns the pre-recorded draw sequence
    """
    seed: Optional[int] = 42
    _draws: List[int] = field(default_factory=list)
    _current_index: int = 0
    _is_live: bool = True
    _random: random.Random = field(init=False, repr=False)

    def __post_init__(self):
        self._random = random.Random(self.seed)

    def choose(self, weights: Sequence[float]) -> int:
        """Return the index of the selected candidate."""
        if len(weights) == 1:
            return 0

        if self._is_live:
            idx = self._random.choices(range(len(weights)), weights=weights)[0]
            self._draws.append(idx)
            self._current_index = len(self._draws)
            return idx

        if self._current_index >= len(self._draws):
            raise ChoicesExhausted(
                f"Replay source exhausted at draw {self._current_index}. "
                f"The recorded run had {len(self._draws)} draws."
            )
        idx = self._draws[self._current_index]
        self._current_index += 1
        if not 0 <= idx < len(weights):
            raise ChoicesExhausted(
                f"Recorded draw {idx} does not fit {len(weights)} candidates "
                f"at draw {self._current_index - 1}."
            )
        return idx

    def reset(self) -> None:
        """Rewind to the start so the next run repeats the same draws."""
        if self._is_live:
            self._random = random.Random(self.seed)
            self._draws.clear()
        self._current_index = 0

    def draw_count(self) -> int:
        """Number of draws recorded/consumed."""
        return self._current_index

    def recorded(self) -> Tuple[int, ...]:
        return tuple(self._draws)

    def is_live(self) -> bool:
        return self._is_live

    @classmethod
    def live(cls, seed: Optional[int] = 42) -> WeightedChoiceSource:
        """Create a source in LIVE mode."""
        return cls(seed=seed)

    @classmethod
    def replay(cls, draws: Sequence[int]) -> WeightedChoiceSource:
        """Create a source in REPLAY mode from recorded draws."""
        return cls(seed=None, _draws=list(draws), _current_index=0, _is_live=False)

    def __repr__(self) -> str:
        mode = "LIVE" if self._is_live else "REPLAY"
        return f"WeightedChoiceSource({mode}, draws={len(self._draws)}, index={self._current_index})"
