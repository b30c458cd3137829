"""Variant configuration records for the four arcade games.

Each game is data consumed by the shared session controller: stimulus
shape, input comparison rule, lives-vs-single-mistake policy and the
difficulty curve.
"""
import enum
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from .errors import UnknownGameError
from .scoring import ScoringPolicy
from .sequence import Stimulus, StimulusKind


class Variant(str, enum.Enum):
    MEMORY_SEQUENCE = 'memory-matrix'
    REACTION_TIMING = 'reaction-test'
    PATTERN_PLAYBACK = 'pattern-pulse'
    NUMERIC_CONVERSION = 'binary-breaker'


def match_cells(stimulus: Stimulus, candidate) -> bool:
    """Same set of grid cells, in any order."""
    try:
        chosen = list(candidate)
        return len(chosen) == len(set(chosen)) and frozenset(chosen) == stimulus.answer
    except TypeError:
        return False


def match_sequence(stimulus: Stimulus, candidate) -> bool:
    try:
        return tuple(candidate) == tuple(stimulus.elements)
    except TypeError:
        return False


def match_any(stimulus: Stimulus, candidate) -> bool:
    return True


def match_binary(stimulus: Stimulus, candidate) -> bool:
    # Canonical binary only: no leading zeros, no prefix
    if not isinstance(candidate, str):
        return False
    return candidate.strip() == stimulus.answer


def step_cells(stimulus: Stimulus, entered) -> bool:
    try:
        return len(entered) == len(set(entered)) and all(e in stimulus.answer for e in entered)
    except TypeError:
        return False


def step_sequence(stimulus: Stimulus, entered) -> bool:
    return tuple(entered) == tuple(stimulus.elements[:len(entered)])


@dataclass(frozen=True)
class GameVariantConfig:
    variant: Variant
    name: str
    kind: StimulusKind
    matcher: Callable[[Stimulus, Any], bool]
    scoring: ScoringPolicy
    description: str = ''
    difficulty: str = ''
    icon: str = ''
    color: str = ''
    step_matcher: Optional[Callable[[Stimulus, Any], bool]] = None
    lives: Optional[int] = None
    priming_ms: int = 0
    transition_ms: int = 600
    max_rounds: Optional[int] = None
    timeout_is_miss: bool = True
    # Difficulty curve
    base_length: int = 1
    length_step: int = 1
    max_length: Optional[int] = None
    reveal_base_ms: int = 0
    reveal_step_ms: int = 0
    reveal_floor_ms: int = 200
    timeout_base_ms: Optional[int] = None
    timeout_step_ms: int = 0
    timeout_floor_ms: int = 1000
    palette: Tuple[Any, ...] = field(default_factory=tuple)
    allow_repeats: bool = False

    @property
    def key(self) -> str:
        return self.variant.value

    @property
    def uses_lives(self) -> bool:
        return self.lives is not None

    @property
    def reveals(self) -> bool:
        """True when the stimulus is shown, then hidden before input opens."""
        return self.reveal_base_ms > 0

    def stimulus_length(self, level: int) -> int:
        length = self.base_length + self.length_step * (level - 1)
        if self.max_length is not None:
            length = min(length, self.max_length)
        return length

    def reveal_duration_ms(self, level: int) -> int:
        if not self.reveals:
            return 0
        return max(self.reveal_floor_ms, self.reveal_base_ms - self.reveal_step_ms * (level - 1))

    def round_timeout_ms(self, level: int) -> Optional[int]:
        if self.timeout_base_ms is None:
            return None
        return max(self.timeout_floor_ms, self.timeout_base_ms - self.timeout_step_ms * (level - 1))

    def with_timings(self, priming_ms: Optional[int] = None, transition_ms: Optional[int] = None,
                     reveal_floor_ms: Optional[int] = None) -> 'GameVariantConfig':
        """Copy with app-level timing overrides. Priming only applies to variants that prime."""
        changes: Dict[str, int] = {}
        if priming_ms is not None and self.priming_ms > 0:
            changes['priming_ms'] = priming_ms
        if transition_ms is not None:
            changes['transition_ms'] = transition_ms
        if reveal_floor_ms is not None:
            changes['reveal_floor_ms'] = reveal_floor_ms
        return replace(self, **changes) if changes else self

    def catalog_entry(self) -> Dict[str, Any]:
        return {
            'id': self.key,
            'name': self.name,
            'description': self.description,
            'difficulty': self.difficulty,
            'icon': self.icon,
            'color': self.color,
            'lives': self.lives,
            'max_rounds': self.max_rounds,
        }


MEMORY_MATRIX = GameVariantConfig(
    variant=Variant.MEMORY_SEQUENCE,
    name='Memory Matrix',
    description='Remember and recreate the pattern. Test your visual memory with increasing difficulty.',
    difficulty='Medium',
    icon='🧠',
    color='#00ff88',
    kind=StimulusKind.GRID,
    matcher=match_cells,
    step_matcher=step_cells,
    scoring=ScoringPolicy(base_points=10, level_points=5),
    lives=3,
    base_length=3,
    reveal_base_ms=1500,
    reveal_step_ms=100,
    timeout_base_ms=10000,
    timeout_step_ms=500,
    timeout_floor_ms=4000,
)

REACTION_TEST = GameVariantConfig(
    variant=Variant.REACTION_TIMING,
    name='Reaction Test',
    description='Test your reflexes! Click as fast as possible when the screen turns green.',
    difficulty='Easy',
    icon='⚡',
    color='#ffaa00',
    kind=StimulusKind.SIGNAL,
    matcher=match_any,
    scoring=ScoringPolicy(base_points=10, level_points=5, speed_window_ms=1000, speed_points=50, uses_lives=False),
    priming_ms=3000,
    max_rounds=5,
    base_length=1,
    length_step=0,
    timeout_base_ms=1500,
    timeout_step_ms=100,
    timeout_floor_ms=500,
)

PATTERN_PULSE = GameVariantConfig(
    variant=Variant.PATTERN_PLAYBACK,
    name='Pattern Pulse',
    description='Follow the sequence of lights and sounds. How long can you remember?',
    difficulty='Hard',
    icon='🎵',
    color='#ff4488',
    kind=StimulusKind.SEQUENCE,
    matcher=match_sequence,
    step_matcher=step_sequence,
    scoring=ScoringPolicy(base_points=10, level_points=10),
    lives=3,
    base_length=3,
    reveal_base_ms=600,
    reveal_step_ms=40,
    timeout_base_ms=12000,
    timeout_step_ms=500,
    timeout_floor_ms=4000,
    palette=('red', 'green', 'blue', 'yellow'),
)

BINARY_BREAKER = GameVariantConfig(
    variant=Variant.NUMERIC_CONVERSION,
    name='Binary Breaker',
    description='Convert decimal numbers to binary before time runs out. Perfect for coders!',
    difficulty='Expert',
    icon='💻',
    color='#44aaff',
    kind=StimulusKind.NUMBER,
    matcher=match_binary,
    scoring=ScoringPolicy(base_points=10, level_points=10, speed_window_ms=10000, speed_points=20, uses_lives=False),
    base_length=2,
    max_length=12,
    timeout_base_ms=10000,
    timeout_step_ms=1000,
    timeout_floor_ms=3000,
)

VARIANTS: Dict[str, GameVariantConfig] = {
    cfg.key: cfg for cfg in (MEMORY_MATRIX, REACTION_TEST, PATTERN_PULSE, BINARY_BREAKER)
}


def get_variant(key) -> GameVariantConfig:
    if isinstance(key, Variant):
        key = key.value
    try:
        return VARIANTS[key]
    except (KeyError, TypeError):
        raise UnknownGameError(key) from None


def catalog(variants: Sequence[GameVariantConfig] = None):
    return [cfg.catalog_entry() for cfg in (variants or VARIANTS.values())]
