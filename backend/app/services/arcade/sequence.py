import enum
import math
import random
from dataclasses import dataclass, replace
from typing import Any, Optional, Sequence, Tuple

from .errors import StimulusError


class StimulusKind(str, enum.Enum):
    GRID = 'grid'          # lit cells on a square grid
    SEQUENCE = 'sequence'  # ordered pads/tones
    NUMBER = 'number'      # decimal value to convert
    SIGNAL = 'signal'      # single "go" cue


@dataclass(frozen=True)
class Stimulus:
    elements: Tuple[Any, ...]
    level: int
    reveal_duration_ms: int = 0
    answer: Any = None
    grid_size: Optional[int] = None
    flash_ms: Optional[int] = None
    presented_at: Optional[float] = None

    def __len__(self) -> int:
        return len(self.elements)

    def presented(self, at: float) -> 'Stimulus':
        return replace(self, presented_at=at)

    def to_dict(self, reveal: bool = True) -> dict:
        data = {
            'level': self.level,
            'length': len(self.elements),
            'reveal_duration_ms': self.reveal_duration_ms,
            'grid_size': self.grid_size,
            'flash_ms': self.flash_ms,
        }
        data['elements'] = list(self.elements) if reveal else None
        return data


class SequenceGenerator:
    """Builds the per-round stimulus for a variant.

    The random source is injectable; pass ``random.Random(seed)`` for
    reproducible rounds.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random()

    @classmethod
    def seeded(cls, seed) -> 'SequenceGenerator':
        return cls(random.Random(seed))

    def next(self, level: int, config) -> Stimulus:
        if level < 1:
            raise StimulusError(f"level must be positive, got {level}")
        length = config.stimulus_length(level)
        if length < 1:
            raise StimulusError(f"{config.key}: stimulus length {length} at level {level}")
        reveal = config.reveal_duration_ms(level)
        kind = config.kind

        if kind == StimulusKind.GRID:
            elements, side = self._grid(length)
            stimulus = Stimulus(elements, level, reveal, answer=frozenset(elements), grid_size=side)
        elif kind == StimulusKind.SEQUENCE:
            elements = self._sequence(length, config.palette, config.allow_repeats)
            stimulus = Stimulus(elements, level, reveal * length, answer=elements, flash_ms=reveal)
        elif kind == StimulusKind.NUMBER:
            value = self._value(length)
            stimulus = Stimulus((value,), level, reveal, answer=format(value, 'b'))
        elif kind == StimulusKind.SIGNAL:
            stimulus = Stimulus(('go',), level, reveal)
        else:
            raise StimulusError(f"unsupported stimulus kind {kind!r}")

        if not stimulus.elements:
            raise StimulusError(f"{config.key}: empty stimulus at level {level}")
        return stimulus

    def _grid(self, length: int) -> Tuple[Tuple[int, ...], int]:
        # Keep at least twice as many cells as lit cells.
        side = max(3, int(math.ceil(math.sqrt(2 * length))))
        return tuple(self.rng.sample(range(side * side), length)), side

    def _sequence(self, length: int, palette: Sequence[Any], allow_repeats: bool) -> Tuple[Any, ...]:
        if not palette or (len(palette) < 2 and not allow_repeats):
            raise StimulusError("palette too small for a non-repeating sequence")
        out = []
        for _ in range(length):
            choices = list(palette)
            if out and not allow_repeats:
                choices = [p for p in palette if p != out[-1]]
            out.append(self.rng.choice(choices))
        return tuple(out)

    def _value(self, bits: int) -> int:
        if bits <= 1:
            return 1
        return self.rng.randint(1 << (bits - 1), (1 << bits) - 1)
