import enum
from dataclasses import dataclass
from typing import Optional

from .variants import Variant


class SessionState(str, enum.Enum):
    IDLE = 'idle'
    PRIMING = 'priming'
    ACTIVE = 'active'
    ROUND_TRANSITION = 'round_transition'
    ENDED = 'ended'


@dataclass
class GameSession:
    """One play-through of one variant. Lives only in memory."""

    variant: Variant
    lives_remaining: Optional[int] = None
    high_score: int = 0
    state: SessionState = SessionState.IDLE
    level: int = 1
    score: int = 0
    rounds_played: int = 0
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    end_reason: Optional[str] = None

    @property
    def is_over(self) -> bool:
        return self.state == SessionState.ENDED

    @property
    def duration_ms(self) -> Optional[int]:
        if self.started_at is None or self.ended_at is None:
            return None
        return int(round(self.ended_at - self.started_at))

    def to_dict(self) -> dict:
        return {
            'game': self.variant.value,
            'state': self.state.value,
            'level': self.level,
            'score': self.score,
            'lives_remaining': self.lives_remaining,
            'rounds_played': self.rounds_played,
            'high_score': self.high_score,
            'beat_high_score': self.score > self.high_score,
            'end_reason': self.end_reason,
            'duration_ms': self.duration_ms,
        }
