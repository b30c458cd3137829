import enum
from dataclasses import dataclass


class Outcome(str, enum.Enum):
    CORRECT = 'correct'
    INCORRECT = 'incorrect'


@dataclass(frozen=True)
class ScoreUpdate:
    score_delta: int
    next_level: int
    lives_delta: int = 0
    ends_session: bool = False


@dataclass(frozen=True)
class ScoringPolicy:
    """Maps one round outcome to session mutations.

    Correct rounds earn ``base_points + level_points * (level - 1)`` plus an
    optional speed bonus that shrinks linearly to 0 over ``speed_window_ms``.
    Mistakes never cost points: life-based policies take a life, the others
    end the session.
    """

    base_points: int = 10
    level_points: int = 5
    speed_window_ms: int = 0
    speed_points: int = 0
    uses_lives: bool = True

    @property
    def timing_sensitive(self) -> bool:
        return self.speed_window_ms > 0 and self.speed_points > 0

    def speed_bonus(self, elapsed_ms: int) -> int:
        if not self.timing_sensitive:
            return 0
        left = max(0, self.speed_window_ms - max(0, int(elapsed_ms)))
        return self.speed_points * left // self.speed_window_ms

    def points_for(self, level: int, elapsed_ms: int = 0) -> int:
        return self.base_points + self.level_points * (level - 1) + self.speed_bonus(elapsed_ms)

    def apply(self, outcome: Outcome, elapsed_ms: int, level: int, session=None) -> ScoreUpdate:
        if outcome == Outcome.CORRECT:
            return ScoreUpdate(score_delta=self.points_for(level, elapsed_ms), next_level=level + 1)
        if self.uses_lives:
            lives = getattr(session, 'lives_remaining', None)
            return ScoreUpdate(
                score_delta=0,
                next_level=level,
                lives_delta=-1,
                ends_session=lives is not None and lives <= 1,
            )
        return ScoreUpdate(score_delta=0, next_level=level, ends_session=True)
