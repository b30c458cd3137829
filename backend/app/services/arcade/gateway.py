from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.models import GameScore, HighScore
from . import achievements


def record_score(user_id: int, game_name: str, score: int,
                 level_reached: Optional[int] = None, time_taken: Optional[int] = None) -> GameScore:
    """Store one play and raise the user's best score for the game if beaten."""
    entry = GameScore(
        user_id=user_id,
        game_name=game_name,
        score=score,
        level_reached=level_reached,
        time_taken=time_taken,
    )
    db.session.add(entry)
    record = HighScore.query.filter_by(user_id=user_id, game_name=game_name).first()
    if record is None:
        record = HighScore(user_id=user_id, game_name=game_name, best_score=score)
        db.session.add(record)
    elif score > record.best_score:
        record.best_score = score
        db.session.add(record)
    db.session.commit()
    return entry


def record_play(user_id: int, game_name: str, score: int,
                level_reached: Optional[int] = None,
                time_taken: Optional[int] = None) -> Tuple[GameScore, List[str]]:
    """Record a play, then unlock the achievements it earns."""
    previous = HighScore.query.filter_by(user_id=user_id, game_name=game_name).first()
    previous_best = previous.best_score if previous is not None else None
    entry = record_score(user_id, game_name, score, level_reached, time_taken)
    unlocked = achievements.award_for_play(user_id, game_name, score, previous_best)
    return entry, unlocked


def best_score(user_id: int, game_name: str) -> int:
    record = HighScore.query.filter_by(user_id=user_id, game_name=game_name).first()
    return record.best_score if record else 0


class HighScoreGateway:
    """Score persistence boundary handed to the engine.

    ``submit_score`` never raises: a failed write is logged and dropped so
    the local session still ends normally. Anonymous players are not
    recorded.
    """

    def __init__(self, app, user_id: Optional[int] = None):
        self.app = app
        self.user_id = user_id

    @property
    def user_present(self) -> bool:
        return self.user_id is not None

    def best_score(self, game_name: str) -> int:
        if self.user_id is None:
            return 0
        with self.app.app_context():
            return best_score(self.user_id, game_name)

    def submit_score(self, game_name: str, score: int,
                     level_reached: Optional[int] = None, time_taken: Optional[int] = None) -> None:
        if self.user_id is None:
            self.app.logger.info(f"[score-skip] game={game_name} score={score} anonymous")
            return
        with self.app.app_context():
            try:
                _, unlocked = record_play(self.user_id, game_name, int(score), level_reached, time_taken)
                self.app.logger.info(f"[score-saved] user={self.user_id} game={game_name} score={score} unlocked={unlocked}")
            except SQLAlchemyError:
                db.session.rollback()
                self.app.logger.exception(f"[score-save-failed] user={self.user_id} game={game_name} score={score}")
