"""Badges unlocked by playing the arcade.

The catalog lives here and is mirrored into the ``achievement`` table on
first use, so a fresh database needs no seeding. Unlocking is idempotent:
the ``(user_id, achievement_id)`` unique constraint keeps one row per badge
even when two plays race to unlock it.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from app import db
from app.models import Achievement, GameScore, UserAchievement
from .errors import UnknownAchievementError
from .variants import VARIANTS


logger = logging.getLogger(__name__)

FIRST_PLAY = 'First Play'
PERSONAL_BEST = 'Personal Best'
CENTURY = 'Century'
ARCADE_EXPLORER = 'Arcade Explorer'
CENTURY_SCORE = 100

CATALOG = {
    FIRST_PLAY: {
        'description': 'Finish your first arcade game',
        'badge_icon': '🎮',
        'category': 'milestone',
    },
    PERSONAL_BEST: {
        'description': 'Beat your own best score in a game',
        'badge_icon': '🏆',
        'category': 'score',
    },
    CENTURY: {
        'description': f'Score {CENTURY_SCORE} or more in a single game',
        'badge_icon': '💯',
        'category': 'score',
    },
    ARCADE_EXPLORER: {
        'description': 'Play every arcade game at least once',
        'badge_icon': '🕹️',
        'category': 'milestone',
    },
}


def _achievement(name: str) -> Achievement:
    definition = CATALOG.get(name)
    if definition is None:
        raise UnknownAchievementError(name)
    row = Achievement.query.filter_by(name=name).first()
    if row is None:
        row = Achievement(name=name, **definition)
        db.session.add(row)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            row = Achievement.query.filter_by(name=name).one()
    return row


def unlock_achievement(user_id: int, name: str) -> Optional[UserAchievement]:
    """Grant ``name`` to the user. Returns None when it was already unlocked."""
    achievement = _achievement(name)
    existing = UserAchievement.query.filter_by(user_id=user_id, achievement_id=achievement.id).first()
    if existing is not None:
        return None
    unlocked = UserAchievement(user_id=user_id, achievement_id=achievement.id)
    db.session.add(unlocked)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info(f"[achievement-dup] user={user_id} name={name}")
        return None
    logger.info(f"[achievement] user={user_id} name={name}")
    return unlocked


def get_achievements(user_id: int) -> List[dict]:
    rows = (
        UserAchievement.query.filter_by(user_id=user_id)
        .order_by(UserAchievement.unlocked_at.desc(), UserAchievement.id.desc())
        .all()
    )
    return [row.to_dict() for row in rows]


def achievement_count(user_id: int) -> int:
    return UserAchievement.query.filter_by(user_id=user_id).count()


def catalog_for(user_id: Optional[int] = None) -> List[dict]:
    unlocked = set()
    if user_id is not None:
        unlocked = {row.achievement.name for row in UserAchievement.query.filter_by(user_id=user_id).all()}
    entries = []
    for name, definition in CATALOG.items():
        entry = {'name': name}
        entry.update(definition)
        entry['unlocked'] = name in unlocked
        entries.append(entry)
    return entries


def award_for_play(user_id: int, game_name: str, score: int, previous_best: Optional[int]) -> List[str]:
    """Unlock whatever a just-recorded play earns. Returns the newly unlocked names."""
    logger.debug(f"[achievement-check] user={user_id} game={game_name} score={score} previous_best={previous_best}")
    earned = [FIRST_PLAY]
    if previous_best is not None and score > previous_best:
        earned.append(PERSONAL_BEST)
    if score >= CENTURY_SCORE:
        earned.append(CENTURY)
    played = {g for (g,) in db.session.query(GameScore.game_name).filter_by(user_id=user_id).distinct().all()}
    if set(VARIANTS) <= played:
        earned.append(ARCADE_EXPLORER)
    return [name for name in earned if unlock_achievement(user_id, name) is not None]
