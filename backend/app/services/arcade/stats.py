"""Player statistics, XP/rank and leaderboards built from recorded plays."""
import math
from datetime import timedelta
from typing import List, Optional

from app import db
from app.models import GameScore, HighScore, User, utcnow
from .achievements import achievement_count


RANK_THRESHOLDS = (
    (5000, 'Legend'),
    (3000, 'Platinum'),
    (1500, 'Gold'),
    (500, 'Silver'),
)
DEFAULT_MAX_SCORE = 200


def _round(value: float) -> int:
    # Half-up, not banker's rounding.
    return int(math.floor(value + 0.5))


def calculate_rank(xp: int) -> str:
    for threshold, rank in RANK_THRESHOLDS:
        if xp >= threshold:
            return rank
    return 'Bronze'


def calculate_xp_from_score(score: int, max_possible_score: int = DEFAULT_MAX_SCORE) -> int:
    """XP for one play: percentage of ``max_possible_score``, capped at 100."""
    if max_possible_score <= 0:
        return 0
    percentage = min(max(score, 0) / max_possible_score * 100, 100)
    return int(math.ceil(percentage))


def user_stats(user_id: int, max_possible_score: int = DEFAULT_MAX_SCORE) -> Optional[dict]:
    user = db.session.get(User, user_id)
    if user is None:
        return None
    scores = [row.score for row in GameScore.query.filter_by(user_id=user_id).all()]
    total_xp = sum(calculate_xp_from_score(s, max_possible_score) for s in scores)
    return {
        'user_id': user.id,
        'username': user.username,
        'total_games_played': len(scores),
        'highest_score': max(scores) if scores else 0,
        'average_score': _round(sum(scores) / len(scores)) if scores else 0,
        'total_xp': total_xp,
        'rank': calculate_rank(total_xp),
        'achievements': achievement_count(user.id),
    }


def game_stats(game_name: str, user_id: Optional[int] = None) -> Optional[dict]:
    query = GameScore.query.filter_by(game_name=game_name)
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    rows = query.all()
    if not rows:
        return None
    scores = [r.score for r in rows]
    times = [r.time_taken for r in rows if r.time_taken is not None]
    positive_times = [t for t in times if t > 0]
    return {
        'game_name': game_name,
        'total_plays': len(rows),
        'highest_score': max(scores),
        'average_score': _round(sum(scores) / len(scores)),
        'lowest_score': min(scores),
        'total_time_played': sum(times),
        'best_time': min(positive_times) if positive_times else None,
    }


def weekly_leaderboard(game_name: str, days: int = 7, limit: int = 10) -> List[dict]:
    since = utcnow() - timedelta(days=days)
    rows = (
        db.session.query(GameScore, User.username)
        .join(User, User.id == GameScore.user_id)
        .filter(GameScore.game_name == game_name, GameScore.completed_at >= since)
        .order_by(GameScore.score.desc(), GameScore.completed_at.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            'game_name': game_name,
            'score': entry.score,
            'played_at': entry.completed_at.isoformat(),
            'user_id': entry.user_id,
            'username': username,
        }
        for entry, username in rows
    ]


def all_user_stats(max_possible_score: int = DEFAULT_MAX_SCORE) -> List[dict]:
    user_ids = [uid for (uid,) in db.session.query(GameScore.user_id).distinct().all()]
    stats = [user_stats(uid, max_possible_score) for uid in user_ids]
    return sorted((s for s in stats if s is not None), key=lambda s: s['total_xp'], reverse=True)


def leaderboard_position(user_id: int, max_possible_score: int = DEFAULT_MAX_SCORE) -> Optional[dict]:
    ranked = all_user_stats(max_possible_score)
    ids = [s['user_id'] for s in ranked]
    if user_id not in ids:
        return None
    idx = ids.index(user_id)
    return {
        'position': idx + 1,
        'total_players': len(ranked),
        'percentile': _round((len(ranked) - idx) / len(ranked) * 100),
    }


def game_leaderboard_position(user_id: int, game_name: str) -> Optional[dict]:
    records = (
        HighScore.query.filter_by(game_name=game_name)
        .order_by(HighScore.best_score.desc(), HighScore.updated_at.asc())
        .all()
    )
    for idx, record in enumerate(records):
        if record.user_id == user_id:
            return {
                'position': idx + 1,
                'total_players': len(records),
                'high_score': record.best_score,
            }
    return None


def user_game_scores(user_id: int, game_name: Optional[str] = None) -> List[dict]:
    query = GameScore.query.filter_by(user_id=user_id)
    if game_name:
        query = query.filter_by(game_name=game_name)
    return [row.to_dict() for row in query.order_by(GameScore.completed_at.desc(), GameScore.id.desc()).all()]
