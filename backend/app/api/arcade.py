from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user

from app.services.arcade import VARIANTS, UnknownGameError, get_variant
from app.services.arcade.gateway import best_score, record_play
from app.services.arcade import achievements, stats


arcade = Blueprint('arcade', __name__)


def _xp_max_score() -> int:
    return int(current_app.config.get('ARCADE_XP_MAX_SCORE', stats.DEFAULT_MAX_SCORE))


def _optional_int(data, key):
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(key)
    return value


@arcade.errorhandler(UnknownGameError)
def handle_unknown_game(exc):
    return jsonify({'error': str(exc)}), 404


@arcade.route('/games', methods=['GET'])
def list_games():
    """Arcade menu. Signed-in players also get their best score per game."""
    entries = []
    for config in VARIANTS.values():
        entry = config.catalog_entry()
        entry['high_score'] = best_score(current_user.id, config.key) if current_user.is_authenticated else 0
        entries.append(entry)
    return jsonify(entries)


@arcade.route('/games/<string:game_name>', methods=['GET'])
def get_game(game_name):
    config = get_variant(game_name)
    entry = config.catalog_entry()
    entry['round_timeout_ms'] = config.round_timeout_ms(1)
    entry['stimulus_length'] = config.stimulus_length(1)
    return jsonify(entry)


@arcade.route('/scores', methods=['POST'])
@login_required
def submit_score():
    data = request.get_json(silent=True) or {}
    game_name = data.get('game_name')
    if not game_name:
        return jsonify({'error': 'game_name is required'}), 400
    config = get_variant(game_name)
    score = data.get('score')
    if isinstance(score, bool) or not isinstance(score, int) or score < 0:
        return jsonify({'error': 'score must be a non-negative integer'}), 400
    try:
        level_reached = _optional_int(data, 'level_reached')
        time_taken = _optional_int(data, 'time_taken')
    except ValueError as exc:
        return jsonify({'error': f'{exc} must be a non-negative integer'}), 400

    entry, unlocked = record_play(current_user.id, config.key, score, level_reached, time_taken)
    current_app.logger.info(f"[score-saved] user={current_user.id} game={config.key} score={score}")
    payload = entry.to_dict()
    payload['best_score'] = best_score(current_user.id, config.key)
    payload['achievements_unlocked'] = unlocked
    return jsonify(payload), 201


@arcade.route('/scores/<string:game_name>/best', methods=['GET'])
@login_required
def get_best_score(game_name):
    config = get_variant(game_name)
    return jsonify({'game_name': config.key, 'best_score': best_score(current_user.id, config.key)})


@arcade.route('/scores/me', methods=['GET'])
@login_required
def my_scores():
    game_name = request.args.get('game')
    if game_name:
        game_name = get_variant(game_name).key
    return jsonify(stats.user_game_scores(current_user.id, game_name))


@arcade.route('/stats/<string:game_name>', methods=['GET'])
def get_game_stats(game_name):
    config = get_variant(game_name)
    user_id = None
    if request.args.get('mine'):
        if not current_user.is_authenticated:
            return jsonify({'error': 'Login required'}), 401
        user_id = current_user.id
    result = stats.game_stats(config.key, user_id)
    if result is None:
        # No plays yet is normal, not an error
        result = {
            'game_name': config.key,
            'total_plays': 0,
            'highest_score': 0,
            'average_score': 0,
            'lowest_score': 0,
            'total_time_played': 0,
            'best_time': None,
        }
    return jsonify(result)


@arcade.route('/leaderboard/<string:game_name>', methods=['GET'])
def get_weekly_leaderboard(game_name):
    config = get_variant(game_name)
    cfg = current_app.config
    return jsonify(stats.weekly_leaderboard(
        config.key,
        days=int(cfg.get('ARCADE_LEADERBOARD_DAYS', 7)),
        limit=int(cfg.get('ARCADE_LEADERBOARD_SIZE', 10)),
    ))


@arcade.route('/leaderboard/<string:game_name>/position', methods=['GET'])
@login_required
def get_game_position(game_name):
    config = get_variant(game_name)
    position = stats.game_leaderboard_position(current_user.id, config.key)
    if position is None:
        return jsonify({'error': 'No scores for this game yet'}), 404
    return jsonify(position)


@arcade.route('/leaderboard', methods=['GET'])
def get_overall_leaderboard():
    return jsonify(stats.all_user_stats(_xp_max_score()))


@arcade.route('/users/me/stats', methods=['GET'])
@login_required
def my_stats():
    result = stats.user_stats(current_user.id, _xp_max_score())
    result['leaderboard'] = stats.leaderboard_position(current_user.id, _xp_max_score())
    return jsonify(result)


@arcade.route('/achievements', methods=['GET'])
def list_achievements():
    user_id = current_user.id if current_user.is_authenticated else None
    return jsonify(achievements.catalog_for(user_id))


@arcade.route('/users/me/achievements', methods=['GET'])
@login_required
def my_achievements():
    return jsonify(achievements.get_achievements(current_user.id))
