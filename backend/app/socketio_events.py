from flask_socketio import emit
from flask import current_app, request
from flask_login import current_user
from app import socketio
from app.services.arcade import (
    ArcadeCabinet,
    SequenceGenerator,
    StimulusError,
    TimerService,
    UnknownGameError,
)
from app.services.arcade.gateway import HighScoreGateway
from typing import Dict


# One cabinet (arcade menu + live session) per connected socket
_cabinets: Dict[str, ArcadeCabinet] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _build_cabinet(sid: str, namespace: str) -> ArcadeCabinet:
    app = current_app._get_current_object()
    cfg = app.config
    seed = cfg.get('ARCADE_SEED')

    def listener(event: str, payload: dict) -> None:
        # Use socketio.emit since this may be called from a background task
        socketio.emit(event, payload, to=sid, namespace=namespace)

    return ArcadeCabinet(
        timers=TimerService(app.extensions['arcade_scheduler'], tick_ms=int(cfg.get('ARCADE_TICK_MS', 100))),
        generator=SequenceGenerator.seeded(seed) if seed is not None else SequenceGenerator(),
        listener=listener,
        priming_ms=int(cfg.get('ARCADE_PRIMING_MS', 3000)),
        transition_ms=int(cfg.get('ARCADE_TRANSITION_MS', 600)),
        reveal_floor_ms=int(cfg.get('ARCADE_REVEAL_FLOOR_MS', 200)),
    )


def _bind_player(cabinet: ArcadeCabinet) -> None:
    """Point the cabinet's score store at whoever is signed in right now."""
    app = current_app._get_current_object()
    user_id = current_user.id if current_user.is_authenticated else None
    gateway = HighScoreGateway(app, user_id=user_id)

    def submit_score(game_name: str, score: int) -> None:
        session = cabinet.current.session if cabinet.current else None
        gateway.submit_score(
            game_name,
            score,
            level_reached=session.level if session else None,
            time_taken=session.duration_ms if session else None,
        )

    cabinet.high_scores = gateway.best_score
    cabinet.user_present = gateway.user_present
    cabinet.submit_score = submit_score


def _cabinet() -> ArcadeCabinet:
    sid = _get_sid()
    cabinet = _cabinets.get(sid)
    if cabinet is None:
        cabinet = _build_cabinet(sid, request.namespace)
        _cabinets[sid] = cabinet
    return cabinet


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    # Drop the player's session; pending timers are cancelled, nothing is submitted
    cabinet = _cabinets.pop(_get_sid(), None)
    if cabinet:
        cabinet.back_to_menu()


def handle_start_game(data):
    game = (data or {}).get('game')
    if not game:
        emit('error', {'message': 'game is required'})
        return
    cabinet = _cabinet()
    _bind_player(cabinet)
    try:
        controller = cabinet.select(game)
        controller.start()
    except UnknownGameError as exc:
        emit('error', {'message': str(exc)})
        return
    except StimulusError as exc:
        current_app.logger.error(f"[start-failed] game={game} error={exc}")
        emit('error', {'message': 'Game could not be started'})
        return
    current_app.logger.info(f"[start] sid={_get_sid()} game={game}")


def handle_submit_input(data):
    cabinet = _cabinets.get(_get_sid())
    accepted = False
    if cabinet and cabinet.current:
        accepted = cabinet.current.submit_input((data or {}).get('candidate'))
    emit('input_result', {'accepted': accepted})


def handle_press(data):
    cabinet = _cabinets.get(_get_sid())
    accepted = False
    if cabinet and cabinet.current:
        accepted = cabinet.current.press((data or {}).get('element'))
    emit('input_result', {'accepted': accepted})


def handle_quit_game(data=None):
    cabinet = _cabinets.get(_get_sid())
    if not cabinet or not cabinet.current or not cabinet.current.quit():
        emit('error', {'message': 'No game in progress'})


def handle_leave_game(data=None):
    cabinet = _cabinets.get(_get_sid())
    if cabinet:
        cabinet.back_to_menu()
    emit('left', {})


def handle_get_state(data=None):
    cabinet = _cabinets.get(_get_sid())
    emit('state_update', cabinet.current.snapshot() if cabinet and cabinet.current else {'state': 'menu'})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'start_game': handle_start_game,
        'submit_input': handle_submit_input,
        'press': handle_press,
        'quit_game': handle_quit_game,
        'leave_game': handle_leave_game,
        'get_state': handle_get_state,
        'ping': handle_ping,
    }
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for event, handler in handlers.items():
            socketio.on_event(event, handler, namespace=namespace)
