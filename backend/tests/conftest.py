import os
import sys
import pytest

# Ensure the backend root (containing the `app` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from app import create_app, db, socketio
from app.services.arcade import ManualScheduler, SequenceGenerator, TimerService


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    ARCADE_PRIMING_MS = 3000
    ARCADE_TRANSITION_MS = 600
    ARCADE_REVEAL_FLOOR_MS = 200
    ARCADE_TICK_MS = 100
    ARCADE_SEED = 7
    ARCADE_LEADERBOARD_SIZE = 10
    ARCADE_LEADERBOARD_DAYS = 7
    ARCADE_XP_MAX_SCORE = 200


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import app.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def clock(flask_app):
    return flask_app.extensions['arcade_scheduler']


@pytest.fixture()
def sio_client(flask_app, client):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=client,
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def auth_client(client):
    res = client.post('/register', json={'username': 'alice', 'password': 'secret'})
    assert res.status_code == 201
    return client


# ---- engine fixtures (no Flask involved) ----

@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def timers(scheduler):
    return TimerService(scheduler, tick_ms=100)


@pytest.fixture()
def generator():
    return SequenceGenerator.seeded(1234)


@pytest.fixture()
def submissions():
    return []
