import copy
import os
import sys
import pytest

# Ensure the backend root (containing the `candyrush` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from candyrush import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    GAME_CONFIG_PATH = os.path.join(BACKEND_ROOT, 'data', 'game-config.json')
    FEEDBACK_DURATION_SEC = 0
    TIMER_TICK_SEC = 0
    TIMER_HEARTBEAT_SEC = 0
    LEADERBOARD_ENABLED = True
    LEADERBOARD_LIMIT = 10


CONFIG_DOC = {
    'gameSettings': {'totalRounds': 2, 'timeLimitPerRound': 30, 'version': '2.1.0'},
    'rounds': [
        {
            'roundNumber': 1,
            'timeLimit': 3,
            'initialCandies': [
                {'name': 'Lollipop', 'quantity': 5, 'color': '#FF1493', 'emoji': '🍭'},
                {'name': 'Chocolate', 'quantity': 4, 'color': '#8B4513', 'emoji': '🍫'},
                {'name': 'Mint', 'quantity': 2, 'color': '#98FF98', 'emoji': '🍬'},
            ],
            'children': [
                {'id': 'ghost', 'isSpecial': False, 'emoji': '👻',
                 'requests': [{'candyName': 'Lollipop', 'quantity': 3}]},
                {'id': 'witch', 'isSpecial': True, 'emoji': '🧙', 'hatedCandy': 'Mint',
                 'requests': [{'candyName': 'Lollipop', 'quantity': 2},
                              {'candyName': 'Chocolate', 'quantity': 1}]},
            ],
        },
        {
            'roundNumber': 2,
            'timeLimit': 2,
            'initialCandies': [
                {'name': 'Candy Corn', 'quantity': 3, 'color': '#FFA500', 'emoji': '🌽'},
            ],
            'children': [
                {'id': 'bat', 'isSpecial': False, 'emoji': '🦇',
                 'requests': [{'candyName': 'Candy Corn', 'quantity': 3}]},
            ],
        },
    ],
}


@pytest.fixture()
def config_doc():
    return copy.deepcopy(CONFIG_DOC)


@pytest.fixture()
def app_factory():
    """Build an app with extra config attributes layered over TestConfig."""
    contexts = []

    def _make(**overrides):
        config_class = type('OverrideConfig', (TestConfig,), overrides)
        application = create_app(config_class)
        ctx = application.app_context()
        ctx.push()
        db.create_all()
        contexts.append(ctx)
        return application

    yield _make
    for ctx in reversed(contexts):
        db.session.remove()
        db.drop_all()
        ctx.pop()


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import candyrush.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
