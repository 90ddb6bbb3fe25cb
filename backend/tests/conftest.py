import os
import random
import sys
import pytest

# Ensure the backend root (containing the `mathrush` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from mathrush import create_app, db, socketio
from mathrush.services.rounds import (
    GeneratedQuestion,
    Publisher,
    QuestionGenerator,
    build_coordinator,
)


class RecordingPublisher(Publisher):
    """Keeps every broadcast in memory instead of emitting it."""

    def __init__(self):
        self.sent = []

    def broadcast(self, event, payload):
        self.sent.append((event, payload))

    def of(self, event):
        return [payload for name, payload in self.sent if name is event]


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CLIENT_ORIGINS = ['http://localhost:5173']
    NEXT_ROUND_DELAY_SEC = 6
    MATCH_RESTART_DELAY_SEC = 10
    ROUNDS_PER_MATCH = 0
    LEADERBOARD_SIZE = 10
    ANSWER_TOLERANCE = 0.01
    MAX_DISPLAY_NAME_LENGTH = 30
    BOOTSTRAP_ON_START = False


def open_fixed_round(coordinator, expression='7 + 5', answer=12.0, tier=1, round_index=1):
    """Put a known question in play, bypassing the random generator."""
    coordinator.rounds.ensure_row()
    question_id = coordinator.rounds.create_question(
        GeneratedQuestion(expression=expression, answer_value=answer, difficulty_tier=tier, round_index=round_index)
    )
    coordinator.rounds.open_round(question_id)
    return question_id


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import mathrush.models  # noqa: F401
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
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def publisher():
    return RecordingPublisher()


@pytest.fixture()
def coordinator(flask_app, publisher):
    coord = build_coordinator(
        flask_app,
        socketio,
        publisher=publisher,
        generator=QuestionGenerator(random.Random(1234)),
    )
    coord.rounds.ensure_row()
    return coord
