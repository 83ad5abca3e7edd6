import os
import sys
from collections import defaultdict

import pytest

# Ensure the backend root (containing the `trivia` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from trivia import create_app, db, socketio
from trivia.services.game.catalog import parse_question
from trivia.services.game.errors import PersistenceError
from trivia.services.game.room import RoomSettings
from trivia.services.game.runtime import build_runtime
from trivia.services.game.scheduler import TimerHandle


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:5173']
    LOG_LEVEL = 'WARNING'
    ROOM_IDS = [1, 2]
    QUESTION_DURATION_SEC = 30
    ANSWER_DURATION_SEC = 15
    AUTOPLAY_START_DELAY_SEC = 3
    RECONNECT_GRACE_SEC = 300
    HOLDING_SWEEP_INTERVAL_SEC = 600
    MAX_NAME_LENGTH = 20
    MAX_PHOTO_CHARS = 70000
    LEADERBOARD_SIZE = 10
    ENABLE_SWEEPER = False


def question_data(n, correct=0, active=True):
    return {
        'id': f'q{n}',
        'question': {'en': f'Question {n}?', 'fr': f'Question {n} ?'},
        'options': ['A', 'B', 'C', 'D'],
        'correct': correct,
        'explanation': f'Because {n}.',
        'active': active,
    }


class FakeClock:
    """Epoch milliseconds that only move when a test says so."""

    def __init__(self, start_ms=1_700_000_000_000):
        self.now_ms = start_ms

    def __call__(self):
        return self.now_ms

    def advance(self, seconds):
        self.now_ms += int(seconds * 1000)


class ManualScheduler:
    """Scheduler whose timers fire only when the test advances time."""

    def __init__(self, clock):
        self.clock = clock
        self._pending = []
        self._seq = 0
        self._callbacks = {}

    def call_later(self, delay, callback, kind, label=''):
        handle = TimerHandle(kind, label)
        self._seq += 1
        self._pending.append((self.clock.now_ms + int(delay * 1000), self._seq, handle, callback))
        self._callbacks[id(handle)] = callback
        return handle

    def pending(self):
        return [entry[2] for entry in self._pending if not entry[2].cancelled]

    def advance(self, seconds):
        target = self.clock.now_ms + int(seconds * 1000)
        while True:
            due = [e for e in self._pending if e[0] <= target and not e[2].cancelled]
            if not due:
                break
            entry = min(due, key=lambda e: (e[0], e[1]))
            self._pending.remove(entry)
            self.clock.now_ms = max(self.clock.now_ms, entry[0])
            entry[3](entry[2])
        self.clock.now_ms = target
        self._pending = [e for e in self._pending if not e[2].cancelled]

    def force_fire(self, handle):
        """Run a callback even if it was cancelled, like a timer that lost the race."""
        self._callbacks[id(handle)](handle)


class RecordingTransport:
    def __init__(self):
        self.sent = []
        self.groups = defaultdict(set)

    def emit(self, event, data, to):
        self.sent.append((to, event, data))

    def join(self, sid, group):
        self.groups[group].add(sid)

    def leave(self, sid, group):
        self.groups[group].discard(sid)

    def events(self, event, to=None):
        return [data for target, name, data in self.sent if name == event and (to is None or target == to)]

    def targets(self, event):
        return [target for target, name, _ in self.sent if name == event]

    def clear(self):
        self.sent = []


class InMemoryRepository:
    def __init__(self, questions=()):
        self.saved = list(questions)
        self.version = 1
        self.fail = False

    def load(self):
        return list(self.saved)

    def current_version(self):
        return self.version, None

    def save(self, questions):
        if self.fail:
            raise PersistenceError('Failed to save the question catalog')
        self.saved = list(questions)
        self.version += 1
        return self.version


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture()
def transport():
    return RecordingTransport()


@pytest.fixture()
def repository():
    return InMemoryRepository([parse_question(question_data(n, correct=n % 4)) for n in range(2)])


@pytest.fixture()
def settings():
    return RoomSettings(room_ids=(1, 2))


@pytest.fixture()
def runtime(settings, repository, transport, scheduler, clock):
    rt = build_runtime(settings, repository, transport, scheduler, clock=clock)
    rt.store.load()
    return rt


@pytest.fixture()
def controller(runtime):
    return runtime.controller


@pytest.fixture()
def presence(runtime):
    return runtime.presence


@pytest.fixture()
def flask_app(clock):
    application = create_app(TestConfig, scheduler=ManualScheduler(clock), clock=clock)
    with application.app_context():
        application.extensions['trivia'].store.import_questions(
            [question_data(n, correct=n % 4) for n in range(2)], replace_all=True
        )
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        test_client.get_received('/ws')
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        try:
            test_client.disconnect(namespace='/ws')
        except Exception:
            pass
