import os
import sys

import pytest

# Ensure the backend root (containing the `venti` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from venti.game.registry import SessionRegistry
from venti.game.settings import GameSettings
from venti.game.timers import TimerHandle
from venti.server import create_app


class ManualTimers:
    """Timer service driven by the test instead of a clock."""

    def __init__(self):
        self.scheduled = []

    def schedule(self, delay, callback, *args):
        handle = TimerHandle(delay)
        self.scheduled.append((handle, callback, args))
        return handle

    def live(self):
        return [entry for entry in self.scheduled if not entry[0].cancelled]

    def fire(self):
        live = self.live()
        assert len(live) == 1, f"expected one live timer, got {len(live)}"
        handle, callback, args = live[0]
        self.scheduled.remove(live[0])
        callback(*args)
        return args

    def fire_late(self, entry):
        """Deliver a callback regardless of cancellation, like a racing wake-up."""
        _, callback, args = entry
        callback(*args)


class RecordingBroadcaster:
    def __init__(self):
        self.events = []
        self.evicted = []
        self.closed_rooms = []

    def emit(self, event, payload, to=None):
        self.events.append((event, payload, to))

    def evict(self, sid, code):
        self.evicted.append((sid, code))

    def close_room(self, code):
        self.closed_rooms.append(code)

    def named(self, event, to=None):
        return [p for (e, p, t) in self.events if e == event and (to is None or t == to)]

    def last(self, event, to=None):
        found = self.named(event, to=to)
        assert found, f"no {event} emitted"
        return found[-1]

    def clear(self):
        self.events.clear()


@pytest.fixture()
def settings():
    return GameSettings()


@pytest.fixture()
def timers():
    return ManualTimers()


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def registry(settings, broadcaster, timers):
    return SessionRegistry(settings, broadcaster, timers)


@pytest.fixture()
def room(registry):
    """Room ABCD with Alice thinking and Bob guessing."""
    session = registry.create("ABCD", "alice", "Alice")
    session.announce_creation()
    session.join("bob", "Bob")
    return session


class TestConfig:
    TESTING = True
    SECRET_KEY = "test-secret"
    CORS_ORIGINS = "*"
    TRUST_PROXY_HEADERS = False
    SOCKETIO_ASYNC_MODE = "threading"
    TURN_TIMEOUT_SEC = 60
    MAX_QUESTIONS = 20
    GUESS_ATTEMPTS = 2
    MAX_TIMEOUTS = 3
    DONT_KNOW_ANSWER = "Non so"
    THINKER_EXIT_POLICY = "teardown"
    LATE_JOIN_POLICY = "append"
    ROTATE_THINKER = False
    MAX_NAME_LENGTH = 24
    MAX_TEXT_LENGTH = 200


@pytest.fixture()
def app_timers():
    return ManualTimers()


@pytest.fixture()
def flask_app(app_timers):
    application, socketio = create_app(TestConfig, timers=app_timers)
    application.extensions["test_socketio"] = socketio
    yield application


@pytest.fixture()
def socketio(flask_app):
    return flask_app.extensions["test_socketio"]


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app, socketio):
    clients = []

    def _make():
        c = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(c)
        return c

    yield _make
    for c in clients:
        try:
            if c.is_connected():
                c.disconnect()
        except Exception:
            pass
