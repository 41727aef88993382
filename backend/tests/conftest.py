import pytest

from showdown.config import Config
from showdown.game import service
from showdown.game.machine import apply_move
from showdown.game.models import new_game_state
from showdown.game.rng import SharedRandom
from showdown.server import create_app


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SOCKETIO_ASYNC_MODE = "threading"
    ROOM_SWEEPER_ENABLED = False
    TRUST_PROXY_HEADERS = False
    YOUTUBE_API_KEY = "test-key"
    LOG_LEVEL = "WARNING"


@pytest.fixture(autouse=True)
def clean_rooms():
    with service._lock:
        service._rooms.clear()
    yield
    with service._lock:
        service._rooms.clear()


@pytest.fixture()
def app_and_socketio():
    return create_app(TestConfig)


@pytest.fixture()
def flask_app(app_and_socketio):
    return app_and_socketio[0]


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(app_and_socketio):
    flask_app, socketio = app_and_socketio
    clients = []

    def _make():
        c = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(c)
        return c

    yield _make
    for c in clients:
        try:
            c.disconnect()
        except Exception:
            pass


class Room:
    """Drives the reducer directly, one move at a time."""

    def __init__(self, seed="test-seed", **settings):
        self.state = new_game_state(**settings)
        self.rng = SharedRandom(seed)
        self.last = None

    def move(self, seat, name, *args):
        self.last = apply_move(self.state, name, seat, list(args), self.rng)
        self.state = self.last.state
        return self.last


def _song(video_id, title):
    return {
        "videoId": video_id,
        "originalTitle": title,
        "customTitle": title,
        "thumbnail": f"https://img.example/{video_id}.jpg",
        "startSeconds": 0,
    }


@pytest.fixture()
def song():
    return _song


@pytest.fixture()
def make_room():
    return Room


@pytest.fixture()
def room():
    return Room()


@pytest.fixture()
def two_player_guessing():
    """Host "0" and peer "1" in the guessing phase with distinct songs picked."""
    r = Room()
    r.move("0", "setPlayerName", "Host")
    r.move("1", "setPlayerName", "Peer")
    r.move("0", "startGame")
    r.move("0", "setTheme", "Test")
    r.move("0", "confirmTheme")
    r.move("0", "selectSong", _song("vid-host", "Host Anthem"))
    r.move("1", "selectSong", _song("vid-peer", "Peer Ballad"))
    assert r.state.phase == "guessing"
    return r
