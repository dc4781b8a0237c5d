import random
import typing as t
from unittest.mock import MagicMock

import pytest
from socketio.exceptions import BadNamespaceError
from socketio.exceptions import ConnectionError as SocketConnectionError

from spysync.config import SpySyncConfig
from spysync.feedback import Notifier, Sound
from spysync.models import User
from spysync.reconciler import StateReconciler
from spysync.router import EventRouter
from spysync.socket_manager import SocketManager
from spysync.storage import MemoryStore, RoomCache


class FakeSocketClient:
    """In-memory stand-in for ``socketio.Client``.

    ``mode`` controls what ``connect`` does: "ok" connects immediately,
    "refuse" raises like an unreachable server, "hang" does nothing.
    """

    def __init__(self, mode: str = "ok"):
        self.mode = mode
        self.connected = False
        self.handlers: dict[str, dict[str, t.Callable]] = {}
        self.emitted: list[tuple[str, dict]] = []
        self.connect_calls: list[dict] = []

    def on(self, event, handler=None, namespace=None):
        self.handlers.setdefault(namespace or "/", {})[event] = handler

    def start_background_task(self, target, *args, **kwargs):
        target(*args, **kwargs)

    def connect(self, url, auth=None, wait=True, wait_timeout=1, **kwargs):
        self.connect_calls.append({"url": url, "auth": auth})
        if self.mode == "refuse":
            raise SocketConnectionError("Connection refused by the server")
        if self.mode == "ok":
            self.connected = True
            self.trigger("connect")

    def disconnect(self):
        self.connected = False
        self.trigger("disconnect")

    def emit(self, event, data=None, **kwargs):
        if not self.connected:
            raise BadNamespaceError("/ is not a connected namespace.")
        self.emitted.append((event, data))

    def trigger(self, event, *args):
        """Deliver an inbound frame the way the socket.io client would."""
        handler = self.handlers.get("/", {}).get(event)
        if handler is not None:
            return handler(*args)

    def sent(self, event: str) -> list[dict]:
        return [data for name, data in self.emitted if name == event]


def room_payload(code: str = "R1", players: t.Iterable[str] = ("U1",), **extra) -> dict:
    return {
        "roomCode": code,
        "roomId": f"id-{code}",
        "status": "lobby",
        "players": [
            {"userId": pid, "username": f"user-{pid}", "isReady": False}
            for pid in players
        ],
        **extra,
    }


@pytest.fixture
def config(tmp_path):
    return SpySyncConfig(
        server_url="http://test.local",
        connect_timeout=0.2,
        poll_interval=0.01,
        send_retry_delay=0.05,
        storage_path=str(tmp_path / "storage"),
        pending_timeout=None,
        typing_idle_timeout=0.05,
    )


@pytest.fixture
def fake_sio():
    return FakeSocketClient()


@pytest.fixture
def socket(fake_sio, config):
    return SocketManager(config=config, sio=fake_sio)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cache(store):
    return RoomCache(store, key="room")


@pytest.fixture
def user():
    return User.model_validate({"_id": "U1", "username": "alice"})


@pytest.fixture
def sound():
    return MagicMock(spec=Sound)


@pytest.fixture
def notifier():
    return MagicMock(spec=Notifier)


@pytest.fixture
def reconciler(socket, user, cache, sound, notifier, config):
    return StateReconciler(
        socket=socket,
        user=user,
        credential="token-123",
        cache=cache,
        sound=sound,
        notifier=notifier,
        config=config,
        rng=random.Random(0),
    )


@pytest.fixture
def state(reconciler, socket):
    """A connected reconciler wired to the fake transport through a router."""
    router = EventRouter(socket)
    router.subscribe_many(reconciler.handlers())
    socket.connect("token-123")
    yield reconciler
    router.close()
