import dataclasses
import logging
import typing as t

import requests

from spysync.api_manager import APIManager
from spysync.config import SpySyncConfig, get_config
from spysync.exceptions import ServerRejection
from spysync.feedback import Notifier, Sound, notify
from spysync.models import User
from spysync.presence import TypingIndicator
from spysync.reconciler import StateReconciler
from spysync.router import EventRouter
from spysync.socket_manager import SocketManager
from spysync.storage import FileStore, KeyValueStore, RoomCache

log = logging.getLogger(__name__)


@dataclasses.dataclass
class GameClient:
    """A connected view of one user's room and game.

    Parameters
    ----------
    url
        Base URL of the game server. Defaults to ``config.server_url``.
    token
        Opaque credential from the authentication layer. When given, the
        socket is opened immediately.
    user
        The local user, e.g. ``{"_id": "U1", "username": "alice"}``.
    storage
        Durable key-value store for the room mirror. Defaults to a
        ``FileStore`` at ``config.storage_path``.
    sound, notifier
        Feedback sinks.
    config
        Configuration, defaults to the environment.

    Usage:
        with GameClient(token=token, user=user) as client:
            client.state.join_room("ABCD")
            client.state.send_message("hello")
    """

    url: str | None = None
    token: str | None = None
    user: User | dict | None = None
    storage: KeyValueStore | None = None
    sound: Sound | None = None
    notifier: Notifier | None = None
    config: SpySyncConfig | None = None
    sio: t.Any = dataclasses.field(default=None, repr=False)

    def __post_init__(self):
        if self.config is None:
            self.config = get_config()
        self.url = (self.url or self.config.server_url).rstrip("/")
        if not isinstance(self.user, User):
            self.user = User.model_validate(self.user or {})
        if self.storage is None:
            self.storage = FileStore(self.config.storage_path)

        self.api = APIManager(url=self.url, token=self.token)
        self.socket = SocketManager(url=self.url, config=self.config, sio=self.sio)
        self.cache = RoomCache(self.storage, key=self.config.room_storage_key)
        self.state = StateReconciler(
            socket=self.socket,
            user=self.user,
            credential=self.token,
            cache=self.cache,
            sound=self.sound,
            notifier=self.notifier,
            config=self.config,
        )
        self.router = EventRouter(self.socket)
        self.router.subscribe_many(self.state.handlers())
        self.typing = TypingIndicator(
            start=self.state.send_typing,
            stop=self.state.stop_typing,
            idle_timeout=self.config.typing_idle_timeout,
        )

        if self.token and not self.socket.connected:
            self.socket.connect(self.token)

    def join(self, room_code: str, as_spectator: bool = False) -> bool:
        """Enter a room through the REST API, then join its socket channel."""
        try:
            room = self.api.join_room(room_code, as_spectator=as_spectator)
        except requests.RequestException as e:
            return self._rest_failed("join_room", e)
        if room:
            self.state.set_room_state(room)
        return self.state.join_room(room_code)

    def create_room(self, max_players: int = 8, is_private: bool = False) -> bool:
        """Create a room through the REST API and join it."""
        try:
            room = self.api.create_room(max_players=max_players, is_private=is_private)
        except requests.RequestException as e:
            return self._rest_failed("create_room", e)
        if not room:
            log.error("Room creation returned no room")
            return False
        self.state.set_room_state(room)
        return self.state.join_room(self.state.room.room_code)

    def _rest_failed(self, event: str, error: requests.RequestException) -> bool:
        """Report a failed REST call to the notifier.

        The server's ``message`` is preferred over the transport error text.
        """
        message = str(error)
        response = error.response
        if response is not None:
            try:
                body = response.json()
            except ValueError:
                log.debug(f"{event} error response is not JSON")
            else:
                if isinstance(body, dict) and body.get("message"):
                    message = body["message"]
        log.error(f"{event} failed: {message}")
        notify(self.state.notifier, ServerRejection(message, event=event))
        return False

    def send_message(self, text: str) -> bool:
        sent = self.state.send_message(text)
        self.typing.message_sent()
        return sent

    def close(self) -> None:
        """Tear down subscriptions, pending waits and the connection."""
        self.router.close()
        self.typing.cancel()
        self.state.close()
        self.socket.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
