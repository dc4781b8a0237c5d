"""Local view of the room, game, chat and typing state.

The server is the source of truth. Room and game snapshots are replaced
wholesale, never patched; roster deltas without a snapshot trigger a
``get_room_state`` request. Chat is the only place where local optimistic
entries exist, and they are reconciled against server confirmations.
"""

import functools
import logging
import random
import threading
import typing as t
import uuid
from datetime import datetime, timezone

from pydantic import ValidationError
from socketio.exceptions import SocketIOError

from spysync import socket_events as ev
from spysync.config import SpySyncConfig, get_config
from spysync.exceptions import (
    ConnectionTimeout,
    PreconditionUnmet,
    ServerRejection,
    SessionClosed,
)
from spysync.feedback import Notifier, Sound, notify, play_event_cues
from spysync.models import ChatMessage, GameState, Room, Sender, User, normalize_id
from spysync.presence import TypingSet
from spysync.storage import RoomCache

if t.TYPE_CHECKING:
    from spysync.socket_manager import SocketManager

log = logging.getLogger(__name__)

CATEGORIES = (
    "food",
    "animals",
    "places",
    "movies",
    "jobs",
    "sports",
    "countries",
    "objects",
)

Listener = t.Callable[["StateReconciler"], None]


def guarded(f):
    """Decorator for outbound actions.

    A missing precondition or an unavailable connection abandons the action:
    it is logged, connection failures are passed to the notifier, and the
    action returns False instead of raising.
    """

    @functools.wraps(f)
    def wrapped(self: "StateReconciler", *args, **kwargs):
        try:
            return f(self, *args, **kwargs)
        except PreconditionUnmet as e:
            log.warning(f"{f.__name__}: {e}")
            return False
        except SessionClosed as e:
            log.info(f"{f.__name__} abandoned: {e}")
            return False
        except ConnectionTimeout as e:
            log.warning(f"{f.__name__}: {e}")
            notify(self.notifier, e)
            return False

    return wrapped


class StateReconciler:
    """Owns the ``Room``, ``GameState``, chat and typing snapshot.

    Parameters
    ----------
    socket
        Transport used for outbound requests.
    user
        The local user; its id excludes own typing signals and matches own
        chat confirmations.
    credential
        Token used when an action has to (re)open the transport.
    cache
        Persisted room mirror. The initial room is seeded from it.
    sound, notifier
        Feedback sinks, silent/logging by default.
    config
        Timeouts and pending-message policy.
    rng, clock
        Injected for deterministic category choice and message timestamps.
    """

    def __init__(
        self,
        socket: "SocketManager",
        user: User | dict | None = None,
        credential: str | None = None,
        cache: RoomCache | None = None,
        sound: Sound | None = None,
        notifier: Notifier | None = None,
        config: SpySyncConfig | None = None,
        rng: random.Random | None = None,
        clock: t.Callable[[], datetime] | None = None,
    ):
        self.socket = socket
        self.user = user if isinstance(user, User) else User.model_validate(user or {})
        self.credential = credential
        self.cache = cache
        self.sound = sound or Sound()
        self.notifier = notifier or Notifier()
        self.config = config or get_config()
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._lock = threading.RLock()
        self._persist_lock = threading.Lock()
        self._listeners: list[Listener] = []
        self._closed = False

        self._room: Room | None = cache.load() if cache is not None else None
        self._game: GameState | None = None
        self._messages: list[ChatMessage] = []
        self.typing = TypingSet()
        if self._room is not None:
            log.info(f"Seeded room {self._room.room_code} from persisted snapshot")

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def room(self) -> Room | None:
        return self._room

    @property
    def game(self) -> GameState | None:
        return self._game

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        with self._lock:
            return tuple(self._messages)

    @property
    def typing_users(self) -> tuple[str, ...]:
        return self.typing.names

    @property
    def closed(self) -> bool:
        return self._closed

    def current_player(self):
        """The local user's entry in the room roster, if any."""
        room = self._room
        if room is None:
            return None
        return room.find_player(self.user.user_id)

    def is_own_message(self, message: ChatMessage) -> bool:
        own = self.user.user_id
        return own is not None and message.sender.user_id == own

    def typing_label(self) -> str:
        return self.typing.label()

    def add_listener(self, listener: Listener) -> t.Callable[[], None]:
        """Call ``listener(self)`` after every state change.

        Returns
        -------
        Callable
            Removes the listener again.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def close(self) -> None:
        """Stop applying inbound frames and refuse further actions."""
        self._closed = True
        self._listeners.clear()

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                log.error(f"State listener failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def handlers(self) -> dict[str, t.Callable[[dict], None]]:
        """Event kind -> handler table for the router."""
        table: dict[str, t.Callable[[dict], None]] = {}
        for kind in ev.ROOM_SNAPSHOT_EVENTS:
            table[kind] = functools.partial(self.on_room_snapshot, kind)
        for kind in ev.ROSTER_EVENTS:
            table[kind] = functools.partial(self.on_roster_change, kind)
        for kind in ev.GAME_EVENTS:
            table[kind] = functools.partial(self.on_game_event, kind)
        for kind in (ev.ROOM_ERROR, ev.ERROR):
            table[kind] = functools.partial(self.on_server_error, kind)
        table[ev.ROOM_LEFT] = self.on_room_left
        table[ev.MESSAGE_RECEIVED] = self.on_message_received
        table[ev.TYPING_STARTED] = self.on_typing_start
        table[ev.TYPING_STOPPED] = self.on_typing_stop
        return table

    def on_room_snapshot(self, kind: str, data: dict) -> None:
        """Replace the room with the snapshot carried by ``data``.

        Chat and typing are reset only when the snapshot starts a new
        membership (``room_joined``).
        """
        if self._closed:
            return
        raw = data.get("room")
        if not raw:
            log.debug(f"'{kind}' without room payload ignored")
            return
        try:
            room = Room.model_validate(raw)
        except ValidationError as e:
            log.warning(f"Ignoring malformed room snapshot from '{kind}': {e}")
            return

        with self._lock:
            if kind == ev.ROOM_JOINED:
                self._messages.clear()
                self.typing.clear()
            self._room = room
        self._persist()
        log.info(
            f"{kind}: room {room.room_code}, players: "
            f"{[p.display_name for p in room.players]}"
        )
        if kind == ev.ROOM_JOINED:
            play_event_cues(self.sound, kind)
        self._changed()

    def on_room_left(self, data: dict) -> None:
        if self._closed:
            return
        self._reset()
        log.info("Room left")
        self._changed()

    def on_server_error(self, kind: str, data: dict) -> None:
        if self._closed:
            return
        message = data.get("message")
        log.error(f"Server reported '{kind}': {data}")
        if message:
            notify(self.notifier, ServerRejection(message, event=kind))

    def on_roster_change(self, kind: str, data: dict) -> None:
        """Handle ``player_joined``/``player_left``.

        A roster delta is never applied to the local player list; either the
        frame carries a full snapshot or a fresh one is requested.
        """
        if self._closed:
            return
        if data.get("room"):
            self.on_room_snapshot(kind, data)
            return
        room = self._room
        if room is None:
            log.warning(
                f"'{kind}' ({data.get('username')}) without room data and no "
                "local room, waiting for room_updated"
            )
            return
        log.info(f"'{kind}' without room data, requesting room state")
        if not self.socket.connected:
            log.warning("Cannot request room state: socket not connected")
            return
        self._emit(ev.GetRoomState(room_code=room.room_code))

    def on_game_event(self, kind: str, data: dict) -> None:
        """Replace the game with the embedded snapshot, if the frame has one."""
        if self._closed:
            return
        raw = data.get("game")
        replaced = False
        if raw:
            try:
                game = GameState.model_validate(raw)
            except ValidationError as e:
                log.warning(f"Ignoring malformed game snapshot from '{kind}': {e}")
            else:
                with self._lock:
                    self._game = game
                replaced = True
                log.debug(f"{kind}: game {game.game_id} phase={game.phase}")
        play_event_cues(self.sound, kind)
        if replaced:
            self._changed()

    def on_message_received(self, data: dict) -> None:
        if self._closed:
            return
        raw = data.get("message")
        if not isinstance(raw, dict):
            log.warning(f"Message received but data structure is invalid: {data}")
            return
        try:
            message = ChatMessage.model_validate(raw)
        except ValidationError as e:
            log.warning(f"Ignoring malformed chat message: {e}")
            return
        message.pending = False
        with self._lock:
            self._expire_pending()
            changed = self._reconcile(message)
        if changed:
            self._changed()

    def on_typing_start(self, data: dict) -> None:
        if self._closed:
            return
        name = data.get("username")
        if not name:
            return
        user_id = normalize_id(data.get("userId"))
        if user_id is not None and user_id == self.user.user_id:
            return
        with self._lock:
            self.typing.add(name)
        self._changed()

    def on_typing_stop(self, data: dict) -> None:
        if self._closed:
            return
        name = data.get("username")
        if not name:
            return
        with self._lock:
            self.typing.discard(name)
        self._changed()

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        """Mirror the current room to the cache outside the snapshot lock."""
        if self.cache is None:
            return
        with self._persist_lock:
            room = self._room
            if room is not None:
                self.cache.save(room)

    def _reset(self) -> None:
        with self._lock:
            self._room = None
            self._game = None
            self._messages.clear()
            self.typing.clear()
        if self.cache is not None:
            with self._persist_lock:
                self.cache.clear()

    def _reconcile(self, message: ChatMessage) -> bool:
        """Merge a confirmed message into the chat sequence.

        1. the oldest pending echo with the same sender and text is removed,
        2. a message whose id is already present is discarded,
        3. otherwise the message is appended.

        Returns True if the sequence changed.
        """
        superseded = False
        sender = message.sender.user_id
        if sender is not None:
            for index, entry in enumerate(self._messages):
                if (
                    entry.pending
                    and entry.sender.user_id == sender
                    and entry.text == message.text
                ):
                    del self._messages[index]
                    superseded = True
                    break

        if message.id is not None and any(m.id == message.id for m in self._messages):
            log.debug(f"Message {message.id} already present, skipping")
            return superseded

        self._messages.append(message)
        return True

    def _expire_pending(self) -> int:
        timeout = self.config.pending_timeout
        if timeout is None:
            return 0
        now = self._clock()
        expired = 0
        for entry in self._messages:
            if not entry.pending or entry.failed or entry.created_at is None:
                continue
            if (now - entry.created_at).total_seconds() > timeout:
                entry.failed = True
                expired += 1
        if expired:
            log.warning(f"{expired} chat message(s) not confirmed after {timeout}s")
        return expired

    def expire_pending(self) -> int:
        """Mark pending messages older than ``config.pending_timeout`` as failed.

        Failed entries stay pending, so a late confirmation still replaces
        them. Returns the number of newly failed messages.
        """
        with self._lock:
            expired = self._expire_pending()
        if expired:
            self._changed()
        return expired

    # ------------------------------------------------------------------
    # Outbound actions
    # ------------------------------------------------------------------

    def _require_open(self) -> None:
        if self._closed:
            raise PreconditionUnmet("Session is closed")

    def _require_room(self) -> Room:
        self._require_open()
        room = self._room
        if room is None:
            raise PreconditionUnmet("No room available")
        return room

    def _require_game(self) -> GameState:
        self._require_open()
        game = self._game
        if game is None:
            raise PreconditionUnmet("No game available")
        if game.game_id is None:
            raise PreconditionUnmet("Game has no id")
        return game

    def _route_code(self) -> str:
        """Room code used to address room-scoped requests."""
        self._require_open()
        room, game = self._room, self._game
        if room is None and game is None:
            raise PreconditionUnmet("No room or game available")
        code = room.room_code if room is not None else game.room_id
        if not code:
            raise PreconditionUnmet("No room code available")
        return code

    def _ensure_connected(self, timeout: float) -> None:
        if self.socket.connected:
            return
        if not self.credential:
            raise PreconditionUnmet("No credential available for socket connection")
        log.warning("Socket not connected, attempting to connect...")
        self.socket.connect(self.credential)
        self.socket.wait_connected(timeout)

    def _emit(self, request: ev.Request) -> None:
        if not self.socket.connected:
            raise PreconditionUnmet(f"Cannot send '{request.event_name()}': socket not connected")
        try:
            self.socket.emit(request.event_name(), request.payload())
        except SocketIOError as e:
            raise PreconditionUnmet(
                f"Cannot send '{request.event_name()}': {e}"
            ) from e

    @guarded
    def join_room(self, room_code: str) -> bool:
        """Join ``room_code``, connecting first if needed."""
        self._require_open()
        if not room_code:
            raise PreconditionUnmet("No room code provided")
        self._ensure_connected(self.config.connect_timeout)
        log.info(f"Joining room via socket: {room_code}")
        self._emit(ev.JoinRoom(room_code=room_code))
        return True

    @guarded
    def leave_room(self) -> bool:
        """Ask the server to leave; state is cleared on ``room_left``."""
        room = self._require_room()
        self._emit(ev.LeaveRoom(room_code=room.room_code))
        return True

    def leave_room_local(self) -> None:
        """Forget the room immediately without telling the server."""
        self._reset()
        self._changed()

    def set_room_state(self, room: Room | dict | None) -> None:
        """Seed the room from an out-of-band source such as a REST response."""
        if room is None:
            self.leave_room_local()
            return
        if not isinstance(room, Room):
            room = Room.model_validate(room)
        with self._lock:
            self._room = room
        self._persist()
        self._changed()

    @guarded
    def toggle_ready(self) -> bool:
        room = self._require_room()
        if self.user.user_id is None:
            raise PreconditionUnmet("No local user")
        player = room.find_player(self.user.user_id)
        is_ready = not (player.is_ready if player is not None else False)
        self._emit(ev.PlayerReady(room_code=room.room_code, is_ready=is_ready))
        return True

    @guarded
    def start_game(self, category: str | None = None) -> bool:
        """Start the game, with a random category when none is given."""
        room = self._require_room()
        category = category or self._rng.choice(CATEGORIES)
        self._emit(ev.GameStart(room_code=room.room_code, category=category))
        return True

    @guarded
    def submit_clue(self, clue: str) -> bool:
        game = self._require_game()
        self._emit(ev.SubmitClue(game_id=game.game_id, clue=clue))
        return True

    @guarded
    def cast_vote(self, target: t.Any) -> bool:
        game = self._require_game()
        voted_for_id = normalize_id(target)
        if voted_for_id is None:
            raise PreconditionUnmet("No vote target provided")
        self._emit(ev.CastVote(game_id=game.game_id, voted_for_id=voted_for_id))
        return True

    @guarded
    def submit_spy_guess(self, word: str) -> bool:
        game = self._require_game()
        self._emit(ev.SubmitSpyGuess(game_id=game.game_id, word=word))
        return True

    @guarded
    def update_avatar(self, avatar: str) -> bool:
        room = self._require_room()
        self._emit(ev.UpdateAvatar(room_code=room.room_code, avatar=avatar))
        return True

    @guarded
    def update_name(self, username: str) -> bool:
        room = self._require_room()
        self._emit(ev.UpdateName(room_code=room.room_code, username=username))
        return True

    @guarded
    def send_typing(self) -> bool:
        self._emit(ev.TypingStart(room_code=self._route_code()))
        return True

    @guarded
    def stop_typing(self) -> bool:
        self._emit(ev.TypingStop(room_code=self._route_code()))
        return True

    @guarded
    def send_message(self, text: str) -> bool:
        """Send a chat message and show it immediately as pending.

        If the transport is down, one reconnect is attempted, bounded by
        ``config.send_retry_delay``; the message is dropped if it fails.
        """
        text = (text or "").strip()
        if not text:
            raise PreconditionUnmet("Empty message")
        room_code = self._route_code()
        if not self.socket.connected:
            if not self.credential:
                raise PreconditionUnmet("Cannot send message: socket not connected")
            log.warning("Cannot send message: socket not connected, retrying once")
            self.socket.connect(self.credential)
            self.socket.wait_connected(self.config.send_retry_delay)

        pending = ChatMessage(
            id=f"temp-{uuid.uuid4().hex}",
            sender=Sender(
                user_id=self.user.user_id, username=self.user.username or "You"
            ),
            text=text,
            created_at=self._clock(),
            pending=True,
        )
        with self._lock:
            self._expire_pending()
            self._messages.append(pending)
        self._changed()
        log.debug(f"Sending message to {room_code}: {text!r}")
        try:
            self._emit(ev.SendMessage(room_code=room_code, message=text))
        except PreconditionUnmet:
            with self._lock:
                pending.failed = True
            self._changed()
            raise
        return True
