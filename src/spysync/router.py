"""Scoped event subscriptions on top of a shared socket."""

import functools
import logging
import typing as t

if t.TYPE_CHECKING:
    from spysync.socket_manager import SocketManager

log = logging.getLogger(__name__)

Handler = t.Callable[[dict], None]


class EventRouter:
    """One active handler per event kind, owned by a single subscriber.

    Frames are delivered in arrival order, one at a time. Once a kind is
    unsubscribed (or the router is closed) frames of that kind are dropped
    here even if the transport still delivers them.

    Usage:
        with EventRouter(socket) as router:
            router.subscribe("room_updated", on_room_updated)
    """

    def __init__(self, socket: "SocketManager"):
        self._socket = socket
        self._handlers: dict[str, Handler] = {}
        self._dispatchers: dict[str, t.Callable] = {}
        self._closed = False

    @property
    def kinds(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, kind: str, handler: Handler) -> None:
        """Register ``handler`` for ``kind``, replacing any previous one."""
        if self._closed:
            raise RuntimeError(f"Cannot subscribe to '{kind}' on a closed router")
        self._handlers[kind] = handler
        if kind not in self._dispatchers:
            dispatcher = functools.partial(self._dispatch, kind)
            self._dispatchers[kind] = dispatcher
            self._socket.on(kind, dispatcher)

    def subscribe_many(self, handlers: t.Mapping[str, Handler]) -> None:
        for kind, handler in handlers.items():
            self.subscribe(kind, handler)

    def unsubscribe(self, kind: str) -> None:
        self._handlers.pop(kind, None)
        dispatcher = self._dispatchers.pop(kind, None)
        if dispatcher is not None:
            self._socket.off(kind, dispatcher)

    def close(self) -> None:
        """Tear down every subscription."""
        for kind in list(self._handlers):
            self.unsubscribe(kind)
        self._closed = True

    def _dispatch(self, kind: str, *args) -> None:
        handler = self._handlers.get(kind)
        if handler is None:
            log.debug(f"Dropping '{kind}' frame: no active subscriber")
            return
        data = args[0] if args else {}
        if data is None:
            data = {}
        if not isinstance(data, dict):
            log.warning(f"Dropping '{kind}' frame with non-object payload: {data!r}")
            return
        try:
            handler(data)
        except Exception as e:
            log.error(f"Error handling '{kind}' event: {e}", exc_info=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
