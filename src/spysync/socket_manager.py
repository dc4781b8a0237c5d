import functools
import logging
import threading
import time
import typing as t

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from spysync.config import SpySyncConfig, get_config
from spysync.exceptions import ConnectionTimeout, SessionClosed

log = logging.getLogger(__name__)

NAMESPACE = "/"


class SocketManager:
    """Owns the socket.io transport lifecycle.

    ``connect`` opens the channel in a background task; callers that need a
    live channel block on ``wait_connected``, which wakes on the connect
    event and re-checks the transport flag every ``poll_interval`` seconds.
    ``close`` wakes and fails every pending waiter.
    """

    def __init__(
        self,
        url: str | None = None,
        config: SpySyncConfig | None = None,
        sio: socketio.Client | None = None,
    ):
        self.config = config or get_config()
        self.url = (url or self.config.server_url).rstrip("/")
        self.sio = sio or socketio.Client(
            reconnection=self.config.reconnection,
            reconnection_attempts=self.config.reconnection_attempts,
        )
        self._state = threading.Condition()
        self._connecting = False
        self._closed = False
        self._subscribers: dict[str, list[t.Callable]] = {}
        self._subscribers_lock = threading.Lock()
        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on("connect_error", self._on_connect_error)

    @property
    def connected(self) -> bool:
        return bool(self.sio.connected)

    @property
    def closed(self) -> bool:
        return self._closed

    def connect(self, credential: str) -> None:
        """Open the transport with ``credential``. No-op while connected or connecting."""
        with self._state:
            if self._closed:
                log.warning("connect() called on a closed socket manager")
                return
            if self.connected or self._connecting:
                log.debug("Already connected or connecting.")
                return
            self._connecting = True
        self.sio.start_background_task(self._open, credential)

    def _open(self, credential: str) -> None:
        try:
            self.sio.connect(
                self.url,
                auth={"token": credential},
                wait=True,
                wait_timeout=self.config.connect_timeout,
            )
        except SocketConnectionError as e:
            log.warning(f"Failed to connect to {self.url}: {e}")
        finally:
            with self._state:
                self._connecting = False
                self._state.notify_all()

    def wait_connected(self, timeout: float | None = None) -> None:
        """Block until the transport is connected.

        Parameters
        ----------
        timeout : float | None
            Seconds to wait, defaults to ``config.connect_timeout``.

        Raises
        ------
        ConnectionTimeout
            If the transport is not connected within ``timeout``.
        SessionClosed
            If ``close`` is called while waiting.
        """
        if timeout is None:
            timeout = self.config.connect_timeout
        deadline = time.monotonic() + timeout
        with self._state:
            while True:
                if self._closed:
                    raise SessionClosed("Socket manager closed while waiting for connection")
                if self.connected:
                    return
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ConnectionTimeout(
                        f"Socket connection timeout after {timeout}s ({self.url})"
                    )
                self._state.wait(timeout=min(self.config.poll_interval, remaining))

    def emit(self, event: str, payload: dict) -> None:
        log.debug(f"emit {event}: {payload}")
        self.sio.emit(event, payload)

    def on(self, event: str, handler: t.Callable) -> None:
        """Add ``handler`` to the subscribers of ``event``.

        The transport sees a single handler per event that fans each frame
        out to every subscriber in registration order.
        """
        with self._subscribers_lock:
            handlers = self._subscribers.setdefault(event, [])
            first = not handlers
            handlers.append(handler)
        if first:
            self.sio.on(event, functools.partial(self._fan_out, event))

    def off(self, event: str, handler: t.Callable | None = None) -> None:
        """Remove ``handler`` from ``event``, or every subscriber if None.

        Other subscribers of the same event keep receiving frames.
        """
        with self._subscribers_lock:
            handlers = self._subscribers.get(event)
            if handlers is None:
                return
            if handler is None:
                handlers.clear()
            elif handler in handlers:
                handlers.remove(handler)
            if handlers:
                return
            del self._subscribers[event]
        self.sio.handlers.get(NAMESPACE, {}).pop(event, None)

    def _fan_out(self, event: str, *args) -> None:
        with self._subscribers_lock:
            handlers = list(self._subscribers.get(event, ()))
        for handler in handlers:
            handler(*args)

    def disconnect(self) -> None:
        if self.sio.connected:
            self.sio.disconnect()
            log.info("Disconnected.")

    def close(self) -> None:
        """Abandon pending waits and disconnect."""
        with self._state:
            self._closed = True
            self._state.notify_all()
        self.disconnect()

    def _on_connect(self):
        log.info(f"Connected to {self.url}")
        with self._state:
            self._state.notify_all()

    def _on_disconnect(self, *args):
        log.info("Connection lost")
        with self._state:
            self._state.notify_all()

    def _on_connect_error(self, data=None):
        log.warning(f"Connection error: {data}")
