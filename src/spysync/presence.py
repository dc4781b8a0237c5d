"""Typing presence: who is typing in the room, and when we are."""

import logging
import threading
import typing as t

log = logging.getLogger(__name__)


class TypingSet:
    """Display names currently typing, in the order they started.

    Membership is level-triggered by explicit start/stop signals; there is no
    expiry, so a user who disconnects mid-typing stays listed until a stop
    arrives.
    """

    def __init__(self):
        self._names: dict[str, None] = {}

    def add(self, name: str) -> None:
        self._names.setdefault(name, None)

    def discard(self, name: str) -> None:
        self._names.pop(name, None)

    def clear(self) -> None:
        self._names.clear()

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._names)

    def label(self) -> str:
        """Human readable status line, empty when nobody types.

        >>> s = TypingSet(); s.add("Alice"); s.label()
        'Alice is typing...'
        """
        if not self._names:
            return ""
        verb = "is" if len(self._names) == 1 else "are"
        return f"{', '.join(self._names)} {verb} typing..."

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __iter__(self) -> t.Iterator[str]:
        return iter(tuple(self._names))

    def __len__(self) -> int:
        return len(self._names)


class TypingIndicator:
    """Debounces the local user's typing signals.

    Every keystroke sends ``typing_start`` and re-arms an idle timer; when
    the timer fires ``typing_stop`` is sent.
    """

    def __init__(
        self,
        start: t.Callable[[], t.Any],
        stop: t.Callable[[], t.Any],
        idle_timeout: float = 3.0,
    ):
        self._start = start
        self._stop = stop
        self.idle_timeout = idle_timeout
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._timer is not None

    def keystroke(self) -> None:
        self._start()
        with self._lock:
            self._disarm()
            self._timer = threading.Timer(
                self.idle_timeout, self._on_idle, args=(self._generation,)
            )
            self._timer.daemon = True
            self._timer.start()

    def message_sent(self) -> None:
        """Stop typing right away, e.g. after the message was submitted."""
        with self._lock:
            self._disarm()
        self._stop()

    def cancel(self) -> None:
        """Disarm the idle timer without sending anything."""
        with self._lock:
            self._disarm()

    def _disarm(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_idle(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        log.debug("Typing idle timeout reached")
        self._stop()
