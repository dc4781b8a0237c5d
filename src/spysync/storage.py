"""Durable key-value storage and the room snapshot cache built on it."""

import abc
import json
import logging
import re
from pathlib import Path

from pydantic import ValidationError

from spysync.exceptions import StorageFailure
from spysync.models import Room

log = logging.getLogger(__name__)


class KeyValueStore(abc.ABC):
    """String key-value storage. Any method may raise."""

    @abc.abstractmethod
    def get(self, key: str) -> str | None: ...

    @abc.abstractmethod
    def set(self, key: str, value: str) -> None: ...

    @abc.abstractmethod
    def remove(self, key: str) -> None: ...


class MemoryStore(KeyValueStore):
    def __init__(self, data: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class FileStore(KeyValueStore):
    """One file per key below ``root``.

    Parameters
    ----------
    root
        Directory holding the files. Created on first write.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser()

    def _path(self, key: str) -> Path:
        return self.root / f"{re.sub(r'[^A-Za-z0-9_.-]', '_', key)}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageFailure(key, str(e)) from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_text(value, encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise StorageFailure(key, str(e)) from e

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageFailure(key, str(e)) from e


class RoomCache:
    """Mirrors the last known room to a store for reload continuity.

    Every failure is logged and swallowed: a failed read is a cache miss
    and a failed write leaves the in-memory state authoritative.
    """

    def __init__(self, store: KeyValueStore, key: str = "room"):
        self.store = store
        self.key = key

    def load(self) -> Room | None:
        try:
            raw = self.store.get(self.key)
        except Exception as e:
            log.warning(f"Failed to read persisted room: {e}")
            return None
        if not raw:
            return None
        try:
            return Room.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            log.warning(f"Ignoring malformed persisted room: {e}")
            return None

    def save(self, room: Room) -> bool:
        try:
            self.store.set(self.key, json.dumps(room.dump()))
        except Exception as e:
            log.error(f"Failed to persist room: {e}")
            return False
        return True

    def clear(self) -> bool:
        try:
            self.store.remove(self.key)
        except Exception as e:
            log.error(f"Failed to remove persisted room: {e}")
            return False
        return True
