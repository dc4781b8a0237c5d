"""Pydantic models for the room, game and chat payloads pushed by the server.

Payload keys are camelCase on the wire (``roomCode``, ``isReady``) and
snake_case in Python. Unknown keys are kept so that a snapshot survives a
round trip through the persistence layer unchanged.
"""

import enum
import typing as t
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

_ID_KEYS = ("_id", "userId", "id")


def normalize_id(value: t.Any) -> str | None:
    """Return the canonical identifier for a bare id or an embedded object.

    Identity arrives either as a bare value (``"U1"``, ``42``) or as an
    embedded document (``{"_id": "U1", "username": "bob"}``). Every identity
    comparison in spysync goes through this function.

    Parameters
    ----------
    value
        Bare identifier, mapping or pydantic model carrying one of
        ``_id``, ``userId`` or ``id``.

    Returns
    -------
    str | None
        The identifier as a string, or None if none could be found.

    >>> normalize_id({"_id": 7})
    '7'
    >>> normalize_id("U1")
    'U1'
    """
    if value is None:
        return None
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True)
    if isinstance(value, t.Mapping):
        for key in _ID_KEYS:
            if value.get(key) is not None:
                return normalize_id(value[key])
        return None
    text = str(value)
    return text or None


class _Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    def dump(self) -> dict:
        """Serialize with wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True)


class User(_Payload):
    """The local user, as issued by the authentication layer."""

    user_id: str | None = None
    username: str | None = None
    avatar: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _canonical_id(cls, data: t.Any) -> t.Any:
        if isinstance(data, t.Mapping):
            data = dict(data)
            raw = data.get("userId", data.pop("user_id", None))
            document_id = data.pop("_id", None)
            bare_id = data.pop("id", None)
            if raw is None:
                raw = document_id if document_id is not None else bare_id
            data["userId"] = normalize_id(raw)
        return data


class Player(_Payload):
    """One seat in a room.

    ``userId`` may be a populated user document; its display fields are
    used when the player entry itself does not carry them.
    """

    user_id: str | None = None
    username: str | None = None
    avatar: str | None = None
    is_ready: bool = False
    role: t.Any = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_user(cls, data: t.Any) -> t.Any:
        if not isinstance(data, t.Mapping):
            return data
        data = dict(data)
        raw = data.pop("user_id", None)
        raw = data.get("userId", raw)
        if isinstance(raw, t.Mapping):
            for key in ("username", "avatar"):
                if data.get(key) is None and raw.get(key) is not None:
                    data[key] = raw[key]
        data["userId"] = normalize_id(raw)
        return data

    @property
    def display_name(self) -> str:
        return self.username or "User"


class RoomStatus(str, enum.Enum):
    LOBBY = "lobby"
    PLAYING = "playing"
    ENDED = "ended"


class Room(_Payload):
    """A joinable lobby. ``players`` order is the turn order."""

    room_code: str
    room_id: str | None = None
    status: RoomStatus = RoomStatus.LOBBY
    players: list[Player] = Field(default_factory=list)

    @field_validator("room_code", "room_id", mode="before")
    @classmethod
    def _as_str(cls, v: t.Any) -> t.Any:
        return normalize_id(v)

    @field_validator("players", mode="before")
    @classmethod
    def _none_is_empty(cls, v: t.Any) -> t.Any:
        return [] if v is None else v

    def find_player(self, user: t.Any) -> Player | None:
        """Return the player whose identity matches ``user``."""
        wanted = normalize_id(user)
        if wanted is None:
            return None
        for player in self.players:
            if player.user_id == wanted:
                return player
        return None


class GameState(_Payload):
    """The authoritative in-progress game.

    Only the fields the client routes on are declared; the rest of the
    server's game document is kept as extra fields.
    """

    game_id: str | None = None
    room_id: str | None = None
    phase: str | None = None

    @field_validator("game_id", "room_id", mode="before")
    @classmethod
    def _as_str(cls, v: t.Any) -> t.Any:
        return normalize_id(v)


class Sender(_Payload):
    user_id: str | None = None
    username: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _canonical_id(cls, data: t.Any) -> t.Any:
        if isinstance(data, t.Mapping):
            data = dict(data)
            raw = data.pop("user_id", None)
            document_id = data.pop("_id", None)
            bare_id = data.pop("id", None)
            for candidate in (data.get("userId"), document_id, bare_id):
                if candidate is not None:
                    raw = candidate
                    break
            if isinstance(raw, t.Mapping) and data.get("username") is None:
                data["username"] = raw.get("username")
            data["userId"] = normalize_id(raw)
        return data


class ChatMessage(_Payload):
    """A chat entry, either confirmed by the server or a pending local echo.

    Accepts ``_id`` or ``id``, ``message`` or ``text`` and either a nested
    ``sender`` or flat ``userId``/``username`` keys.
    """

    id: str | None = Field(default=None, alias="_id")
    sender: Sender = Field(default_factory=Sender)
    text: str = Field(default="", alias="message")
    message_type: str = "chat"
    created_at: datetime | None = None
    pending: bool = Field(default=False, alias="isPending")
    failed: bool = False

    @model_validator(mode="before")
    @classmethod
    def _flat_sender(cls, data: t.Any) -> t.Any:
        if not isinstance(data, t.Mapping):
            return data
        data = dict(data)
        if data.get("sender") is None and (
            data.get("userId") is not None or data.get("username") is not None
        ):
            data["sender"] = {
                "userId": data.pop("userId", None),
                "username": data.pop("username", None),
            }
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v: t.Any) -> t.Any:
        return normalize_id(v)

    @field_validator("sender", mode="before")
    @classmethod
    def _sender_default(cls, v: t.Any) -> t.Any:
        return {} if v is None else v
