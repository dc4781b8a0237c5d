"""Socket.IO event vocabulary.

Outbound requests are pydantic models; the event name is derived from the
class name in snake_case and the payload keys are camelCase:

- JoinRoom(room_code="ABCD") -> "join_room" {"roomCode": "ABCD"}
- CastVote(game_id="g", voted_for_id="u") -> "cast_vote" {"gameId": "g", "votedForId": "u"}
"""

import re

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# =============================================================================
# Inbound events (server -> client)
# =============================================================================

ROOM_JOINED = "room_joined"
ROOM_UPDATED = "room_updated"
ROOM_STATE = "room_state"
ROOM_LEFT = "room_left"
ROOM_ERROR = "room_error"
PLAYER_JOINED = "player_joined"
PLAYER_LEFT = "player_left"
MESSAGE_RECEIVED = "message_received"
TYPING_STARTED = "typing_start"
TYPING_STOPPED = "typing_stop"
ERROR = "error"

ROOM_SNAPSHOT_EVENTS = (ROOM_JOINED, ROOM_UPDATED, ROOM_STATE)
ROSTER_EVENTS = (PLAYER_JOINED, PLAYER_LEFT)

# Events whose ``game`` member is a full game snapshot.
GAME_EVENTS = (
    "game_start",
    "game_state_update",
    "game_end",
    "clue_phase_start",
    "clue_phase_end",
    "voting_phase_start",
    "voting_phase_end",
    "clue_submitted",
    "vote_casted",
    "voting_results",
    "spy_guess_start",
    "spy_guess_result",
    "round_start",
    "round_end",
    "player_turn",
)

# =============================================================================
# Outbound requests (client -> server)
# =============================================================================


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def event_name(cls) -> str:
        return _snake_case(cls.__name__)

    def payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class JoinRoom(Request):
    """Join a room's real-time channel."""

    room_code: str


class LeaveRoom(Request):
    """Leave a room; the server answers with room_left."""

    room_code: str


class GetRoomState(Request):
    """Ask the server to resend the full room snapshot."""

    room_code: str


class PlayerReady(Request):
    room_code: str
    is_ready: bool


class GameStart(Request):
    room_code: str
    category: str


class SubmitClue(Request):
    game_id: str
    clue: str


class CastVote(Request):
    game_id: str
    voted_for_id: str


class SubmitSpyGuess(Request):
    game_id: str
    word: str


class SendMessage(Request):
    room_code: str
    message: str
    message_type: str = "chat"


class TypingStart(Request):
    """User started typing."""

    room_code: str


class TypingStop(Request):
    """User stopped typing."""

    room_code: str


class UpdateAvatar(Request):
    room_code: str
    avatar: str


class UpdateName(Request):
    room_code: str
    username: str
