from datetime import datetime, timedelta, timezone

import pytest
from conftest import room_payload

from spysync.exceptions import ConnectionTimeout
from spysync.reconciler import StateReconciler


def confirmation(text: str, message_id: str = "m1", sender: str = "U1") -> dict:
    return {
        "message": {
            "_id": message_id,
            "sender": {"userId": sender, "username": f"user-{sender}"},
            "message": text,
            "messageType": "chat",
            "createdAt": "2024-05-01T12:00:00Z",
        }
    }


@pytest.fixture
def in_room(state, fake_sio):
    fake_sio.trigger("room_joined", {"room": room_payload(code="R1")})
    return state


def test_send_shows_pending_message_immediately(in_room, fake_sio):
    assert in_room.send_message("hello") is True

    (message,) = in_room.messages
    assert message.pending is True
    assert message.text == "hello"
    assert message.sender.user_id == "U1"
    assert message.id.startswith("temp-")
    assert fake_sio.sent("send_message") == [
        {"roomCode": "R1", "message": "hello", "messageType": "chat"}
    ]


def test_confirmation_replaces_pending_echo(in_room, fake_sio):
    in_room.send_message("hello")

    fake_sio.trigger("message_received", confirmation("hello"))

    (message,) = in_room.messages
    assert message.pending is False
    assert message.id == "m1"


def test_confirmation_with_bare_sender_id_matches(in_room, fake_sio):
    in_room.send_message("hello")

    fake_sio.trigger(
        "message_received", {"message": {"id": "m7", "sender": {"id": "U1"}, "message": "hello"}}
    )

    (message,) = in_room.messages
    assert message.pending is False
    assert message.id == "m7"


def test_duplicate_delivery_is_idempotent(in_room, fake_sio):
    fake_sio.trigger("message_received", confirmation("hi", sender="U2"))
    fake_sio.trigger("message_received", confirmation("hi", sender="U2"))

    assert len(in_room.messages) == 1


def test_confirmation_from_other_user_does_not_consume_pending(in_room, fake_sio):
    in_room.send_message("hello")

    fake_sio.trigger("message_received", confirmation("hello", sender="U2"))

    assert [m.pending for m in in_room.messages] == [True, False]


def test_each_confirmation_replaces_one_pending_echo(in_room, fake_sio):
    in_room.send_message("gg")
    in_room.send_message("gg")

    fake_sio.trigger("message_received", confirmation("gg", message_id="m1"))
    assert [m.pending for m in in_room.messages] == [True, False]

    fake_sio.trigger("message_received", confirmation("gg", message_id="m2"))
    assert [(m.id, m.pending) for m in in_room.messages] == [("m1", False), ("m2", False)]


def test_confirmed_message_moves_to_end(in_room, fake_sio):
    in_room.send_message("first")
    fake_sio.trigger("message_received", confirmation("from bob", message_id="b1", sender="U2"))

    fake_sio.trigger("message_received", confirmation("first", message_id="m1"))

    assert [m.text for m in in_room.messages] == ["from bob", "first"]


def test_message_without_id_is_appended(in_room, fake_sio):
    fake_sio.trigger("message_received", {"message": {"userId": "U2", "text": "flat"}})
    (message,) = in_room.messages
    assert message.sender.user_id == "U2"
    assert message.text == "flat"


def test_invalid_message_payload_is_ignored(in_room, fake_sio):
    fake_sio.trigger("message_received", {"message": "hello"})
    fake_sio.trigger("message_received", {})
    assert in_room.messages == ()


def test_send_requires_room_or_game(state, fake_sio):
    assert state.send_message("hello") is False
    assert state.messages == ()
    assert fake_sio.sent("send_message") == []


def test_send_routes_through_game_room_id(state, fake_sio):
    fake_sio.trigger("game_start", {"game": {"gameId": "g1", "roomId": "GAMEROOM"}})

    assert state.send_message("hi") is True
    assert fake_sio.sent("send_message")[0]["roomCode"] == "GAMEROOM"


def test_blank_message_is_rejected(in_room, fake_sio):
    assert in_room.send_message("   ") is False
    assert fake_sio.sent("send_message") == []


def test_send_while_disconnected_reconnects_once(in_room, fake_sio):
    fake_sio.disconnect()

    assert in_room.send_message("hello") is True

    assert len(fake_sio.connect_calls) == 2
    assert len(fake_sio.sent("send_message")) == 1
    assert in_room.messages[0].pending is True


def test_send_gives_up_when_reconnect_fails(in_room, fake_sio, notifier):
    fake_sio.disconnect()
    fake_sio.mode = "refuse"

    assert in_room.send_message("hello") is False

    assert in_room.messages == ()
    assert fake_sio.sent("send_message") == []
    (error,), _ = notifier.error.call_args
    assert isinstance(error, ConnectionTimeout)


def test_own_messages_are_recognised(in_room, fake_sio):
    in_room.send_message("mine")
    fake_sio.trigger("message_received", confirmation("theirs", message_id="b1", sender="U2"))
    mine, theirs = in_room.messages
    assert in_room.is_own_message(mine)
    assert not in_room.is_own_message(theirs)


class _Clock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


@pytest.fixture
def timed_state(socket, user, config, fake_sio):
    from spysync.router import EventRouter

    config.pending_timeout = 10
    clock = _Clock()
    state = StateReconciler(socket=socket, user=user, credential="t", config=config, clock=clock)
    EventRouter(socket).subscribe_many(state.handlers())
    socket.connect("t")
    fake_sio.trigger("room_joined", {"room": room_payload()})
    return state, clock


def test_pending_messages_are_kept_without_timeout(in_room):
    in_room.send_message("hello")
    assert in_room.expire_pending() == 0
    assert in_room.messages[0].failed is False


def test_unconfirmed_message_is_marked_failed(timed_state):
    state, clock = timed_state
    state.send_message("hello")

    clock.now += timedelta(seconds=5)
    assert state.expire_pending() == 0

    clock.now += timedelta(seconds=10)
    assert state.expire_pending() == 1
    (message,) = state.messages
    assert message.failed is True
    assert message.pending is True


def test_late_confirmation_still_replaces_failed_message(timed_state, fake_sio):
    state, clock = timed_state
    state.send_message("hello")
    clock.now += timedelta(seconds=60)
    state.expire_pending()

    fake_sio.trigger("message_received", confirmation("hello"))

    (message,) = state.messages
    assert message.pending is False
    assert message.failed is False
