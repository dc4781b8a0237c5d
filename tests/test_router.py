from unittest.mock import MagicMock

import pytest

from spysync.router import EventRouter


@pytest.fixture
def router(socket):
    return EventRouter(socket)


def test_delivers_in_arrival_order(router, fake_sio):
    seen = []
    router.subscribe("a", lambda data: seen.append(("a", data["n"])))
    router.subscribe("b", lambda data: seen.append(("b", data["n"])))

    fake_sio.trigger("a", {"n": 1})
    fake_sio.trigger("b", {"n": 2})
    fake_sio.trigger("a", {"n": 3})

    assert seen == [("a", 1), ("b", 2), ("a", 3)]


def test_resubscribe_replaces_handler(router, fake_sio):
    first, second = MagicMock(), MagicMock()
    router.subscribe("room_updated", first)
    router.subscribe("room_updated", second)

    fake_sio.trigger("room_updated", {"room": {}})

    first.assert_not_called()
    second.assert_called_once_with({"room": {}})
    assert router.kinds == ("room_updated",)


def test_unsubscribe_stops_delivery(router, fake_sio):
    handler = MagicMock()
    router.subscribe("room_updated", handler)
    dispatch = fake_sio.handlers["/"]["room_updated"]

    router.unsubscribe("room_updated")
    fake_sio.trigger("room_updated", {})
    dispatch({})

    handler.assert_not_called()


def test_close_tears_down_all(router, fake_sio):
    handler = MagicMock()
    router.subscribe_many({"a": handler, "b": handler})

    router.close()

    assert "a" not in fake_sio.handlers["/"]
    assert "b" not in fake_sio.handlers["/"]
    assert router.kinds == ()
    with pytest.raises(RuntimeError):
        router.subscribe("a", handler)


def test_context_manager_closes(socket, fake_sio):
    with EventRouter(socket) as router:
        router.subscribe("a", MagicMock())
    assert router.closed
    assert "a" not in fake_sio.handlers["/"]


def test_handler_errors_are_contained(router, fake_sio):
    after = MagicMock()
    router.subscribe("a", MagicMock(side_effect=ValueError("boom")))
    router.subscribe("b", after)

    fake_sio.trigger("a", {})
    fake_sio.trigger("b", {})

    after.assert_called_once()


def test_missing_payload_becomes_empty_dict(router, fake_sio):
    handler = MagicMock()
    router.subscribe("room_left", handler)

    fake_sio.trigger("room_left")
    fake_sio.trigger("room_left", None)

    assert [c.args for c in handler.call_args_list] == [({},), ({},)]


def test_non_object_payload_is_dropped(router, fake_sio):
    handler = MagicMock()
    router.subscribe("a", handler)
    fake_sio.trigger("a", "just a string")
    handler.assert_not_called()


def test_overlapping_routers_keep_their_own_handlers(socket, fake_sio):
    first, second = EventRouter(socket), EventRouter(socket)
    a, b = MagicMock(), MagicMock()
    first.subscribe("room_updated", a)
    second.subscribe("room_updated", b)

    fake_sio.trigger("room_updated", {"n": 1})
    first.close()
    fake_sio.trigger("room_updated", {"n": 2})

    a.assert_called_once_with({"n": 1})
    assert b.call_count == 2
    assert second.kinds == ("room_updated",)

    second.close()
    assert "room_updated" not in fake_sio.handlers["/"]


def test_remount_cycles_do_not_interfere(socket, fake_sio):
    live = EventRouter(socket)
    handler = MagicMock()
    live.subscribe("room_updated", handler)

    for _ in range(3):
        with EventRouter(socket) as transient:
            transient.subscribe("room_updated", MagicMock())

    fake_sio.trigger("room_updated", {})
    handler.assert_called_once_with({})
