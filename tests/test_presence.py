import time
from unittest.mock import MagicMock

from spysync.presence import TypingIndicator, TypingSet


def test_typing_set_is_idempotent_and_ordered():
    typing = TypingSet()
    typing.add("bob")
    typing.add("carol")
    typing.add("bob")

    assert typing.names == ("bob", "carol")
    assert len(typing) == 2
    assert "carol" in typing


def test_typing_set_discard_unknown_is_noop():
    typing = TypingSet()
    typing.discard("nobody")
    assert list(typing) == []


def test_typing_label():
    typing = TypingSet()
    assert typing.label() == ""
    typing.add("bob")
    assert typing.label() == "bob is typing..."
    typing.add("carol")
    assert typing.label() == "bob, carol are typing..."


def test_indicator_stops_after_idle():
    start, stop = MagicMock(), MagicMock()
    indicator = TypingIndicator(start, stop, idle_timeout=0.05)

    indicator.keystroke()
    indicator.keystroke()
    assert start.call_count == 2
    time.sleep(0.3)

    stop.assert_called_once()
    assert not indicator.active


def test_indicator_message_sent_stops_immediately():
    start, stop = MagicMock(), MagicMock()
    indicator = TypingIndicator(start, stop, idle_timeout=0.05)

    indicator.keystroke()
    indicator.message_sent()
    time.sleep(0.2)

    stop.assert_called_once()


def test_indicator_cancel_is_silent():
    start, stop = MagicMock(), MagicMock()
    indicator = TypingIndicator(start, stop, idle_timeout=0.05)

    indicator.keystroke()
    indicator.cancel()
    time.sleep(0.2)

    stop.assert_not_called()
