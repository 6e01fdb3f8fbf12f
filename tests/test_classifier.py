import json

import pytest

from conftest import message_frame

from heyclaw.channels.heychat.classifier import classify_frame
from heyclaw.channels.heychat.types import (
    DiscardedFrame,
    LivenessFrame,
    MessageFrame,
    NotificationFrame,
)


def test_pong_frames_are_liveness() -> None:
    for raw in ("PONG", "pong", "PONG 1712345678"):
        assert isinstance(classify_frame(raw), LivenessFrame)


def test_push_notification_is_not_a_message() -> None:
    raw = json.dumps({"type": "PUSH", "data": {"event": "80", "type": "notify", "userid": 42}})

    frame = classify_frame(raw)

    assert isinstance(frame, NotificationFrame)
    assert frame.user_id == "42"


def test_regular_message_extracts_fields() -> None:
    frame = classify_frame(message_frame(msg_id="m-1", room_id="100", channel_id="200", msg="hi there"))

    assert isinstance(frame, MessageFrame)
    msg = frame.message
    assert msg.msg_id == "m-1"
    assert (msg.room_id, msg.channel_id) == ("100", "200")
    assert msg.user_id == "u1"
    assert msg.sender_name == "alice"
    assert msg.text == "hi there"
    assert msg.is_command is False
    assert msg.command_name is None


def test_command_event_uses_command_shape() -> None:
    raw = json.dumps(
        {
            "type": "50",
            "data": {
                "msg_id": 777,
                "command_info": {"name": "/ask", "options": [{"value": "what time is it"}]},
                "room_base_info": {"room_id": 1},
                "channel_base_info": {"channel_id": 2},
                "sender_info": {"user_id": 3, "nickname": "bob"},
            },
        }
    )

    msg = classify_frame(raw).message

    assert msg.msg_id == "777"
    assert (msg.room_id, msg.channel_id, msg.user_id) == ("1", "2", "3")
    assert msg.is_command is True
    assert msg.command_name == "/ask"
    assert msg.text == "what time is it"


def test_bot_command_in_addition_overrides_text() -> None:
    addition = json.dumps({"bot_command": {"command_info": {"name": "/roll", "options": [{"value": "d20"}]}}})

    msg = classify_frame(message_frame(msg="/roll d20", addition=addition)).message

    assert msg.is_command is True
    assert msg.command_name == "/roll"
    assert msg.text == "d20"


def test_unparseable_addition_falls_back_to_text() -> None:
    msg = classify_frame(message_frame(msg="plain", addition="{not json")).message

    assert msg.text == "plain"
    assert msg.is_command is False


@pytest.mark.parametrize("addition", [123, [1], True, 4.5])
def test_non_string_addition_falls_back_to_text(addition) -> None:
    frame = classify_frame(message_frame(msg_id="a1", msg="hello", addition=addition))

    assert isinstance(frame, MessageFrame)
    assert frame.message.text == "hello"
    assert frame.message.is_command is False


def test_unknown_type_with_msg_id_and_msg_is_message() -> None:
    raw = json.dumps(
        {
            "type": "99",
            "data": {
                "msg_id": "x1",
                "msg": "dm text",
                "room_info": {"room_id": "7"},
                "channel_info": {"channel_id": "7"},
                "user_info": {"user_id": "9", "name": "carol"},
            },
        }
    )

    msg = classify_frame(raw).message

    assert msg.msg_id == "x1"
    assert (msg.room_id, msg.channel_id) == ("7", "7")
    assert msg.sender_name == "carol"
    assert msg.raw_type == "99"


def test_unknown_type_without_message_fields_is_discarded() -> None:
    frame = classify_frame(json.dumps({"type": "12", "data": {"foo": "bar"}}))

    assert isinstance(frame, DiscardedFrame)
    assert frame.malformed is False
    assert frame.raw_type == "12"


def test_message_type_without_msg_id_is_discarded() -> None:
    frame = classify_frame(message_frame(msg_id=""))

    assert isinstance(frame, DiscardedFrame)
    assert frame.reason == "missing msg_id"


def test_malformed_json_is_discarded_as_malformed() -> None:
    frame = classify_frame("{oops")

    assert isinstance(frame, DiscardedFrame)
    assert frame.malformed is True


def test_sender_name_defaults_to_user() -> None:
    raw = json.dumps({"type": "1", "data": {"msg_id": "a", "msg": "x"}})

    msg = classify_frame(raw).message

    assert msg.sender_name == "User"
    assert msg.room_id == ""
    assert msg.channel_id == ""
