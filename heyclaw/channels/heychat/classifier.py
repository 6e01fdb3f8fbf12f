"""
Heychat event classifier.

The wire protocol is not cleanly versioned: several historical message
shapes arrive side by side. Classification is a priority-ordered cascade:

    1. bare PONG                       -> LivenessFrame
    2. PUSH wrapping a notify event 80 -> NotificationFrame
    3. message-bearing type, or msg_id plus msg/command_info
                                       -> shape extraction
    4. shape extraction without msg_id -> DiscardedFrame
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Optional

from heyclaw.channels.heychat import protocol
from heyclaw.channels.heychat.types import (
    ClassifiedFrame,
    DiscardedFrame,
    LivenessFrame,
    MessageFrame,
    NormalizedMessage,
    NotificationFrame,
)


DEFAULT_SENDER_NAME = "User"


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def _safe_dict(value: Any) -> dict:
    """Return *value* if it's a dict, else empty dict."""
    return value if isinstance(value, dict) else {}


def _first_dict(src: dict, *keys: str) -> dict:
    """Return the first non-empty dict value found for *keys*."""
    for k in keys:
        v = src.get(k)
        if isinstance(v, dict) and v:
            return v
    return {}


def _id(value: Any) -> str:
    """Wire ids arrive as strings or numbers; normalize to stripped str."""
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip()


def _command_text(command_info: dict) -> str:
    options = command_info.get("options")
    if isinstance(options, list) and options:
        value = _safe_dict(options[0]).get("value")
        return "" if value is None else str(value)
    return ""


def _parse_addition(raw: Any) -> dict:
    """
    Decode the string-encoded ``addition`` sub-structure.

    Raises:
        ValueError: addition is present but not valid JSON
    """
    if isinstance(raw, dict):
        return raw
    if not raw or not isinstance(raw, (str, bytes)):
        return {}
    return _safe_dict(json.loads(raw))


# ---------------------------------------------------------------------------
# Wire shapes
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class _Extracted:
    room: dict
    channel: dict
    sender: dict
    text: str
    command: Optional[dict] = None


def _command_shape(type_str: str, data: dict) -> Optional[_Extracted]:
    """Type 50: bot command with nested room/channel/sender blocks."""
    command_info = data.get("command_info")
    if type_str != protocol.EVENT_COMMAND or not isinstance(command_info, dict):
        return None

    return _Extracted(
        room=_safe_dict(data.get("room_base_info")),
        channel=_safe_dict(data.get("channel_base_info")),
        sender=_safe_dict(data.get("sender_info")),
        text=_command_text(command_info),
        command=command_info,
    )


def _chat_shape(type_str: str, data: dict) -> Optional[_Extracted]:
    """Types 5 and 1: chat message, optionally with a bot command in ``addition``."""
    if type_str not in (protocol.EVENT_MESSAGE, protocol.EVENT_TEXT):
        return None

    extracted = _Extracted(
        room=_safe_dict(data.get("room_base_info")),
        channel=_safe_dict(data.get("channel_base_info")),
        sender=_first_dict(data, "user_base_info", "sender_info", "user_info"),
        text=str(data.get("msg") or ""),
    )

    try:
        addition = _parse_addition(data.get("addition"))
    except (ValueError, TypeError):
        return extracted

    command_info = _safe_dict(_safe_dict(addition.get("bot_command")).get("command_info"))
    if command_info:
        extracted.command = command_info
        extracted.text = _command_text(command_info)

    return extracted


def _fallback_shape(type_str: str, data: dict) -> Optional[_Extracted]:
    """Unknown discriminator: probe every field name seen in the wild."""
    return _Extracted(
        room=_first_dict(data, "room_base_info", "room_info"),
        channel=_first_dict(data, "channel_base_info", "channel_info"),
        sender=_first_dict(data, "user_base_info", "sender_info", "user_info"),
        text=str(data.get("msg") or ""),
    )


_SHAPES: tuple[Callable[[str, dict], Optional[_Extracted]], ...] = (
    _command_shape,
    _chat_shape,
    _fallback_shape,
)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def is_message_bearing(type_str: str, data: dict) -> bool:
    if type_str in protocol.MESSAGE_EVENT_TYPES:
        return True
    return bool(data.get("msg_id")) and bool(data.get("msg") or data.get("command_info"))


def _is_notification(type_str: str, data: dict) -> bool:
    return (
        type_str.upper() == protocol.EVENT_PUSH
        and str(data.get("event")) == protocol.NOTIFY_EVENT
        and data.get("type") == protocol.NOTIFY_TYPE
    )


def classify_frame(raw: str) -> ClassifiedFrame:
    """Classify one raw text frame. Never raises."""
    if protocol.is_liveness_response(raw):
        return LivenessFrame()

    try:
        event = json.loads(raw)
    except ValueError:
        return DiscardedFrame(reason="invalid json", malformed=True)

    if not isinstance(event, dict):
        return DiscardedFrame(reason="frame is not an object", malformed=True)

    return classify_event(event)


def classify_event(event: dict) -> ClassifiedFrame:
    """Classify an already decoded ``{"type": ..., "data": ...}`` event."""
    type_str = str(event.get("type"))
    data = event.get("data")
    data = data if isinstance(data, dict) and data else event

    if _is_notification(type_str, data):
        return NotificationFrame(user_id=_id(data.get("userid")))

    if not is_message_bearing(type_str, data):
        return DiscardedFrame(reason="not a message event", raw_type=type_str)

    msg_id = _id(data.get("msg_id"))
    if not msg_id:
        return DiscardedFrame(reason="missing msg_id", raw_type=type_str)

    for shape in _SHAPES:
        extracted = shape(type_str, data)
        if extracted is not None:
            break

    sender = extracted.sender
    command = extracted.command

    return MessageFrame(
        NormalizedMessage(
            msg_id=msg_id,
            room_id=_id(extracted.room.get("room_id")),
            channel_id=_id(extracted.channel.get("channel_id")),
            user_id=_id(sender.get("user_id")),
            sender_name=str(sender.get("nickname") or sender.get("name") or DEFAULT_SENDER_NAME),
            text=extracted.text,
            is_command=command is not None,
            command_name=(str(command.get("name")) if command and command.get("name") else None),
            raw_type=type_str,
        )
    )
