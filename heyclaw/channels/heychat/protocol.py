"""Heychat wire constants (fixed by the remote service)."""

from __future__ import annotations

from typing import Final
from urllib.parse import quote


PROVIDER_ID: Final[str] = "heychat"
PROVIDER_LABEL: Final[str] = "Heychat"

# Query string every bot endpoint expects
COMMON_PARAMS: Final[str] = (
    "chat_os_type=bot&client_type=heybox_chat&chat_version=999.0.0&chat_version=1.24.5"
)
REACTION_PARAMS: Final[str] = (
    "client_type=heybox_chat&x_client_type=web&os_type=web&x_os_type=bot"
    "&x_app=heybox_chat&chat_os_type=bot&chat_version=1.30.0"
)

SEND_PATH: Final[str] = "/chatroom/v2/channel_msg/send"
REACTION_PATH: Final[str] = "/chatroom/v2/channel_msg/emoji/reply"

# Liveness
PING_FRAME: Final[str] = "PING"
PONG_MARKER: Final[str] = "PONG"

# Outer ``type`` discriminators
EVENT_COMMAND: Final[str] = "50"
EVENT_MESSAGE: Final[str] = "5"
EVENT_TEXT: Final[str] = "1"
EVENT_PUSH: Final[str] = "PUSH"
MESSAGE_EVENT_TYPES: Final[frozenset[str]] = frozenset(
    {EVENT_COMMAND, EVENT_MESSAGE, EVENT_TEXT}
)

# Inner markers of a PUSH heartbeat notification
NOTIFY_EVENT: Final[str] = "80"
NOTIFY_TYPE: Final[str] = "notify"


class MsgType:
    """Outbound ``msg_type`` codes."""
    TEXT = 1
    IMAGE = 3
    MARKDOWN = 4
    AT_MARKDOWN = 10
    CARD = 20


class HeychatEmoji:
    """Common Heychat emoji codes for reactions."""
    EYES = "[7_👀]"
    THUMBSUP = "[7_👍]"
    HEART = "[7_❤]"
    LAUGH = "[7_😂]"
    SURPRISED = "[7_😮]"
    SAD = "[7_😢]"
    ANGRY = "[7_😠]"
    TYPING = "[7_⏳]"


def build_ws_url(base_url: str, token: str) -> str:
    """Streaming endpoint for ``token``."""
    return f"{base_url}?{COMMON_PARAMS}&token={quote(token, safe='')}"


def is_liveness_response(raw: str) -> bool:
    """True for the server's ``PONG`` replies to our ``PING`` probes."""
    return raw.strip().upper().startswith(PONG_MARKER)
