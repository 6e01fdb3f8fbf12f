"""Heychat inbound data types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class ChatType(str, Enum):
    DIRECT = "direct"
    GROUP = "group"


@dataclass(frozen=True, slots=True)
class NormalizedMessage:
    """
    One inbound chat message, extracted from whichever wire shape carried it.

    ``msg_id`` is always non-empty; frames without one never become a
    ``NormalizedMessage``.
    """

    msg_id: str
    room_id: str
    channel_id: str
    user_id: str
    sender_name: str
    text: str
    is_command: bool = False
    command_name: Optional[str] = None
    raw_type: str = ""

    @property
    def conversation_id(self) -> str:
        return f"{self.room_id}:{self.channel_id}"


# ---------------------------------------------------------------------
# Classified frames
# ---------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class LivenessFrame:
    """Bare ``PONG`` reply to a liveness probe."""


@dataclass(frozen=True, slots=True)
class NotificationFrame:
    """PUSH heartbeat notification; carries only the notifying user id."""
    user_id: str = ""


@dataclass(frozen=True, slots=True)
class MessageFrame:
    message: NormalizedMessage


@dataclass(frozen=True, slots=True)
class DiscardedFrame:
    """Anything that is not a message: unknown events, malformed input."""
    reason: str
    raw_type: str = ""
    malformed: bool = False


ClassifiedFrame = Union[LivenessFrame, NotificationFrame, MessageFrame, DiscardedFrame]
