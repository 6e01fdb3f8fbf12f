"""
Event types for the heyclaw message bus.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


# ---------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------

@dataclass(slots=True)
class InboundMessage:
    """
    Message received from Heychat, handed to the host agent.
    """

    channel: str              # provider id, always "heychat" today
    account_id: str           # bridge account that received the message
    sender_id: str            # Heychat user id
    chat_id: str              # "<room_id>:<channel_id>"
    content: str              # text the agent should act on

    session_key: str = ""     # routing key resolved by the runtime
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    media: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    # -----------------------------------------------------------------

    @property
    def message_id(self) -> str:
        """Wire message id of the inbound message (reply correlation key)."""
        return str(self.metadata.get("message_id", ""))


# ---------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------

@dataclass(slots=True)
class OutboundMessage:
    """
    Message to be sent back to Heychat.

    ``reply_to`` carries the inbound message id when the message answers one;
    agent-initiated messages leave it empty.
    """

    channel: str
    chat_id: str
    content: str

    account_id: str = "default"
    reply_to: str | None = None
    media: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
