"""Heychat (黑盒语音) channel."""

from heyclaw.channels.heychat.channel import HeychatChannel
from heyclaw.channels.heychat.errors import HeychatApiError, HeychatError, MissingTokenError

__all__ = ["HeychatChannel", "HeychatError", "HeychatApiError", "MissingTokenError"]
