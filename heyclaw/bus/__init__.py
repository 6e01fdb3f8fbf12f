"""Message bus between chat channels and the host agent."""

from heyclaw.bus.events import InboundMessage, OutboundMessage
from heyclaw.bus.queue import MessageBus

__all__ = ["InboundMessage", "OutboundMessage", "MessageBus"]
