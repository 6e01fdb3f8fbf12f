"""
Async message bus for decoupled bridge-agent communication.
"""

from __future__ import annotations

import asyncio

from heyclaw.bus.events import InboundMessage, OutboundMessage


class MessageBus:
    """
    Async message bus that decouples the Heychat bridge from the host agent.

    Architecture:
        HeychatChannel -> inbound queue -> agent -> outbound queue -> ChannelManager
    """

    def __init__(
        self,
        inbound_size: int = 0,
        outbound_size: int = 0,
    ):
        self.inbound: asyncio.Queue[InboundMessage] = asyncio.Queue(
            maxsize=inbound_size
        )
        self.outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue(
            maxsize=outbound_size
        )

    # ---------------------------------------------------------------------
    # Inbound
    # ---------------------------------------------------------------------

    async def publish_inbound(self, msg: InboundMessage) -> None:
        """Publish a message from the bridge into the agent pipeline."""
        await self.inbound.put(msg)

    async def consume_inbound(self) -> InboundMessage:
        """Consume next inbound message (blocking)."""
        return await self.inbound.get()

    # ---------------------------------------------------------------------
    # Outbound
    # ---------------------------------------------------------------------

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        """Publish agent response to outbound pipeline."""
        await self.outbound.put(msg)

    async def consume_outbound(self) -> OutboundMessage:
        """Consume next outbound message (blocking)."""
        return await self.outbound.get()

    # ---------------------------------------------------------------------
    # Metrics
    # ---------------------------------------------------------------------

    @property
    def inbound_size(self) -> int:
        return self.inbound.qsize()

    @property
    def outbound_size(self) -> int:
        return self.outbound.qsize()
