"""
Echo agent.

Answers every inbound bus message with its own text. Useful to check a
gateway end to end before a real agent is attached.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from heyclaw.bus.events import InboundMessage, OutboundMessage
from heyclaw.bus.queue import MessageBus


class EchoAgent:
    """Bus consumer that mirrors inbound text back to the sender."""

    def __init__(self, bus: MessageBus, prefix: str = "Echo: "):
        self.bus = bus
        self.prefix = prefix
        self._running = False

    async def run(self) -> None:
        self._running = True
        logger.info("Echo agent started")

        while self._running:
            try:
                msg = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            await self.bus.publish_outbound(self.reply_to(msg))

        logger.info("Echo agent stopped")

    def stop(self) -> None:
        self._running = False

    def reply_to(self, msg: InboundMessage) -> OutboundMessage:
        logger.info("Echoing message | session={} sender={}", msg.session_key, msg.sender_id)
        return OutboundMessage(
            channel=msg.channel,
            chat_id=msg.chat_id,
            content=f"{self.prefix}{msg.content}",
            account_id=msg.account_id,
            reply_to=msg.message_id or None,
        )
