"""
In-process ``ChannelRuntime`` backed by the ``MessageBus``.

Reply flow:
    dispatch_reply -> bus.inbound -> host agent -> bus.outbound
        -> ChannelManager -> claim_reply -> dispatcher.deliver
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from loguru import logger

from heyclaw.bus.events import InboundMessage, OutboundMessage
from heyclaw.bus.queue import MessageBus
from heyclaw.runtime.activity import ActivityTracker, SystemEventQueue
from heyclaw.runtime.base import (
    AgentRoute,
    ChannelRuntime,
    DispatchResult,
    InboundContext,
    Peer,
    ReplyDispatcher,
    ReplyPayload,
)
from heyclaw.utils.helpers import build_session_key, format_utc


class BusRuntime(ChannelRuntime):
    """Route inbound contexts onto the bus and wait for the agent's reply."""

    def __init__(
        self,
        bus: MessageBus,
        reply_timeout: float = 120.0,
        agent_id: str = "main",
    ):
        self.bus = bus
        self.reply_timeout = reply_timeout
        self.agent_id = agent_id

        self.activity = ActivityTracker()
        self.system_events = SystemEventQueue()

        self._waiters: Dict[tuple[str, str], asyncio.Future[OutboundMessage]] = {}

    # ==========================================================
    # Telemetry / routing
    # ==========================================================

    def record_activity(self, channel: str, account_id: str, direction: str) -> None:
        self.activity.record(channel, account_id, direction)

    def resolve_agent_route(self, channel: str, account_id: str, peer: Peer) -> AgentRoute:
        return AgentRoute(
            session_key=build_session_key(channel, account_id, peer.kind, peer.id),
            agent_id=self.agent_id,
        )

    def format_inbound_envelope(
        self,
        channel: str,
        from_label: str,
        timestamp: int,
        body: str,
        chat_type: str,
        sender_name: str,
        sender_id: str,
    ) -> str:
        sender = from_label
        if chat_type == "group" and sender_name:
            sender = f"{sender_name} ({from_label})"
        return f"[{channel} {sender} {format_utc(timestamp)}] {body}"

    def enqueue_system_event(self, text: str, session_key: str, context_key: str) -> bool:
        queued = self.system_events.enqueue(text, session_key, context_key)
        if not queued:
            logger.debug("System event already queued | context={}", context_key)
        return queued

    # ==========================================================
    # Reply dispatch
    # ==========================================================

    async def dispatch_reply(
        self,
        ctx: InboundContext,
        dispatcher: ReplyDispatcher,
        reply_options: Optional[Dict[str, Any]] = None,
    ) -> DispatchResult:
        key = (ctx.account_id, ctx.message_sid)
        if key in self._waiters:
            raise RuntimeError(f"Reply already pending | account={key[0]} msg_id={key[1]}")

        waiter: asyncio.Future[OutboundMessage] = asyncio.get_running_loop().create_future()
        self._waiters[key] = waiter

        try:
            await self.bus.publish_inbound(self._to_inbound(ctx))
            reply = await asyncio.wait_for(waiter, timeout=self.reply_timeout)
        finally:
            self._waiters.pop(key, None)

        await dispatcher.send(
            ReplyPayload(text=reply.content, media=tuple(reply.media), metadata=dict(reply.metadata))
        )
        return DispatchResult(queued_final=True, counts=dict(dispatcher.counts))

    def claim_reply(self, msg: OutboundMessage) -> bool:
        """Hand ``msg`` to a pending ``dispatch_reply``; False if none waits for it."""
        if not msg.reply_to:
            return False

        waiter = self._waiters.get((msg.account_id, msg.reply_to))
        if waiter is None or waiter.done():
            return False

        waiter.set_result(msg)
        return True

    @property
    def pending_replies(self) -> int:
        return len(self._waiters)

    @staticmethod
    def _to_inbound(ctx: InboundContext) -> InboundMessage:
        return InboundMessage(
            channel=ctx.provider,
            account_id=ctx.account_id,
            sender_id=ctx.sender_id,
            chat_id=ctx.to,
            content=ctx.body_for_agent,
            session_key=ctx.session_key,
            metadata={
                "message_id": ctx.message_sid,
                "envelope": ctx.body,
                "chat_type": ctx.chat_type,
                "sender_name": ctx.sender_name,
                "from": ctx.from_label,
                "group_subject": ctx.group_subject,
                "command_name": ctx.command_name,
                "timestamp": ctx.timestamp,
            },
        )
