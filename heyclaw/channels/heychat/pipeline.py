"""
Heychat inbound pipeline.

Per frame (synchronous, on the read loop):
    classify -> dedup admission -> topology -> spawn task

Per admitted message (task):
    group policy -> activity -> route -> envelope -> system event
        -> reply dispatch (with optional processing reaction)

The dedup slot is released by the task's done-callback, so it is freed on
success, failure and cancellation alike.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Set

from loguru import logger

from heyclaw.channels.heychat import protocol
from heyclaw.channels.heychat.api import HeychatClient
from heyclaw.channels.heychat.classifier import classify_frame
from heyclaw.channels.heychat.dedup import Admission, DedupCache
from heyclaw.channels.heychat.policy import GroupPolicyGate
from heyclaw.channels.heychat.topology import TopologyCache
from heyclaw.channels.heychat.types import (
    ChatType,
    DiscardedFrame,
    LivenessFrame,
    MessageFrame,
    NormalizedMessage,
    NotificationFrame,
)
from heyclaw.config.accounts import ResolvedAccount
from heyclaw.runtime.base import ChannelRuntime, InboundContext, Peer, ReplyPayload
from heyclaw.utils.helpers import now_ms, preview, truncate


class InboundPipeline:
    """Turn raw frames of one account into agent dispatches."""

    def __init__(
        self,
        account: ResolvedAccount,
        runtime: ChannelRuntime,
        client: HeychatClient,
        *,
        dedup: Optional[DedupCache] = None,
        topology: Optional[TopologyCache] = None,
        processing_reaction: str = "",
    ):
        self.account = account
        self.runtime = runtime
        self.client = client
        self.dedup = dedup or DedupCache()
        self.topology = topology or TopologyCache()
        self.gate = GroupPolicyGate(account.config)
        self.processing_reaction = processing_reaction

        self._tasks: Set[asyncio.Task] = set()

    @property
    def account_id(self) -> str:
        return self.account.account_id

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ==========================================================
    # Frame intake
    # ==========================================================

    def handle_frame(self, raw: str) -> Optional[asyncio.Task]:
        """Classify ``raw``; spawn and return a task when a message is admitted."""
        frame = classify_frame(raw)

        if isinstance(frame, LivenessFrame):
            return None

        if isinstance(frame, NotificationFrame):
            logger.debug(
                "Heychat notification ignored | account={} userid={}",
                self.account_id,
                frame.user_id,
            )
            return None

        if isinstance(frame, DiscardedFrame):
            if frame.malformed:
                logger.warning(
                    "Malformed Heychat frame dropped | account={} reason={} raw={}",
                    self.account_id,
                    frame.reason,
                    truncate(raw, 200),
                )
            else:
                logger.debug(
                    "Heychat frame skipped | account={} type={} reason={}",
                    self.account_id,
                    frame.raw_type,
                    frame.reason,
                )
            return None

        assert isinstance(frame, MessageFrame)
        return self.submit(frame.message)

    def submit(self, message: NormalizedMessage) -> Optional[asyncio.Task]:
        verdict = self.dedup.admit(message.msg_id)
        if verdict is Admission.DUPLICATE:
            logger.debug("Duplicate Heychat message ignored | account={} msg_id={}", self.account_id, message.msg_id)
            return None
        if verdict is Admission.IN_FLIGHT:
            logger.debug("Heychat message already processing | account={} msg_id={}", self.account_id, message.msg_id)
            return None

        chat_type = self.topology.observe(message.room_id, message.channel_id)

        if message.is_command:
            logger.info(
                "Received command | account={} command={} sender={} msg_id={}",
                self.account_id,
                message.command_name,
                message.sender_name,
                message.msg_id,
            )
        else:
            logger.info(
                "Received message | account={} sender={} chat={} msg_id={}",
                self.account_id,
                message.sender_name,
                chat_type.value,
                message.msg_id,
            )

        task = asyncio.create_task(
            self.process(message, chat_type),
            name=f"heychat-msg-{message.msg_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(lambda t, msg_id=message.msg_id: self._on_task_done(t, msg_id))
        return task

    def _on_task_done(self, task: asyncio.Task, msg_id: str) -> None:
        self.dedup.release(msg_id)
        self._tasks.discard(task)

        if task.cancelled():
            logger.warning("Heychat message task cancelled | account={} msg_id={}", self.account_id, msg_id)
            return

        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(
                "Heychat message task crashed | account={} msg_id={}", self.account_id, msg_id
            )

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every in-flight message task without cancelling any.

        Returns False when tasks are still running after ``timeout`` seconds.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            await asyncio.wait(list(self._tasks), timeout=remaining)
        return True

    # ==========================================================
    # Per-message processing
    # ==========================================================

    async def process(self, message: NormalizedMessage, chat_type: ChatType) -> None:
        is_group = chat_type is ChatType.GROUP

        if is_group:
            decision = self.gate.evaluate(message.channel_id, message.user_id, message.sender_name)
            if not decision.allowed:
                logger.info(
                    "Heychat message ignored by policy | account={} msg_id={} reason={}",
                    self.account_id,
                    message.msg_id,
                    decision.reason,
                )
                return

        ctx = self._build_context(message, chat_type)

        label = (
            f"Heychat[{self.account_id}] message in group {message.channel_id}"
            if is_group
            else f"Heychat[{self.account_id}] DM from {message.sender_name}"
        )
        self.runtime.enqueue_system_event(
            f"{label}: {preview(message.text)}",
            session_key=ctx.session_key,
            context_key=f"heychat:message:{message.conversation_id}:{message.msg_id}",
        )

        handle = self.runtime.create_reply_dispatcher(deliver=self._make_deliver(message))
        indicator = self._start_indicator(message)

        try:
            result = await self.runtime.dispatch_reply(ctx, handle.dispatcher, handle.reply_options)
            handle.mark_dispatch_idle()
            finals = result.counts.get("final", 0)
            if result.queued_final or finals > 0:
                logger.info(
                    "Agent reply complete | account={} msg_id={} queued_final={} replies={}",
                    self.account_id,
                    message.msg_id,
                    result.queued_final,
                    finals,
                )
        except Exception as e:
            handle.mark_dispatch_idle()
            logger.error(
                "Failed to dispatch reply | account={} msg_id={} err={!r}",
                self.account_id,
                message.msg_id,
                e,
            )
        finally:
            await self._stop_indicator(message, indicator)

    def _build_context(self, message: NormalizedMessage, chat_type: ChatType) -> InboundContext:
        is_group = chat_type is ChatType.GROUP
        timestamp = now_ms()

        self.runtime.record_activity(protocol.PROVIDER_ID, self.account_id, "inbound")

        route = self.runtime.resolve_agent_route(
            protocol.PROVIDER_ID,
            self.account_id,
            Peer(kind=chat_type.value, id=message.channel_id if is_group else message.user_id),
        )

        from_label = f"{message.channel_id}:{message.user_id}" if is_group else message.user_id

        body = self.runtime.format_inbound_envelope(
            channel=protocol.PROVIDER_LABEL,
            from_label=from_label,
            timestamp=timestamp,
            body=message.text,
            chat_type=chat_type.value,
            sender_name=message.sender_name,
            sender_id=message.user_id,
        )

        return self.runtime.finalize_inbound_context(
            InboundContext(
                body=body,
                body_for_agent=message.text,
                raw_body=message.text,
                command_body=message.text,
                command_name=message.command_name,
                from_label=from_label,
                to=message.conversation_id,
                session_key=route.session_key,
                account_id=self.account_id,
                chat_type=chat_type.value,
                group_subject=message.channel_id if is_group else None,
                sender_name=message.sender_name,
                sender_id=message.user_id,
                message_sid=message.msg_id,
                timestamp=timestamp,
            )
        )

    def _make_deliver(self, message: NormalizedMessage):
        async def deliver(payload: ReplyPayload) -> None:
            text = payload.text or ""
            try:
                room_id, channel_id = self.topology.resolve_address(
                    message.room_id or None, message.channel_id or None
                )
                await self.client.send_text(room_id, channel_id, text)
                self.runtime.record_activity(protocol.PROVIDER_ID, self.account_id, "outbound")
                logger.info("Sent reply | account={} text={}", self.account_id, truncate(text, 50))
            except Exception as e:
                logger.error("Failed to send reply | account={} err={}", self.account_id, e)

        return deliver

    # ==========================================================
    # Processing indicator (best effort)
    # ==========================================================

    def _start_indicator(self, message: NormalizedMessage) -> Optional[asyncio.Task]:
        if not self.processing_reaction:
            return None
        return asyncio.create_task(self._react(message, add=True))

    async def _stop_indicator(self, message: NormalizedMessage, indicator: Optional[asyncio.Task]) -> None:
        if indicator is None:
            return
        added = await indicator
        if added:
            await self._react(message, add=False)

    async def _react(self, message: NormalizedMessage, add: bool) -> bool:
        try:
            room_id, channel_id = self.topology.resolve_address(
                message.room_id or None, message.channel_id or None
            )
            if add:
                await self.client.add_reaction(room_id, channel_id, message.msg_id, self.processing_reaction)
            else:
                await self.client.remove_reaction(room_id, channel_id, message.msg_id, self.processing_reaction)
            return True
        except Exception as e:
            logger.warning(
                "Processing reaction failed | account={} msg_id={} add={} err={}",
                self.account_id,
                message.msg_id,
                add,
                e,
            )
            return False
