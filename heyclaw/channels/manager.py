"""Channel runtime orchestrator for heyclaw."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from loguru import logger

from heyclaw.bus.events import OutboundMessage
from heyclaw.bus.queue import MessageBus
from heyclaw.channels.base import BaseChannel
from heyclaw.channels.heychat import HeychatChannel, MissingTokenError
from heyclaw.channels.heychat.dedup import DedupCache
from heyclaw.channels.heychat.topology import TopologyCache
from heyclaw.config.accounts import DEFAULT_ACCOUNT_ID, list_enabled_accounts
from heyclaw.config.schema import Config
from heyclaw.runtime.bus_runtime import BusRuntime


class ChannelManager:
    """
    Channel runtime orchestrator.

    Responsibilities:
        - One HeychatChannel per enabled, configured account
        - Shared dedup / topology caches across accounts
        - Outbound message dispatch loop
        - Channel registry & status monitoring
    """

    def __init__(
        self,
        config: Config,
        bus: MessageBus,
        runtime: Optional[BusRuntime] = None,
        **channel_kwargs: Any,
    ):
        self.config = config
        self.bus = bus
        self.runtime = runtime or BusRuntime(bus, reply_timeout=config.heychat.reply_timeout_s)

        # Process-wide caches; ids are not namespaced per account.
        self.dedup = DedupCache(config.heychat.dedup_capacity)
        self.topology = TopologyCache()

        self.channels: Dict[str, BaseChannel] = {}

        self._channel_tasks: Dict[str, asyncio.Task] = {}
        self._dispatcher_task: Optional[asyncio.Task] = None
        self._running: bool = False
        self._stopping: bool = False

        self._init_channels(channel_kwargs)

    # ==========================================================
    # Channel initialization
    # ==========================================================

    def _init_channels(self, channel_kwargs: Dict[str, Any]) -> None:
        """Initialize one channel per enabled Heychat account."""
        if self.config.heychat.enabled is False:
            logger.warning("Heychat channel disabled in config")
            return

        for account in list_enabled_accounts(self.config):
            try:
                channel = HeychatChannel(
                    account,
                    self.config.heychat,
                    self.runtime,
                    dedup=self.dedup,
                    topology=self.topology,
                    **channel_kwargs,
                )
            except MissingTokenError as e:
                logger.warning("Channel init failed: {}", e)
                continue

            self.channels[account.account_id] = channel
            logger.info("Channel enabled: {}", channel.key)

        if not self.channels:
            logger.warning("No channels enabled")

    # ==========================================================
    # Lifecycle orchestration
    # ==========================================================

    async def start(self) -> None:
        """Start all channels and dispatcher."""
        if not self.channels:
            return

        self._running = True

        logger.info("Starting ChannelManager ...")

        self._dispatcher_task = asyncio.create_task(
            self._dispatch_loop(), name="channel-dispatcher"
        )

        for account_id, channel in self.channels.items():
            logger.info("Starting channel: {}", channel.key)
            self._channel_tasks[account_id] = asyncio.create_task(
                channel.start(), name=f"channel-{channel.key}"
            )

    async def wait(self) -> None:
        """Block until every channel task has finished."""
        if self._channel_tasks:
            await asyncio.gather(*self._channel_tasks.values(), return_exceptions=True)

    async def stop(self) -> None:
        """
        Gracefully shutdown all channels, then the dispatcher.

        Channels drain their in-flight messages while the dispatcher keeps
        routing agent replies to them.
        """
        if not self._running or self._stopping:
            return

        self._stopping = True

        logger.info("Stopping ChannelManager ...")

        await asyncio.gather(*(self._stop_channel(c) for c in self.channels.values()))

        await self.wait()
        self._channel_tasks.clear()

        self._running = False
        self._stopping = False

        if self._dispatcher_task:
            self._dispatcher_task.cancel()
            try:
                await self._dispatcher_task
            except asyncio.CancelledError:
                pass
            self._dispatcher_task = None

    async def _stop_channel(self, channel: BaseChannel) -> None:
        try:
            await channel.stop()
            logger.info("Channel stopped: {}", channel.key)
        except Exception as e:
            logger.error("Channel stop failed: {} | {}", channel.key, e)

    # ==========================================================
    # Dispatcher
    # ==========================================================

    async def _dispatch_loop(self) -> None:
        """Outbound message dispatch loop."""
        logger.info("Outbound dispatcher started")

        while self._running:
            try:
                msg: OutboundMessage = await asyncio.wait_for(
                    self.bus.consume_outbound(),
                    timeout=1.0,
                )

                await self.dispatch_message(msg)

            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception("Outbound dispatcher error: {}", e)

        logger.info("Outbound dispatcher stopped")

    async def dispatch_message(self, msg: OutboundMessage) -> None:
        """Replies go to their waiting dispatch; everything else is sent directly."""
        if self.runtime.claim_reply(msg):
            return

        channel = self.channels.get(msg.account_id or DEFAULT_ACCOUNT_ID)

        if not channel or channel.name != msg.channel:
            logger.warning("Unknown channel: {}:{}", msg.channel, msg.account_id)
            return

        try:
            await channel.send(msg)
        except Exception as e:
            logger.error("Send failed | channel={} error={}", channel.key, e)

    # ==========================================================
    # Query API
    # ==========================================================

    def get_channel(self, account_id: str) -> Optional[BaseChannel]:
        return self.channels.get(account_id)

    @property
    def enabled_channels(self) -> list[str]:
        return [channel.key for channel in self.channels.values()]

    def get_status(self) -> Dict[str, Any]:
        activity = self.runtime.activity
        return {
            channel.key: {
                **channel.get_status(),
                "last_inbound_at": activity.last_at(channel.name, account_id, "inbound"),
                "last_outbound_at": activity.last_at(channel.name, account_id, "outbound"),
            }
            for account_id, channel in self.channels.items()
        }
