"""Heychat channel: websocket inbound + REST outbound for one account."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from loguru import logger

from heyclaw.bus.events import OutboundMessage
from heyclaw.channels.base import BaseChannel
from heyclaw.channels.heychat import protocol
from heyclaw.channels.heychat.api import HeychatClient
from heyclaw.channels.heychat.connection import ConnectionManager
from heyclaw.channels.heychat.dedup import DedupCache
from heyclaw.channels.heychat.errors import MissingTokenError
from heyclaw.channels.heychat.pipeline import InboundPipeline
from heyclaw.channels.heychat.protocol import MsgType
from heyclaw.channels.heychat.topology import TopologyCache
from heyclaw.config.accounts import ResolvedAccount
from heyclaw.config.schema import HeychatConfig
from heyclaw.runtime.base import ChannelRuntime


class HeychatChannel(BaseChannel):
    """
    Heychat dual-stack channel.

    Architecture:
        - Websocket: inbound event stream (ConnectionManager)
        - REST API: replies, agent-initiated sends, reactions (HeychatClient)
        - InboundPipeline: classify, dedup, policy, dispatch
    """

    name = protocol.PROVIDER_ID

    def __init__(
        self,
        account: ResolvedAccount,
        config: HeychatConfig,
        runtime: ChannelRuntime,
        *,
        dedup: Optional[DedupCache] = None,
        topology: Optional[TopologyCache] = None,
        client: Optional[HeychatClient] = None,
        connect: Optional[Callable[..., Any]] = None,
    ):
        super().__init__(account.account_id)

        token = (account.token or "").strip()
        if not token:
            raise MissingTokenError(account.account_id)

        self.account = account
        self.config = config
        self.runtime = runtime
        self.topology = topology or TopologyCache()

        self.client = client or HeychatClient(
            token,
            config.http_host,
            verify_ssl=config.verify_ssl,
        )

        self.pipeline = InboundPipeline(
            account,
            runtime,
            self.client,
            dedup=dedup or DedupCache(config.dedup_capacity),
            topology=self.topology,
            processing_reaction=config.processing_reaction,
        )

        self.connection = ConnectionManager(
            protocol.build_ws_url(config.ws_url, token),
            self.pipeline.handle_frame,
            account_id=account.account_id,
            heartbeat_interval=config.heartbeat_interval_s,
            reconnect_delay=config.reconnect_delay_s,
            verify_ssl=config.verify_ssl,
            connect=connect,
        )

    # ==========================================================
    # Lifecycle
    # ==========================================================

    async def start(self) -> None:
        self._running = True
        logger.info("Heychat channel starting | account={} name={}", self.account_id, self.account.name)
        try:
            await self.connection.run()
        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop reading, let in-flight messages finish, then close the REST client."""
        await self.connection.stop()

        if self.pipeline.in_flight:
            logger.info(
                "Waiting for in-flight Heychat messages | account={} count={}",
                self.account_id,
                self.pipeline.in_flight,
            )
        if not await self.pipeline.drain(timeout=self.config.reply_timeout_s):
            logger.warning(
                "Heychat messages still running at shutdown | account={} count={}",
                self.account_id,
                self.pipeline.in_flight,
            )

        await self.client.aclose()
        self._running = False
        logger.info("Heychat channel stopped | account={}", self.account_id)

    # ==========================================================
    # Outbound
    # ==========================================================

    async def send(self, msg: OutboundMessage) -> None:
        try:
            room_id, channel_id = self.topology.resolve_target(msg.chat_id)
        except ValueError:
            logger.warning("Heychat send dropped, empty target | account={}", self.account_id)
            return

        try:
            if msg.metadata.get("card") is not None:
                await self.client.send_card(room_id, channel_id, msg.metadata["card"], reply_id=msg.reply_to)
            else:
                await self.client.send_text(
                    room_id,
                    channel_id,
                    msg.content,
                    reply_id=msg.reply_to,
                    msg_type=MsgType.AT_MARKDOWN,
                )
            self.runtime.record_activity(self.name, self.account_id, "outbound")
            logger.debug("Heychat outbound sent | account={} room={} channel={}", self.account_id, room_id, channel_id)
        except Exception as e:
            logger.error("Heychat send failed | account={} err={}", self.account_id, e)

    # ==========================================================
    # Status
    # ==========================================================

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "connected": self.connection.is_connected,
            "connect_attempts": self.connection.connect_attempts,
            "frames_received": self.connection.frames_received,
            "in_flight": self.pipeline.in_flight,
            "token_source": self.account.token_source,
        }
