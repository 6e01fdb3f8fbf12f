"""
Heychat streaming connection manager.

One instance owns one websocket session for one account:

    connect -> heartbeat every 30s -> read frames -> on close, wait 5s, reconnect

Retries forever at a fixed interval until ``stop()``. Socket errors are
logged and never escape; only the explicit stop ends the session.
"""

from __future__ import annotations

import asyncio
import ssl
from dataclasses import dataclass
from typing import Any, Callable, Optional

import websockets
from loguru import logger

from heyclaw.channels.heychat import protocol


FrameHandler = Callable[[str], Any]


@dataclass(slots=True)
class ConnectionSession:
    socket: Optional[Any] = None
    heartbeat_task: Optional[asyncio.Task] = None
    closed: bool = False


def _insecure_ssl_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


class ConnectionManager:
    """
    Keep exactly one live websocket per account.

    ``on_frame`` is called synchronously for every non-liveness text frame
    and must not block; long work belongs in tasks it spawns itself.
    ``connect`` defaults to ``websockets.connect`` and is injectable.
    """

    def __init__(
        self,
        url: str,
        on_frame: FrameHandler,
        *,
        account_id: str = "default",
        heartbeat_interval: float = 30.0,
        reconnect_delay: float = 5.0,
        verify_ssl: bool = True,
        connect: Optional[Callable[..., Any]] = None,
    ):
        self.url = url
        self.account_id = account_id
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_delay = reconnect_delay

        self._on_frame = on_frame
        self._connect = connect or websockets.connect
        self._connect_kwargs: dict[str, Any] = {"ping_interval": None}
        if not verify_ssl and url.startswith("wss://"):
            self._connect_kwargs["ssl"] = _insecure_ssl_context()

        self.session = ConnectionSession()
        self._stop_event = asyncio.Event()

        self.connect_attempts = 0
        self.frames_received = 0

    # ==========================================================
    # Lifecycle
    # ==========================================================

    @property
    def is_connected(self) -> bool:
        return self.session.socket is not None

    async def run(self) -> None:
        """Connect and keep reconnecting until ``stop()``; blocks until then."""
        logger.info("Heychat connection starting | account={}", self.account_id)

        while not self.session.closed:
            try:
                await self._connect_once()
            except asyncio.CancelledError:
                self.session.closed = True
                self._cancel_heartbeat()
                logger.info("Heychat connection cancelled | account={}", self.account_id)
                raise
            except Exception as e:
                logger.warning("Heychat socket error | account={} err={}", self.account_id, e)

            self._cancel_heartbeat()
            logger.info("Heychat connection closed | account={}", self.account_id)

            if self.session.closed:
                break

            logger.info(
                "Reconnecting to Heychat in {}s | account={}",
                self.reconnect_delay,
                self.account_id,
            )
            if await self._wait_for_stop(self.reconnect_delay):
                break

        self._cancel_heartbeat()
        logger.info("Heychat connection stopped | account={}", self.account_id)

    async def stop(self) -> None:
        """Close the session for good; a closed session never reconnects."""
        self.session.closed = True
        self._stop_event.set()
        self._cancel_heartbeat()

        ws = self.session.socket
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.warning("Closing Heychat socket failed | account={} err={}", self.account_id, e)
            finally:
                self.session.socket = None

    # ==========================================================
    # Connection
    # ==========================================================

    async def _connect_once(self) -> None:
        self.connect_attempts += 1
        logger.info("Connecting to Heychat websocket | account={}", self.account_id)

        async with self._connect(self.url, **self._connect_kwargs) as ws:
            self.session.socket = ws
            try:
                if self.session.closed:
                    return

                logger.success("Heychat websocket connected | account={}", self.account_id)
                self._start_heartbeat(ws)

                async for raw in ws:
                    self._handle_raw(raw)
            finally:
                self.session.socket = None

    def _handle_raw(self, raw: Any) -> None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")

        if protocol.is_liveness_response(raw):
            return

        self.frames_received += 1
        try:
            self._on_frame(raw)
        except Exception:
            logger.exception("Heychat frame handler failed | account={}", self.account_id)

    async def _wait_for_stop(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    # ==========================================================
    # Heartbeat
    # ==========================================================

    def _start_heartbeat(self, ws: Any) -> None:
        self._cancel_heartbeat()
        self.session.heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(ws), name=f"heychat-heartbeat-{self.account_id}"
        )

    def _cancel_heartbeat(self) -> None:
        task = self.session.heartbeat_task
        if task is not None:
            task.cancel()
            self.session.heartbeat_task = None

    async def _heartbeat_loop(self, ws: Any) -> None:
        while not self.session.closed and self.session.socket is ws:
            await asyncio.sleep(self.heartbeat_interval)
            if self.session.closed or self.session.socket is not ws:
                break
            try:
                await ws.send(protocol.PING_FRAME)
            except Exception as e:
                logger.warning("Heychat heartbeat failed | account={} err={}", self.account_id, e)
                break
