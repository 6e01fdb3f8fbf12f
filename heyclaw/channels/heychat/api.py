"""
Heychat outbound REST client.

Every call is a single authenticated POST; anything but an ``ok`` reply
raises ``HeychatApiError``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx
from loguru import logger

from heyclaw.channels.heychat import protocol
from heyclaw.channels.heychat.errors import HeychatApiError, HeychatError
from heyclaw.channels.heychat.protocol import MsgType


@dataclass(frozen=True, slots=True)
class SendResult:
    message_id: str
    ack_id: str
    msg_id: str


@dataclass(frozen=True, slots=True)
class ProbeResult:
    ok: bool
    error: Optional[str] = None
    bot_id: Optional[str] = None
    bot_name: Optional[str] = None


def probe_token(token: Optional[str]) -> ProbeResult:
    """Cheap local sanity check of a token (the service has no whoami call)."""
    if not token or not token.strip():
        return ProbeResult(ok=False, error="Token is empty")
    if len(token) < 10:
        return ProbeResult(ok=False, error="Token format invalid")
    return ProbeResult(ok=True, bot_id="heychat-bot", bot_name="Heychat Bot")


class HeychatClient:
    """
    Thin async wrapper over the Heychat bot REST endpoints.

    The underlying ``httpx.AsyncClient`` is created lazily and may be
    injected (tests pass one with a ``MockTransport``).
    """

    def __init__(
        self,
        token: str,
        http_host: str = "https://chat.xiaoheihe.cn",
        *,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ):
        self.token = token
        self.http_host = http_host.rstrip("/")
        self._http = http
        self._timeout = timeout
        self._verify = verify_ssl
        self._closed = False

    # ==========================================================
    # Lifecycle
    # ==========================================================

    @property
    def http(self) -> httpx.AsyncClient:
        if self._closed:
            raise HeychatError("Heychat client is closed")
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout, verify=self._verify)
        return self._http

    @property
    def closed(self) -> bool:
        return self._closed

    async def aclose(self) -> None:
        self._closed = True
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ==========================================================
    # Messages
    # ==========================================================

    async def send_text(
        self,
        room_id: str,
        channel_id: str,
        text: str,
        reply_id: Optional[str] = None,
        msg_type: int = MsgType.TEXT,
    ) -> SendResult:
        body = {
            "heychat_ack_id": "0",
            "msg_type": msg_type,
            "msg": text,
            "channel_id": channel_id,
            "room_id": room_id,
            "reply_id": reply_id or "",
        }
        result = await self._post(protocol.SEND_PATH, protocol.COMMON_PARAMS, body, "send message")
        payload = result.get("result") or {}

        return SendResult(
            message_id=str(payload.get("chatmobile_ack_id") or ""),
            ack_id=str(payload.get("heychat_ack_id") or ""),
            msg_id=str(payload.get("msg_id") or ""),
        )

    async def send_card(
        self,
        room_id: str,
        channel_id: str,
        card: Union[dict[str, Any], str],
        reply_id: Optional[str] = None,
    ) -> SendResult:
        """Send a pre-built card payload; no rendering happens here."""
        text = card if isinstance(card, str) else json.dumps(card, ensure_ascii=False)
        return await self.send_text(room_id, channel_id, text, reply_id=reply_id, msg_type=MsgType.CARD)

    # ==========================================================
    # Reactions
    # ==========================================================

    async def add_reaction(self, room_id: str, channel_id: str, msg_id: str, emoji: str) -> str:
        """Add ``emoji``; returns a synthetic reaction id (the API has none)."""
        await self._react(room_id, channel_id, msg_id, emoji, is_add=True)
        return f"{msg_id}:{emoji}"

    async def remove_reaction(self, room_id: str, channel_id: str, msg_id: str, emoji: str) -> None:
        await self._react(room_id, channel_id, msg_id, emoji, is_add=False)

    async def _react(
        self, room_id: str, channel_id: str, msg_id: str, emoji: str, is_add: bool
    ) -> None:
        body = {
            "msg_id": msg_id,
            "emoji": emoji,
            "is_add": 1 if is_add else 0,
            "channel_id": channel_id,
            "room_id": room_id,
        }
        action = "add reaction" if is_add else "remove reaction"
        await self._post(protocol.REACTION_PATH, protocol.REACTION_PARAMS, body, action)

    # ==========================================================
    # Transport
    # ==========================================================

    async def _post(self, path: str, params: str, body: dict, action: str) -> dict:
        url = f"{self.http_host}{path}?{params}"
        headers = {"Content-Type": "application/json", "token": self.token}

        try:
            resp = await self.http.post(url, headers=headers, json=body)
        except httpx.HTTPError as e:
            raise HeychatApiError(f"Heychat {action} failed: {e}") from e

        if resp.is_error:
            raise HeychatApiError(
                f"Heychat {action} failed: HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            result = resp.json()
        except ValueError as e:
            raise HeychatApiError(
                f"Heychat {action} failed: invalid JSON response",
                status_code=resp.status_code,
            ) from e

        if not isinstance(result, dict) or result.get("status") != "ok":
            detail = result.get("msg") if isinstance(result, dict) else None
            status = result.get("status") if isinstance(result, dict) else None
            raise HeychatApiError(
                f"Heychat {action} failed: {detail or f'status {status}'}",
                status_code=resp.status_code,
            )

        logger.debug("Heychat {} ok | room={} channel={}", action, body.get("room_id"), body.get("channel_id"))
        return result
