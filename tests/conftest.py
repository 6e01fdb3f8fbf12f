from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, Optional

import pytest

from heyclaw.channels.heychat.api import SendResult
from heyclaw.config.accounts import AccountPolicy, ResolvedAccount
from heyclaw.runtime.base import (
    AgentRoute,
    ChannelRuntime,
    DispatchResult,
    InboundContext,
    Peer,
    ReplyDispatcher,
    ReplyPayload,
)


# ---------------------------------------------------------------------------
# Frames
# ---------------------------------------------------------------------------

def message_frame(
    msg_id: str = "m1",
    room_id: str = "100",
    channel_id: str = "200",
    user_id: str = "u1",
    nickname: str = "alice",
    msg: str = "hello",
    type_: str = "5",
    **extra: Any,
) -> str:
    data = {
        "msg_id": msg_id,
        "msg": msg,
        "room_base_info": {"room_id": room_id},
        "channel_base_info": {"channel_id": channel_id},
        "user_base_info": {"user_id": user_id, "nickname": nickname},
        **extra,
    }
    return json.dumps({"type": type_, "data": data})


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

def make_account(account_id: str = "default", token: str = "tok-0123456789", **policy: Any) -> ResolvedAccount:
    return ResolvedAccount(
        account_id=account_id,
        enabled=True,
        configured=bool(token),
        name=f"heychat:{account_id}",
        token=token,
        token_source="config",
        config=AccountPolicy(**policy),
    )


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class FakeRuntime(ChannelRuntime):
    """Records every call; ``dispatch_reply`` replies with ``reply_text``."""

    def __init__(self, reply_text: Optional[str] = "ok", fail: Optional[Exception] = None):
        self.reply_text = reply_text
        self.fail = fail
        self.gate: Optional[asyncio.Event] = None

        self.activity: list[tuple[str, str, str]] = []
        self.routes: list[Peer] = []
        self.events: list[tuple[str, str, str]] = []
        self.contexts: list[InboundContext] = []
        self.active = 0
        self.max_active = 0

    def record_activity(self, channel, account_id, direction):
        self.activity.append((channel, account_id, direction))

    def resolve_agent_route(self, channel, account_id, peer):
        self.routes.append(peer)
        return AgentRoute(session_key=f"{channel}:{account_id}:{peer.kind}:{peer.id}")

    def format_inbound_envelope(self, channel, from_label, timestamp, body, chat_type, sender_name, sender_id):
        return f"[{channel} {from_label}] {body}"

    def enqueue_system_event(self, text, session_key, context_key):
        self.events.append((text, session_key, context_key))
        return True

    async def dispatch_reply(self, ctx: InboundContext, dispatcher: ReplyDispatcher, reply_options=None):
        self.contexts.append(ctx)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.fail is not None:
                raise self.fail
            if self.reply_text is not None:
                await dispatcher.send(ReplyPayload(text=self.reply_text))
            return DispatchResult(queued_final=self.reply_text is not None, counts=dict(dispatcher.counts))
        finally:
            self.active -= 1


class FakeClient:
    """Stands in for ``HeychatClient``."""

    def __init__(self, fail_send: bool = False, fail_reaction: bool = False):
        self.fail_send = fail_send
        self.fail_reaction = fail_reaction
        self.sent: list[dict[str, Any]] = []
        self.cards: list[dict[str, Any]] = []
        self.reactions: list[tuple[str, str, str, str, bool]] = []
        self.closed = False

    async def send_text(self, room_id, channel_id, text, reply_id=None, msg_type=1):
        if self.fail_send:
            raise RuntimeError("send boom")
        self.sent.append(
            {"room_id": room_id, "channel_id": channel_id, "text": text, "reply_id": reply_id, "msg_type": msg_type}
        )
        return SendResult(message_id="a", ack_id="b", msg_id="c")

    async def send_card(self, room_id, channel_id, card, reply_id=None):
        self.cards.append({"room_id": room_id, "channel_id": channel_id, "card": card})
        return SendResult(message_id="a", ack_id="b", msg_id="c")

    async def add_reaction(self, room_id, channel_id, msg_id, emoji):
        if self.fail_reaction:
            raise RuntimeError("reaction boom")
        self.reactions.append((room_id, channel_id, msg_id, emoji, True))
        return f"{msg_id}:{emoji}"

    async def remove_reaction(self, room_id, channel_id, msg_id, emoji):
        if self.fail_reaction:
            raise RuntimeError("reaction boom")
        self.reactions.append((room_id, channel_id, msg_id, emoji, False))

    async def aclose(self):
        self.closed = True


class FakeSocket:
    """Websocket double: yields queued frames, then closes (or waits)."""

    def __init__(self, frames=(), hold_open: bool = False):
        self._queue: asyncio.Queue = asyncio.Queue()
        for frame in frames:
            self._queue.put_nowait(frame)
        if not hold_open:
            self._queue.put_nowait(None)
        self.sent: list[str] = []
        self.closed = False

    def push(self, frame: Optional[str]) -> None:
        self._queue.put_nowait(frame)

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionError("socket closed")
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        frame = await self._queue.get()
        if frame is None:
            self.closed = True
            raise StopAsyncIteration
        return frame


class FakeConnector:
    """Injectable replacement for ``websockets.connect``."""

    def __init__(self, sockets=None, default_factory=None):
        self.sockets = list(sockets or [])
        self.default_factory = default_factory or (lambda: FakeSocket())
        self.calls: list[tuple[str, dict]] = []
        self.opened: list[FakeSocket] = []
        self.connected = asyncio.Event()

    def __call__(self, url: str, **kwargs):
        self.calls.append((url, kwargs))
        sock = self.sockets.pop(0) if self.sockets else self.default_factory()
        return self._session(sock)

    @asynccontextmanager
    async def _session(self, sock):
        self.opened.append(sock)
        self.connected.set()
        yield sock


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()
