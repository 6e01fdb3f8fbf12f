"""
Host runtime contract.

The bridge does not run an agent. Everything it needs from the host
platform (routing, envelopes, telemetry, reply dispatch) goes through a
``ChannelRuntime``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Literal, Optional


Direction = Literal["inbound", "outbound"]
PeerKind = Literal["direct", "group"]


# =============================
# Types
# =============================

@dataclass(frozen=True, slots=True)
class Peer:
    kind: PeerKind
    id: str


@dataclass(frozen=True, slots=True)
class AgentRoute:
    session_key: str
    agent_id: str = "main"


@dataclass(slots=True)
class InboundContext:
    """Everything the host agent needs to answer one inbound message."""

    body: str
    raw_body: str
    from_label: str
    to: str
    session_key: str
    account_id: str
    chat_type: str
    sender_name: str
    sender_id: str
    message_sid: str
    timestamp: int

    body_for_agent: str = ""
    command_body: str = ""
    command_name: Optional[str] = None
    group_subject: Optional[str] = None
    provider: str = "heychat"
    surface: str = "heychat"


@dataclass(frozen=True, slots=True)
class ReplyPayload:
    text: str = ""
    media: tuple[str, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)


DeliverCallback = Callable[[ReplyPayload], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class DispatchResult:
    queued_final: bool
    counts: Dict[str, int] = field(default_factory=dict)


class ReplyDispatcher:
    """
    Forwards agent output to the channel's ``deliver`` callback.

    ``counts`` tracks how many payloads of each kind went out.
    """

    def __init__(self, deliver: DeliverCallback):
        self._deliver = deliver
        self.counts: Dict[str, int] = {"final": 0, "block": 0, "tool": 0}
        self.idle = False

    async def send(self, payload: ReplyPayload, kind: str = "final") -> None:
        await self._deliver(payload)
        self.counts[kind] = self.counts.get(kind, 0) + 1

    def mark_idle(self) -> None:
        self.idle = True


@dataclass(slots=True)
class ReplyHandle:
    dispatcher: ReplyDispatcher
    reply_options: Dict[str, Any] = field(default_factory=dict)

    def mark_dispatch_idle(self) -> None:
        self.dispatcher.mark_idle()


# =============================
# Contract
# =============================

class ChannelRuntime(ABC):
    """Services a channel consumes from the host agent platform."""

    @abstractmethod
    def record_activity(self, channel: str, account_id: str, direction: Direction) -> None:
        ...

    @abstractmethod
    def resolve_agent_route(self, channel: str, account_id: str, peer: Peer) -> AgentRoute:
        ...

    @abstractmethod
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
        ...

    def finalize_inbound_context(self, ctx: InboundContext) -> InboundContext:
        """Fill derived fields left empty by the channel."""
        if not ctx.body_for_agent:
            ctx.body_for_agent = ctx.raw_body
        if not ctx.command_body:
            ctx.command_body = ctx.raw_body
        return ctx

    @abstractmethod
    def enqueue_system_event(self, text: str, session_key: str, context_key: str) -> bool:
        """Queue an audit event; False when ``context_key`` was already queued."""
        ...

    def create_reply_dispatcher(self, deliver: DeliverCallback) -> ReplyHandle:
        return ReplyHandle(dispatcher=ReplyDispatcher(deliver))

    @abstractmethod
    async def dispatch_reply(
        self,
        ctx: InboundContext,
        dispatcher: ReplyDispatcher,
        reply_options: Optional[Dict[str, Any]] = None,
    ) -> DispatchResult:
        """Run the agent for ``ctx`` and push its output through ``dispatcher``."""
        ...
