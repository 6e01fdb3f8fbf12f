import asyncio

import pytest

from heyclaw.bus.events import OutboundMessage
from heyclaw.bus.queue import MessageBus
from heyclaw.runtime.activity import SystemEventQueue
from heyclaw.runtime.base import InboundContext, Peer, ReplyPayload
from heyclaw.runtime.bus_runtime import BusRuntime


def _context(msg_id: str = "m1", account_id: str = "default") -> InboundContext:
    return InboundContext(
        body="[Heychat u1 2026-01-01 00:00 UTC] hello",
        raw_body="hello",
        from_label="u1",
        to="100:100",
        session_key="heychat:default:direct:u1",
        account_id=account_id,
        chat_type="direct",
        sender_name="alice",
        sender_id="u1",
        message_sid=msg_id,
        timestamp=0,
        body_for_agent="hello",
    )


@pytest.fixture
def bus() -> MessageBus:
    return MessageBus()


def test_route_session_key(bus) -> None:
    runtime = BusRuntime(bus, agent_id="helper")

    route = runtime.resolve_agent_route("heychat", "work", Peer(kind="group", id="200"))

    assert route.session_key == "heychat:work:group:200"
    assert route.agent_id == "helper"


def test_envelope_direct_and_group(bus) -> None:
    runtime = BusRuntime(bus)

    direct = runtime.format_inbound_envelope("Heychat", "u1", 0, "hi", "direct", "alice", "u1")
    group = runtime.format_inbound_envelope("Heychat", "200:u1", 0, "hi", "group", "alice", "u1")

    assert direct == "[Heychat u1 1970-01-01 00:00 UTC] hi"
    assert group == "[Heychat alice (200:u1) 1970-01-01 00:00 UTC] hi"


def test_system_events_deduplicated_by_context_key(bus) -> None:
    runtime = BusRuntime(bus)

    assert runtime.enqueue_system_event("a", "s1", "heychat:message:1:2:m1")
    assert not runtime.enqueue_system_event("a again", "s1", "heychat:message:1:2:m1")
    assert runtime.enqueue_system_event("b", "s1", "heychat:message:1:2:m2")

    assert [e.text for e in runtime.system_events.drain("s1")] == ["a", "b"]
    assert runtime.system_events.drain("s1") == []


def test_activity_is_counted(bus) -> None:
    runtime = BusRuntime(bus)

    runtime.record_activity("heychat", "default", "inbound")
    runtime.record_activity("heychat", "default", "inbound")

    assert runtime.activity.count("heychat", "default", "inbound") == 2
    assert runtime.activity.last_at("heychat", "default", "outbound") is None


async def test_dispatch_reply_waits_for_claimed_reply(bus) -> None:
    runtime = BusRuntime(bus, reply_timeout=2)
    delivered: list[ReplyPayload] = []

    async def deliver(payload: ReplyPayload) -> None:
        delivered.append(payload)

    handle = runtime.create_reply_dispatcher(deliver)
    task = asyncio.create_task(runtime.dispatch_reply(_context(), handle.dispatcher))

    inbound = await asyncio.wait_for(bus.consume_inbound(), timeout=1)
    assert inbound.content == "hello"
    assert inbound.chat_id == "100:100"
    assert inbound.message_id == "m1"
    assert inbound.metadata["envelope"].endswith("hello")
    assert runtime.pending_replies == 1

    reply = OutboundMessage(
        channel="heychat", chat_id="100:100", content="hi back", account_id="default", reply_to="m1"
    )
    assert runtime.claim_reply(reply)

    result = await task
    assert result.queued_final
    assert result.counts["final"] == 1
    assert [p.text for p in delivered] == ["hi back"]
    assert runtime.pending_replies == 0


async def test_claim_reply_ignores_unrelated_messages(bus) -> None:
    runtime = BusRuntime(bus)

    unsolicited = OutboundMessage(channel="heychat", chat_id="100:100", content="x")
    other_account = OutboundMessage(channel="heychat", chat_id="1:1", content="x", account_id="b", reply_to="m1")

    assert not runtime.claim_reply(unsolicited)
    assert not runtime.claim_reply(other_account)


async def test_dispatch_reply_times_out(bus) -> None:
    runtime = BusRuntime(bus, reply_timeout=0.05)

    async def deliver(payload: ReplyPayload) -> None:
        raise AssertionError("should not deliver")

    handle = runtime.create_reply_dispatcher(deliver)

    with pytest.raises(asyncio.TimeoutError):
        await runtime.dispatch_reply(_context(), handle.dispatcher)

    assert runtime.pending_replies == 0


async def test_duplicate_pending_dispatch_rejected(bus) -> None:
    runtime = BusRuntime(bus, reply_timeout=1)

    async def deliver(payload: ReplyPayload) -> None:
        pass

    first = asyncio.create_task(runtime.dispatch_reply(_context(), runtime.create_reply_dispatcher(deliver).dispatcher))
    await asyncio.wait_for(bus.consume_inbound(), timeout=1)

    with pytest.raises(RuntimeError):
        await runtime.dispatch_reply(_context(), runtime.create_reply_dispatcher(deliver).dispatcher)

    first.cancel()
    await asyncio.gather(first, return_exceptions=True)
    assert runtime.pending_replies == 0


def test_system_event_sessions_are_bounded() -> None:
    queue = SystemEventQueue(max_sessions=2)

    queue.enqueue("a", "s1", "k1")
    queue.enqueue("b", "s2", "k2")
    queue.enqueue("c", "s1", "k3")
    queue.enqueue("d", "s3", "k4")

    assert queue.session_count == 2
    assert queue.peek("s2") == []
    assert [e.text for e in queue.peek("s1")] == ["a", "c"]
    assert [e.text for e in queue.peek("s3")] == ["d"]
