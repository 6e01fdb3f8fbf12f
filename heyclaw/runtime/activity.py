"""
Activity telemetry and the system (audit) event queue.
"""

from __future__ import annotations

from collections import OrderedDict, defaultdict, deque
from dataclasses import dataclass
from typing import DefaultDict, Deque, Dict, Optional

from heyclaw.utils.helpers import now_ms


@dataclass(slots=True)
class SystemEvent:
    text: str
    session_key: str
    context_key: str
    timestamp: int


class ActivityTracker:
    """Per (channel, account, direction) counters and last-seen timestamps."""

    def __init__(self) -> None:
        self._counts: DefaultDict[tuple[str, str, str], int] = defaultdict(int)
        self._last: Dict[tuple[str, str, str], int] = {}

    def record(self, channel: str, account_id: str, direction: str) -> None:
        key = (channel, account_id, direction)
        self._counts[key] += 1
        self._last[key] = now_ms()

    def count(self, channel: str, account_id: str, direction: str) -> int:
        return self._counts.get((channel, account_id, direction), 0)

    def last_at(self, channel: str, account_id: str, direction: str) -> Optional[int]:
        return self._last.get((channel, account_id, direction))


class SystemEventQueue:
    """
    Session-scoped audit events, deduplicated by context key.

    Remembers the last ``max_keys`` context keys; older keys may repeat.
    Keeps events for the ``max_sessions`` most recently active sessions.
    """

    def __init__(self, max_keys: int = 1000, max_events: int = 200, max_sessions: int = 1000):
        self.max_keys = max_keys
        self.max_events = max_events
        self.max_sessions = max_sessions
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._events: OrderedDict[str, Deque[SystemEvent]] = OrderedDict()

    def enqueue(self, text: str, session_key: str, context_key: str) -> bool:
        if context_key in self._seen:
            return False

        self._seen[context_key] = None
        if len(self._seen) > self.max_keys:
            self._seen.popitem(last=False)

        events = self._events.get(session_key)
        if events is None:
            events = self._events[session_key] = deque(maxlen=self.max_events)
        else:
            self._events.move_to_end(session_key)
        if len(self._events) > self.max_sessions:
            self._events.popitem(last=False)

        events.append(
            SystemEvent(text=text, session_key=session_key, context_key=context_key, timestamp=now_ms())
        )
        return True

    @property
    def session_count(self) -> int:
        return len(self._events)

    def peek(self, session_key: str) -> list[SystemEvent]:
        return list(self._events.get(session_key, ()))

    def drain(self, session_key: str) -> list[SystemEvent]:
        events = self._events.pop(session_key, None)
        return list(events) if events else []
