"""
Chat topology: direct vs group, and the room <-> channel id cross-reference.

Heychat addresses every conversation with a (room_id, channel_id) pair.
Direct messages carry the same id in both slots; group messages differ.
"""

from __future__ import annotations

from typing import Optional

from heyclaw.channels.heychat.types import ChatType


def is_group(room_id: Optional[str], channel_id: Optional[str]) -> bool:
    """Group iff both ids are present and differ."""
    return bool(room_id) and bool(channel_id) and room_id != channel_id


def chat_type_of(room_id: Optional[str], channel_id: Optional[str]) -> ChatType:
    return ChatType.GROUP if is_group(room_id, channel_id) else ChatType.DIRECT


class TopologyCache:
    """
    Best-effort room <-> channel mapping, filled from observed traffic.

    Only consulted when an outbound call knows one of the two ids; a miss
    degrades to using the known id for both slots.
    """

    def __init__(self) -> None:
        self._room_to_channel: dict[str, str] = {}
        self._channel_to_room: dict[str, str] = {}

    def observe(self, room_id: Optional[str], channel_id: Optional[str]) -> ChatType:
        """Record a (room, channel) sighting and return its chat type."""
        chat_type = chat_type_of(room_id, channel_id)
        if chat_type is ChatType.GROUP:
            # last observed mapping wins
            self._room_to_channel[room_id] = channel_id
            self._channel_to_room[channel_id] = room_id
        return chat_type

    def channel_for(self, room_id: str) -> Optional[str]:
        return self._room_to_channel.get(room_id)

    def room_for(self, channel_id: str) -> Optional[str]:
        return self._channel_to_room.get(channel_id)

    def resolve_address(
        self,
        room_id: Optional[str] = None,
        channel_id: Optional[str] = None,
    ) -> tuple[str, str]:
        """
        Fill in whichever id is missing.

        Raises:
            ValueError: neither id supplied
        """
        if room_id and channel_id:
            return room_id, channel_id
        if room_id:
            return room_id, self.channel_for(room_id) or room_id
        if channel_id:
            return self.room_for(channel_id) or channel_id, channel_id
        raise ValueError("room_id or channel_id is required")

    def resolve_target(self, target: str) -> tuple[str, str]:
        """
        Resolve an outbound target: ``room_id:channel_id`` or a bare id.

        A bare id is looked up as a room first, then as a channel.
        """
        target = (target or "").strip()
        if ":" in target:
            room_id, _, channel_id = target.partition(":")
            return self.resolve_address(room_id.strip() or None, channel_id.strip() or None)

        if target in self._room_to_channel:
            return self.resolve_address(room_id=target)
        return self.resolve_address(channel_id=target)

    def __len__(self) -> int:
        return len(self._room_to_channel)
