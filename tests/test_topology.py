import pytest

from heyclaw.channels.heychat.topology import TopologyCache, chat_type_of, is_group
from heyclaw.channels.heychat.types import ChatType


@pytest.mark.parametrize(
    "room_id, channel_id, expected",
    [
        ("100", "200", True),
        ("100", "100", False),
        ("100", None, False),
        ("100", "", False),
        (None, "200", False),
    ],
)
def test_is_group(room_id, channel_id, expected) -> None:
    assert is_group(room_id, channel_id) is expected


def test_observe_records_both_directions_for_groups() -> None:
    cache = TopologyCache()

    assert cache.observe("100", "200") is ChatType.GROUP
    assert cache.channel_for("100") == "200"
    assert cache.room_for("200") == "100"


def test_observe_ignores_direct_messages() -> None:
    cache = TopologyCache()

    assert cache.observe("100", "100") is ChatType.DIRECT
    assert len(cache) == 0


def test_last_observed_mapping_wins() -> None:
    cache = TopologyCache()
    cache.observe("100", "200")
    cache.observe("100", "300")

    assert cache.channel_for("100") == "300"
    assert cache.room_for("300") == "100"


def test_resolve_address_fills_missing_side() -> None:
    cache = TopologyCache()
    cache.observe("100", "200")

    assert cache.resolve_address(room_id="100") == ("100", "200")
    assert cache.resolve_address(channel_id="200") == ("100", "200")


def test_resolve_address_miss_uses_supplied_id_twice() -> None:
    cache = TopologyCache()

    assert cache.resolve_address(room_id="555") == ("555", "555")
    assert cache.resolve_address(channel_id="777") == ("777", "777")


def test_resolve_address_requires_an_id() -> None:
    with pytest.raises(ValueError):
        TopologyCache().resolve_address()


def test_resolve_target_forms() -> None:
    cache = TopologyCache()
    cache.observe("100", "200")

    assert cache.resolve_target("1:2") == ("1", "2")
    assert cache.resolve_target("100") == ("100", "200")
    assert cache.resolve_target("200") == ("100", "200")
    assert cache.resolve_target("42") == ("42", "42")
    assert cache.resolve_target("100:") == ("100", "200")


def test_chat_type_of_direct_when_missing() -> None:
    assert chat_type_of("", "") is ChatType.DIRECT
