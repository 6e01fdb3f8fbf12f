"""Group admission policy for Heychat."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Literal, Mapping, Optional, Sequence

from heyclaw.config.accounts import AccountPolicy, ResolvedAccount
from heyclaw.config.schema import AllowEntry, GroupPolicy, HeychatGroupConfig


WILDCARD = "*"

_PROVIDER_PREFIX = re.compile(r"^(heychat|hc):", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class AllowlistMatch:
    allowed: bool
    match_key: Optional[str] = None
    match_source: Optional[Literal["wildcard", "id", "name"]] = None


@dataclass(frozen=True, slots=True)
class PolicyDecision:
    allowed: bool
    reason: str = ""


def normalize_allow_entry(raw: object) -> str:
    """Strip an optional ``heychat:``/``hc:`` prefix and case-fold."""
    trimmed = str(raw if raw is not None else "").strip()
    if not trimmed:
        return ""
    if trimmed == WILDCARD:
        return WILDCARD
    return _PROVIDER_PREFIX.sub("", trimmed).strip().lower()


def format_allow_from(entries: Iterable[AllowEntry]) -> list[str]:
    """Normalized, non-empty allow-list entries."""
    return [e for e in (normalize_allow_entry(x) for x in entries) if e]


def resolve_allowlist_match(
    allow_from: Sequence[AllowEntry],
    sender_id: str,
    sender_name: Optional[str] = None,
) -> AllowlistMatch:
    allowed = format_allow_from(allow_from)
    if not allowed:
        return AllowlistMatch(allowed=False)
    if WILDCARD in allowed:
        return AllowlistMatch(allowed=True, match_key=WILDCARD, match_source="wildcard")

    candidate = normalize_allow_entry(sender_id)
    if candidate and candidate in allowed:
        return AllowlistMatch(allowed=True, match_key=candidate, match_source="id")

    name = normalize_allow_entry(sender_name)
    if name and name in allowed:
        return AllowlistMatch(allowed=True, match_key=name, match_source="name")

    return AllowlistMatch(allowed=False)


def is_group_allowed(
    group_policy: GroupPolicy,
    allow_from: Sequence[AllowEntry],
    sender_id: str,
    sender_name: Optional[str] = None,
) -> bool:
    if group_policy == "disabled":
        return False
    if group_policy == "open":
        return True
    return resolve_allowlist_match(allow_from, sender_id, sender_name).allowed


def resolve_group_config(
    groups: Mapping[str, HeychatGroupConfig],
    group_id: Optional[str],
) -> Optional[HeychatGroupConfig]:
    """Exact key first, then a case-insensitive match."""
    group_id = (group_id or "").strip()
    if not group_id:
        return None

    direct = groups.get(group_id)
    if direct is not None:
        return direct

    lowered = group_id.lower()
    for key, value in groups.items():
        if key.lower() == lowered:
            return value
    return None


class GroupPolicyGate:
    """
    Decide whether a group message may reach the agent.

    Two independent checks:
        1. the group itself, against ``group_policy`` + ``allow_from``
        2. the sender, against the group's own ``allow_from`` when non-empty
    """

    def __init__(self, policy: AccountPolicy):
        self.policy = policy

    def evaluate(
        self,
        group_id: str,
        sender_id: str,
        sender_name: Optional[str] = None,
    ) -> PolicyDecision:
        if not is_group_allowed(self.policy.group_policy, self.policy.allow_from, group_id):
            return PolicyDecision(
                allowed=False,
                reason=f"group {group_id} not allowed (groupPolicy={self.policy.group_policy})",
            )

        group_config = resolve_group_config(self.policy.groups, group_id)
        sender_allow_from = group_config.allow_from if group_config else []
        if sender_allow_from:
            match = resolve_allowlist_match(sender_allow_from, sender_id, sender_name)
            if not match.allowed:
                return PolicyDecision(
                    allowed=False,
                    reason=f"sender {sender_id} not in group {group_id} sender allowlist",
                )

        return PolicyDecision(allowed=True)


def collect_security_warnings(account: ResolvedAccount) -> list[str]:
    if account.config.group_policy != "open":
        return []
    return [
        f'- Heychat[{account.account_id}] groups: groupPolicy="open" allows any member '
        'to trigger the bot. Set groupPolicy="allowlist" to restrict senders.'
    ]
