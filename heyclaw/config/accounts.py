"""
Heychat account resolution.

A config either defines a single implicit account through the top-level
``channels.heychat`` fields, or several named accounts under ``accounts``.
Named accounts inherit every field they leave unset from the top level.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from loguru import logger

from heyclaw.config.schema import (
    AllowEntry,
    Config,
    DmPolicy,
    GroupPolicy,
    HeychatConfig,
    HeychatGroupConfig,
)


DEFAULT_ACCOUNT_ID = "default"
TOKEN_ENV_VAR = "HEYCHAT_APP_TOKEN"

TokenSource = Literal["config", "file", "env", "none"]

_INVALID_ACCOUNT_CHARS = re.compile(r"[^a-z0-9_-]+")

# Fields an account may override
_MERGE_FIELDS = (
    "enabled",
    "name",
    "token",
    "token_file",
    "dm_policy",
    "group_policy",
    "allow_from",
    "groups",
)


# =============================
# Types
# =============================

@dataclass(slots=True)
class AccountPolicy:
    """Merged policy view of one account."""
    dm_policy: DmPolicy = "pairing"
    group_policy: GroupPolicy = "open"
    allow_from: list[AllowEntry] = field(default_factory=list)
    groups: Dict[str, HeychatGroupConfig] = field(default_factory=dict)


@dataclass(slots=True)
class ResolvedAccount:
    """A fully resolved account: identity, credential and merged policy."""
    account_id: str
    enabled: bool
    configured: bool
    name: str
    token: str
    token_source: TokenSource
    config: AccountPolicy


# =============================
# Enumeration
# =============================

def normalize_account_id(account_id: Optional[str]) -> str:
    """Lower-case, trim and sanitize an account id; empty → ``default``."""
    cleaned = _INVALID_ACCOUNT_CHARS.sub("-", (account_id or "").strip().lower())
    cleaned = cleaned.strip("-")
    return cleaned or DEFAULT_ACCOUNT_ID


def list_account_ids(config: Config) -> list[str]:
    """
    List all Heychat account ids.

    Without an ``accounts`` map the single implicit ``default`` account
    is returned.
    """
    ids = {normalize_account_id(k) for k in config.heychat.accounts if k.strip()}
    if not ids:
        return [DEFAULT_ACCOUNT_ID]
    return sorted(ids)


def resolve_default_account_id(config: Config) -> str:
    ids = list_account_ids(config)
    if DEFAULT_ACCOUNT_ID in ids:
        return DEFAULT_ACCOUNT_ID
    return ids[0] if ids else DEFAULT_ACCOUNT_ID


# =============================
# Merge & token
# =============================

def _lookup_account(heychat: HeychatConfig, account_id: str):
    account = heychat.accounts.get(account_id)
    if account is not None:
        return account
    # Map keys are kept verbatim on load; match them case-insensitively.
    for key, value in heychat.accounts.items():
        if normalize_account_id(key) == account_id:
            return value
    return None


def merge_account_config(config: Config, account_id: str) -> Dict[str, Any]:
    """Merge top-level fields with account overrides (account wins)."""
    heychat = config.heychat
    merged = {name: getattr(heychat, name) for name in _MERGE_FIELDS}

    account = _lookup_account(heychat, account_id)
    if account is not None:
        for name in _MERGE_FIELDS:
            value = getattr(account, name)
            if value is not None:
                merged[name] = value

    return merged


def resolve_token(merged: Dict[str, Any]) -> tuple[str, TokenSource]:
    """
    Resolve the Heychat token.

    Priority: env > config > file
    """
    env_token = os.environ.get(TOKEN_ENV_VAR, "").strip()
    if env_token:
        return env_token, "env"

    config_token = (merged.get("token") or "").strip()
    if config_token:
        return config_token, "config"

    token_file = (merged.get("token_file") or "").strip()
    if token_file:
        path = Path(token_file).expanduser()
        try:
            return path.read_text(encoding="utf-8").strip(), "file"
        except OSError as e:
            logger.warning("Token file unreadable | path={} err={}", path, e)
            return "", "file"

    return "", "none"


def resolve_account(config: Config, account_id: Optional[str] = None) -> ResolvedAccount:
    """Resolve a complete Heychat account with merged config."""
    account_id = normalize_account_id(account_id)
    merged = merge_account_config(config, account_id)

    base_enabled = config.heychat.enabled is not False
    account_enabled = merged.get("enabled") is not False

    token, source = resolve_token(merged)
    name = (merged.get("name") or "").strip() or f"heychat:{account_id}"

    policy = AccountPolicy(
        dm_policy=merged.get("dm_policy") or "pairing",
        group_policy=merged.get("group_policy") or "open",
        allow_from=list(merged.get("allow_from") or []),
        groups=dict(merged.get("groups") or {}),
    )

    return ResolvedAccount(
        account_id=account_id,
        enabled=base_enabled and account_enabled,
        configured=bool(token),
        name=name,
        token=token,
        token_source=source,
        config=policy,
    )


def list_enabled_accounts(config: Config) -> list[ResolvedAccount]:
    """List all enabled and configured accounts."""
    accounts = (resolve_account(config, account_id) for account_id in list_account_ids(config))
    return [a for a in accounts if a.enabled and a.configured]


def describe_account(account: ResolvedAccount) -> Dict[str, Any]:
    return {
        "account_id": account.account_id,
        "enabled": account.enabled,
        "configured": account.configured,
        "name": account.name,
        "token_source": account.token_source,
    }
