"""
Configuration schema definitions.

Design principles:
    - Explicit structure
    - Predictable defaults
    - Environment override support
    - Strong typing + validation
"""

from __future__ import annotations

from typing import Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DmPolicy = Literal["pairing", "open", "allowlist"]
GroupPolicy = Literal["open", "allowlist", "disabled"]

AllowEntry = Union[str, int]


# =============================
# Heychat Configuration
# =============================

class HeychatGroupConfig(BaseModel):
    """Per-group overrides (keyed by channel id)."""
    model_config = ConfigDict(extra="forbid")

    require_mention: Optional[bool] = None
    allow_from: list[AllowEntry] = Field(default_factory=list)


class HeychatAccountConfig(BaseModel):
    """
    Per-account configuration.

    Every field is optional: missing fields inherit from the top-level
    ``channels.heychat`` section.
    """
    model_config = ConfigDict(extra="forbid")

    enabled: Optional[bool] = None
    name: Optional[str] = None
    token: Optional[str] = None
    token_file: Optional[str] = None
    dm_policy: Optional[DmPolicy] = None
    group_policy: Optional[GroupPolicy] = None
    allow_from: Optional[list[AllowEntry]] = None
    groups: Optional[Dict[str, HeychatGroupConfig]] = None


class HeychatConfig(BaseModel):
    """Heychat channel configuration (top-level defaults + accounts)."""
    model_config = ConfigDict(extra="forbid")

    enabled: Optional[bool] = None
    name: Optional[str] = None
    token: Optional[str] = None
    token_file: Optional[str] = None
    dm_policy: DmPolicy = "pairing"
    group_policy: GroupPolicy = "open"
    allow_from: Optional[list[AllowEntry]] = None
    groups: Optional[Dict[str, HeychatGroupConfig]] = None

    accounts: Dict[str, HeychatAccountConfig] = Field(default_factory=dict)

    # Connection tuning
    ws_url: str = "wss://chat.xiaoheihe.cn/chatroom/ws/connect"
    http_host: str = "https://chat.xiaoheihe.cn"
    heartbeat_interval_s: float = 30.0
    reconnect_delay_s: float = 5.0
    dedup_capacity: int = 1000
    reply_timeout_s: float = 120.0
    processing_reaction: str = ""
    verify_ssl: bool = True


class ChannelsConfig(BaseModel):
    """Unified channel configuration root."""
    heychat: HeychatConfig = Field(default_factory=HeychatConfig)


# =============================
# Root Config
# =============================

class Config(BaseSettings):
    """
    Root configuration schema.

    Priority:
        env > config.json > defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="HEYCLAW_",
        env_nested_delimiter="__",
    )

    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)

    @property
    def heychat(self) -> HeychatConfig:
        return self.channels.heychat
