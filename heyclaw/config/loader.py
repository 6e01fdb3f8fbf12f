"""
Configuration loading and persistence utilities.

Design goals:
    - Deterministic loading & fallback
    - Strict schema validation
    - Stable persistence format (camelCase on disk, snake_case in memory)
    - Identifier-keyed maps (accounts, groups) survive key conversion verbatim
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from heyclaw.config.schema import Config


# Maps whose keys are identifiers, not field names
_VERBATIM_KEY_MAPS = frozenset({"accounts", "groups"})


# =============================
# Paths
# =============================

def get_config_path() -> Path:
    """
    Return default configuration file path.

    Default:
        ~/.heyclaw/config.json
    """
    return Path.home() / ".heyclaw" / "config.json"


# =============================
# Load & Save
# =============================

def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from disk or fallback to defaults.

    Flow:
        1. Read raw JSON
        2. Migrate legacy schema
        3. camelCase → snake_case
        4. Pydantic validation
    """
    path = config_path or get_config_path()

    if not path.exists():
        logger.warning("Config file not found, using defaults | path={}", path)
        return Config()

    try:
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)

        migrated = _migrate_config(raw)
        normalized = convert_keys(migrated)

        config = Config.model_validate(normalized)

        logger.success("Config loaded successfully | path={}", path)
        return config

    except json.JSONDecodeError as e:
        logger.error("Invalid JSON in config | path={} err={}", path, e)

    except ValidationError as e:
        logger.error("Invalid config schema | path={} err={}", path, e)

    logger.warning("Falling back to default configuration")
    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Persist configuration to disk.

    Behavior:
        - snake_case → camelCase
        - Pretty JSON formatting
        - ``None`` fields are omitted so accounts keep inheriting
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump(exclude_none=True))

    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    logger.success("Config saved | path={}", path)


# =============================
# Migration
# =============================

def _migrate_config(data: dict) -> dict:
    """
    Migrate legacy config schema → latest schema.

    Migration rules:
        - top-level ``heychat`` section → ``channels.heychat``
    """
    if "heychat" in data:
        channels = data.setdefault("channels", {})
        if "heychat" not in channels:
            channels["heychat"] = data.pop("heychat")
            logger.info("Migrated legacy config: heychat → channels.heychat")

    return data


# =============================
# Key Conversion
# =============================

def convert_keys(data: Any) -> Any:
    """
    Convert camelCase → snake_case recursively.
    """
    return _convert(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    """
    Convert snake_case → camelCase recursively.
    """
    return _convert(data, snake_to_camel)


def _convert(data: Any, rename, verbatim: bool = False) -> Any:
    if isinstance(data, dict):
        out = {}
        for k, v in data.items():
            key = k if verbatim else rename(k)
            if verbatim:
                out[key] = _convert(v, rename)
            else:
                out[key] = _convert(v, rename, verbatim=key in _VERBATIM_KEY_MAPS)
        return out
    if isinstance(data, list):
        return [_convert(x, rename) for x in data]
    return data


# =============================
# Naming helpers
# =============================

def camel_to_snake(name: str) -> str:
    """
    Convert camelCase → snake_case.

    Example:
        heartbeatIntervalS → heartbeat_interval_s
    """
    buf = []
    for i, ch in enumerate(name):
        if ch.isupper() and i > 0:
            buf.append("_")
        buf.append(ch.lower())
    return "".join(buf)


def snake_to_camel(name: str) -> str:
    """
    Convert snake_case → camelCase.

    Example:
        heartbeat_interval_s → heartbeatIntervalS
    """
    head, *tail = name.split("_")
    return head + "".join(w.capitalize() for w in tail)
