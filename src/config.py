import os
from dataclasses import dataclass
from typing import Optional

import yaml

CONFIG_ENV_KEY = "CONFIG_PATH"
DEFAULT_CONFIG_PATH = "config.yml"
DEFAULT_PREFIX = "?"


@dataclass
class BotConfig:
    token: str
    guild_id: int
    log_level: str
    database_path: str
    command_prefix: str = DEFAULT_PREFIX
    legacy_config_path: Optional[str] = None
    legacy_invite_data_path: Optional[str] = None


def load_config(path: str | None = None) -> BotConfig:
    config_path = path or os.environ.get(CONFIG_ENV_KEY, DEFAULT_CONFIG_PATH)
    with open(config_path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    token = str(data.get("token") or "").strip()
    if not token:
        raise ValueError("Config missing 'token'")

    raw_guild_id = data.get("guild_id")
    try:
        guild_id = int(raw_guild_id)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid or missing 'guild_id': {raw_guild_id!r}") from None

    log_level = str(data.get("log_level") or "INFO").upper()
    valid_levels = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
    if log_level not in valid_levels:
        raise ValueError(
            f"Invalid log_level '{log_level}'. Must be one of {sorted(valid_levels)}"
        )

    database_path = str(data.get("database_path") or "invites.db")

    command_prefix = str(data.get("command_prefix") or DEFAULT_PREFIX).strip()
    if not command_prefix:
        raise ValueError("Config 'command_prefix' must not be blank")

    return BotConfig(
        token=token,
        guild_id=guild_id,
        log_level=log_level,
        database_path=database_path,
        command_prefix=command_prefix,
        legacy_config_path=data.get("legacy_config_path") or None,
        legacy_invite_data_path=data.get("legacy_invite_data_path") or None,
    )
