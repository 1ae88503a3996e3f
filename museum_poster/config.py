"""Configuration loader for museum-poster.

Loads YAML config files with environment variable overrides.
All env vars use the MUSEUM_POSTER_ prefix.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from museum_poster.publisher import DEFAULT_SOURCE_LABEL

ENV_PREFIX = "MUSEUM_POSTER_"


@dataclass
class PosterConfig:
    """Unified configuration for the publish pipeline."""
    bluesky_handle: str = ""
    bluesky_app_password: str = ""
    bluesky_service_url: str = "https://bsky.social"
    discord_bot_token: str = ""
    discord_channel_id: str = ""
    notify_when_empty: bool = False
    store_path: str = "skins.json"
    source_label: str = DEFAULT_SOURCE_LABEL
    timeout: float = 30.0
    live_mode: bool = False


def load_config(path: Path | None = None) -> PosterConfig:
    """Load config from YAML file with env var overrides.

    Env vars override YAML values. Mapping:
      MUSEUM_POSTER_BLUESKY_HANDLE → bluesky.handle
      MUSEUM_POSTER_BLUESKY_APP_PASSWORD → bluesky.app_password
      MUSEUM_POSTER_BLUESKY_SERVICE_URL → bluesky.service_url
      MUSEUM_POSTER_DISCORD_BOT_TOKEN → discord.bot_token
      MUSEUM_POSTER_DISCORD_CHANNEL_ID → discord.channel_id
      MUSEUM_POSTER_NOTIFY_WHEN_EMPTY → discord.notify_when_empty
      MUSEUM_POSTER_STORE_PATH → store_path
      MUSEUM_POSTER_TIMEOUT → timeout
      MUSEUM_POSTER_LIVE_MODE → live_mode
    """
    raw: dict[str, Any] = {}
    if path and path.exists():
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
        raw = loaded if isinstance(loaded, dict) else {}

    bluesky = raw.get("bluesky") or {}
    discord = raw.get("discord") or {}

    return PosterConfig(
        bluesky_handle=_env_or("BLUESKY_HANDLE", bluesky.get("handle", "")),
        bluesky_app_password=_env_or(
            "BLUESKY_APP_PASSWORD",
            bluesky.get("app_password", ""),
        ),
        bluesky_service_url=_env_or(
            "BLUESKY_SERVICE_URL",
            bluesky.get("service_url", "https://bsky.social"),
        ),
        discord_bot_token=_env_or("DISCORD_BOT_TOKEN", discord.get("bot_token", "")),
        # YAML reads long numeric ids as ints
        discord_channel_id=_env_or(
            "DISCORD_CHANNEL_ID",
            str(discord.get("channel_id", "") or ""),
        ),
        notify_when_empty=_env_bool(
            "NOTIFY_WHEN_EMPTY",
            bool(discord.get("notify_when_empty", False)),
        ),
        store_path=_env_or("STORE_PATH", raw.get("store_path", "skins.json")),
        source_label=raw.get("source_label", DEFAULT_SOURCE_LABEL),
        timeout=float(_env_or("TIMEOUT", str(raw.get("timeout", 30.0)))),
        live_mode=_env_bool("LIVE_MODE", bool(raw.get("live_mode", False))),
    )


def _env_or(suffix: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}{suffix}", default)


def _env_bool(suffix: str, default: bool) -> bool:
    val = os.environ.get(f"{ENV_PREFIX}{suffix}")
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")
