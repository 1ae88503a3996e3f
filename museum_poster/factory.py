"""Factory for building the publisher and notifier from PosterConfig.

Shared by the CLI and by schedulers that import the package directly.
"""

from __future__ import annotations

from pathlib import Path

from museum_poster.bluesky import BlueskyClient, BlueskyConfig
from museum_poster.config import PosterConfig
from museum_poster.discord import DiscordChannel, Notifier
from museum_poster.publisher import Publisher
from museum_poster.store import ContentStore


def build_store(cfg: PosterConfig) -> ContentStore:
    path = Path(cfg.store_path) if cfg.store_path else None
    return ContentStore(path, timeout=cfg.timeout)


def build_publisher(
    cfg: PosterConfig,
    store: ContentStore | None = None,
) -> Publisher:
    """Build a Publisher from a PosterConfig.

    Args:
        cfg: Configuration with Bluesky credentials and live_mode.
        store: Optional pre-built store. If None, one is constructed from
            cfg.store_path.

    Returns:
        A Publisher wired to a Bluesky client.

    Raises:
        ValueError: If live mode is on and no Bluesky handle is configured.
    """
    if cfg.live_mode and not cfg.bluesky_handle:
        raise ValueError("Live mode needs a Bluesky handle and app password")

    client = BlueskyClient(
        BlueskyConfig(
            handle=cfg.bluesky_handle or "mock.bsky.social",
            app_password=cfg.bluesky_app_password,
            service_url=cfg.bluesky_service_url,
            timeout=cfg.timeout,
        ),
        live=cfg.live_mode,
    )
    return Publisher(
        store if store is not None else build_store(cfg),
        client,
        source_label=cfg.source_label,
    )


def build_notifier(cfg: PosterConfig) -> Notifier | None:
    """Build a Notifier, or None when no Discord channel is configured."""
    if not cfg.discord_channel_id:
        return None
    channel = DiscordChannel(
        cfg.discord_bot_token,
        cfg.discord_channel_id,
        live=cfg.live_mode,
        timeout=cfg.timeout,
    )
    return Notifier(channel, notify_when_empty=cfg.notify_when_empty)
