"""museum-poster: post Winamp Skin Museum skins to Bluesky.

Picks a skin that has not been posted yet, upscales its screenshot,
posts it with a link back to the museum, records the post, and relays
the link to Discord.
"""

__version__ = "0.1.0"

from museum_poster.store import ContentStore, ContentRecord, Platform, PublicationStatus
from museum_poster.publisher import Publisher, PublishResult, PublishStage, post_and_notify
from museum_poster.config import load_config, PosterConfig
from museum_poster.factory import build_publisher, build_notifier

__all__ = [
    "ContentStore",
    "ContentRecord",
    "Platform",
    "PublicationStatus",
    "Publisher",
    "PublishResult",
    "PublishStage",
    "post_and_notify",
    "load_config",
    "PosterConfig",
    "build_publisher",
    "build_notifier",
]
