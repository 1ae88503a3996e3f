"""Builders for Bluesky post records.

Facet offsets are byte offsets into the UTF-8 encoding of the post text,
not character offsets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class Facet:
    byte_start: int
    byte_end: int
    uri: str

    def to_record(self) -> dict[str, Any]:
        return {
            "$type": "app.bsky.richtext.facet",
            "index": {"byteStart": self.byte_start, "byteEnd": self.byte_end},
            "features": [
                {"$type": "app.bsky.richtext.facet#link", "uri": self.uri},
            ],
        }


@dataclass
class PostDocument:
    text: str
    created_at: str
    embed: dict[str, Any]
    facets: list[Facet] = field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "facets": [f.to_record() for f in self.facets],
            "$type": "app.bsky.feed.post",
            "createdAt": self.created_at,
            "embed": self.embed,
        }


def compose_text(name: str, source_label: str) -> str:
    return f"{name} via {source_label}"


def link_facet(text: str, substring: str, uri: str, start: int = 0) -> Facet:
    """Link facet over the first occurrence of `substring` at or after `start`.

    `start` is a character index; the returned offsets are UTF-8 byte
    offsets.
    """
    if not substring:
        raise ValueError("Cannot link an empty substring")
    index = text.find(substring, start)
    if index < 0:
        raise ValueError(f"{substring!r} does not occur in the post text")
    byte_start = len(text[:index].encode("utf-8"))
    byte_end = byte_start + len(substring.encode("utf-8"))
    return Facet(byte_start=byte_start, byte_end=byte_end, uri=uri)


def build_image_embed(
    blob: dict[str, Any], width: int, height: int, alt: str = "",
) -> dict[str, Any]:
    """Build the embed data for an image."""
    return {
        "$type": "app.bsky.embed.images",
        "images": [
            {
                "image": blob,
                "aspectRatio": {"width": width, "height": height},
                "alt": alt,
            },
        ],
    }


def iso_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z",
    )


def build_post(
    text: str,
    facets: list[Facet],
    image_embed: dict[str, Any],
    now: datetime | None = None,
) -> PostDocument:
    """Build the post document, stamped with the current time."""
    return PostDocument(
        text=text,
        facets=list(facets),
        created_at=iso_timestamp(now),
        embed={
            "$type": "app.bsky.embed.recordWithMedia",
            "media": image_embed,
        },
    )
