"""Content store for museum records and their per-platform publication status.

Records are kept in a JSON file that is rewritten atomically on every
change. The store is the only durable state in the pipeline: it decides
which record is published next and remembers where each one was posted.
"""

from __future__ import annotations

import json
import logging
import os
import re
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from museum_poster.errors import RecordingError, ScreenshotError

logger = logging.getLogger(__name__)

MUSEUM_URL = "https://skins.webamp.org"
SCREENSHOT_URL = "https://r2.webampskins.org/screenshots/{md5}.png"

_MD5_RE = re.compile(r"^[0-9a-f]{32}$")


class Platform(Enum):
    BLUESKY = "bluesky"


class PublicationStatus(Enum):
    UNPUBLISHED = "unpublished"
    PENDING = "pending"
    PUBLISHED = "published"


@dataclass
class Publication:
    status: str = PublicationStatus.UNPUBLISHED.value
    post_id: str = ""
    url: str = ""
    published_at: str = ""


def museum_url(md5: str, file_name: str) -> str:
    return f"{MUSEUM_URL}/skin/{md5}/{urllib.parse.quote(file_name)}/"


@dataclass
class ContentRecord:
    """A skin in the museum, identified by the md5 of its file."""
    md5: str
    file_name: str
    canonical_url: str = ""
    screenshot_url: str = ""
    added_at: str = ""
    publications: dict[str, Publication] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.md5 = self.md5.lower()
        if not _MD5_RE.match(self.md5):
            raise ValueError(f"Not an md5 hex digest: {self.md5!r}")
        if not self.canonical_url:
            self.canonical_url = museum_url(self.md5, self.file_name)
        if not self.screenshot_url:
            self.screenshot_url = SCREENSHOT_URL.format(md5=self.md5)
        if not self.added_at:
            self.added_at = datetime.now(timezone.utc).isoformat()
        self.publications = {
            name: pub if isinstance(pub, Publication) else Publication(**pub)
            for name, pub in self.publications.items()
        }

    def publication(self, platform: Platform) -> Publication:
        return self.publications.get(platform.value, Publication())

    def status(self, platform: Platform) -> PublicationStatus:
        return PublicationStatus(self.publication(platform).status)


class ContentStore:
    """JSON file-backed store of content records.

    With no path the store lives in memory only, which is what the tests
    and dry runs use.
    """

    def __init__(self, path: Path | None = None, timeout: float = 30.0) -> None:
        self._path = path
        self._timeout = timeout
        self._records: dict[str, ContentRecord] = {}
        if path and path.exists():
            self._load()

    def _load(self) -> None:
        if not self._path or not self._path.exists():
            return
        data = json.loads(self._path.read_text(encoding="utf-8"))
        for raw in data.get("records", []):
            record = ContentRecord(**raw)
            self._records[record.md5] = record

    def _save(self) -> None:
        if not self._path:
            return
        data = {"records": [asdict(r) for r in self._records.values()]}
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(str(tmp), str(self._path))

    def add(self, record: ContentRecord) -> ContentRecord:
        """Add a record, keeping the existing one if the md5 is already known."""
        existing = self._records.get(record.md5)
        if existing is not None:
            return existing
        self._records[record.md5] = record
        self._save()
        return record

    def get(self, md5: str) -> ContentRecord | None:
        return self._records.get(md5.lower())

    def pick_unpublished(self, platform: Platform) -> str | None:
        """Return the md5 of the oldest record never posted to `platform`."""
        candidates = [
            r for r in self._records.values()
            if r.status(platform) == PublicationStatus.UNPUBLISHED
        ]
        if not candidates:
            return None
        candidates.sort(key=lambda r: (r.added_at, r.md5))
        return candidates[0].md5

    def mark_pending(self, platform: Platform, md5: str) -> None:
        record = self._require(md5)
        if record.status(platform) == PublicationStatus.PUBLISHED:
            return
        self._set_publication(
            record, platform, Publication(status=PublicationStatus.PENDING.value),
        )

    def release_pending(self, platform: Platform, md5: str) -> bool:
        """Drop a pending mark so the record can be picked again."""
        record = self._require(md5)
        if record.status(platform) != PublicationStatus.PENDING:
            return False
        self._set_publication(record, platform, None)
        return True

    def mark_published(
        self, platform: Platform, md5: str, post_id: str, url: str,
    ) -> None:
        """Record where `md5` was posted. A second call is a no-op."""
        record = self._require(md5)
        current = record.publication(platform)
        if current.status == PublicationStatus.PUBLISHED.value:
            if (current.post_id, current.url) != (post_id, url):
                logger.warning(
                    "%s already published to %s as %s, ignoring %s",
                    md5, platform.value, current.url, url,
                )
            return
        self._set_publication(record, platform, Publication(
            status=PublicationStatus.PUBLISHED.value,
            post_id=post_id,
            url=url,
            published_at=datetime.now(timezone.utc).isoformat(),
        ))

    def get_screenshot(self, md5: str) -> bytes:
        """Fetch the raw screenshot bytes for a record."""
        record = self.get(md5)
        if record is None:
            raise ScreenshotError(f"Unknown record {md5}")
        source = record.screenshot_url
        try:
            if not source.startswith(("http://", "https://")):
                return Path(source).read_bytes()
            with urllib.request.urlopen(source, timeout=self._timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as exc:
            raise ScreenshotError(
                f"Screenshot fetch error {exc.code} for {md5}"
            ) from exc
        except OSError as exc:
            raise ScreenshotError(f"Could not read screenshot for {md5}: {exc}") from exc

    def _require(self, md5: str) -> ContentRecord:
        record = self.get(md5)
        if record is None:
            raise RecordingError(f"Unknown record {md5}")
        return record

    def _set_publication(
        self, record: ContentRecord, platform: Platform, pub: Publication | None,
    ) -> None:
        # The in-memory record only changes if the file write succeeds.
        previous = record.publications.pop(platform.value, None)
        if pub is not None:
            record.publications[platform.value] = pub
        try:
            self._save()
        except OSError as exc:
            record.publications.pop(platform.value, None)
            if previous is not None:
                record.publications[platform.value] = previous
            raise RecordingError(f"Could not write {self._path}: {exc}") from exc

    def unpublished(self, platform: Platform) -> list[ContentRecord]:
        return [
            r for r in self._records.values()
            if r.status(platform) != PublicationStatus.PUBLISHED
        ]

    @property
    def total_records(self) -> int:
        return len(self._records)

    @property
    def all_records(self) -> list[ContentRecord]:
        return list(self._records.values())
