"""Publish cycle orchestration.

A cycle moves through a fixed sequence of stages:

  SELECTING -> TRANSFORMING -> UPLOADING -> COMPOSING -> SUBMITTING -> RECORDING -> DONE

Each stage starts only after the previous one succeeded. A failing stage
raises PublishFailed carrying the stage name; nothing that already happened
is undone, so a blob uploaded before a failed submission stays orphaned on
the platform.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from museum_poster.composer import (
    PostDocument,
    build_image_embed,
    build_post,
    compose_text,
    link_facet,
)
from museum_poster.errors import (
    NotificationError,
    PublishCancelled,
    PublishFailed,
    SelectionError,
    SubmissionError,
)
from museum_poster.media import MediaAsset, upscale
from museum_poster.retry import RetryConfig, RetryError, retry
from museum_poster.store import ContentRecord, ContentStore, Platform, PublicationStatus

if TYPE_CHECKING:
    from museum_poster.bluesky import BlueskyClient, CreatedPost
    from museum_poster.discord import Notifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SOURCE_LABEL = "the Winamp Skin Museum"


class PublishStage(Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    TRANSFORMING = "transforming"
    UPLOADING = "uploading"
    COMPOSING = "composing"
    SUBMITTING = "submitting"
    RECORDING = "recording"
    DONE = "done"
    FAILED = "failed"


class PublishStatus(Enum):
    PUBLISHED = "published"
    NOTHING_TO_PUBLISH = "nothing_to_publish"
    ALREADY_PUBLISHED = "already_published"


@dataclass
class PublishResult:
    status: PublishStatus
    key: str | None = None
    post_id: str = ""
    url: str = ""


@dataclass
class PipelineReport:
    result: PublishResult
    notification_error: NotificationError | None = None


class Publisher:
    """Runs one publish cycle per call to run().

    The platform session is created fresh on every run and never reused.
    """

    def __init__(
        self,
        store: ContentStore,
        client: BlueskyClient,
        platform: Platform = Platform.BLUESKY,
        source_label: str = DEFAULT_SOURCE_LABEL,
        scale: int = 2,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self.platform = platform
        self.source_label = source_label
        self.scale = scale
        self._clock = clock
        self.stage = PublishStage.IDLE
        self.history: list[PublishStage] = []

    def _step(
        self,
        stage: PublishStage,
        cancel: threading.Event | None,
        func: Callable[..., T],
        *args: Any,
    ) -> T:
        self.stage = stage
        self.history.append(stage)
        logger.info("Stage %s", stage.value)
        try:
            if cancel is not None and cancel.is_set():
                raise PublishCancelled(f"Cancelled before {stage.value}")
            return func(*args)
        except Exception as exc:
            self.stage = PublishStage.FAILED
            logger.error("Publish failed while %s: %s", stage.value, exc)
            raise PublishFailed(stage, exc) from exc

    def _finish(self, result: PublishResult) -> PublishResult:
        self.stage = PublishStage.DONE
        self.history.append(PublishStage.DONE)
        return result

    def run(
        self,
        key: str | None = None,
        cancel: threading.Event | None = None,
    ) -> PublishResult:
        """Publish `key`, or the next unpublished record when `key` is None.

        Raises:
            PublishFailed: If any stage fails. `stage` names the stage and
                `cause` holds the underlying error.
        """
        self.stage = PublishStage.IDLE
        self.history = []

        selected = self._step(PublishStage.SELECTING, cancel, self._select, key)
        if isinstance(selected, PublishResult):
            return self._finish(selected)
        record = selected

        asset = self._step(PublishStage.TRANSFORMING, cancel, self._transform, record)
        blob = self._step(PublishStage.UPLOADING, cancel, self._upload, asset)
        document = self._step(
            PublishStage.COMPOSING, cancel, self._compose, record, asset, blob,
        )
        created = self._step(PublishStage.SUBMITTING, cancel, self._submit, record, document)

        url = created.web_url
        # A submitted post is always recorded, cancelled or not.
        self._step(
            PublishStage.RECORDING, None,
            self._store.mark_published, self.platform, record.md5, created.cid, url,
        )
        logger.info("Posted %s to %s: %s", record.md5, self.platform.value, url)
        return self._finish(PublishResult(
            status=PublishStatus.PUBLISHED,
            key=record.md5,
            post_id=created.cid,
            url=url,
        ))

    def _select(self, key: str | None) -> ContentRecord | PublishResult:
        if key is None:
            key = self._store.pick_unpublished(self.platform)
            if key is None:
                logger.info("No skins to post to %s", self.platform.value)
                return PublishResult(status=PublishStatus.NOTHING_TO_PUBLISH)

        record = self._store.get(key)
        if record is None:
            raise SelectionError(f"Unknown skin {key}")

        status = record.status(self.platform)
        if status == PublicationStatus.PUBLISHED:
            pub = record.publication(self.platform)
            logger.info("%s already posted to %s", record.md5, self.platform.value)
            return PublishResult(
                status=PublishStatus.ALREADY_PUBLISHED,
                key=record.md5,
                post_id=pub.post_id,
                url=pub.url,
            )
        if status == PublicationStatus.PENDING:
            raise SelectionError(
                f"{record.md5} has an unrecorded {self.platform.value} post in flight"
            )
        return record

    def _transform(self, record: ContentRecord) -> MediaAsset:
        raw = self._store.get_screenshot(record.md5)
        return upscale(raw, self.scale)

    def _upload(self, asset: MediaAsset) -> dict[str, Any]:
        self._client.login()
        return self._client.upload_blob(asset.data, asset.mime_type)

    def _compose(
        self, record: ContentRecord, asset: MediaAsset, blob: dict[str, Any],
    ) -> PostDocument:
        text = compose_text(record.file_name, self.source_label)
        facet = link_facet(text, record.file_name, record.canonical_url)
        embed = build_image_embed(blob, asset.width, asset.height)
        now = self._clock() if self._clock else None
        return build_post(text, [facet], embed, now=now)

    def _submit(self, record: ContentRecord, document: PostDocument) -> CreatedPost:
        self._store.mark_pending(self.platform, record.md5)
        try:
            return self._client.create_post(document.to_record())
        except SubmissionError:
            # Rejected posts do not exist, so the record may be picked again.
            self._store.release_pending(self.platform, record.md5)
            raise


def _is_retryable(exc: Exception) -> bool:
    return isinstance(exc, PublishFailed) and exc.retryable


def publish_with_retry(
    publisher: Publisher,
    attempts: int = 3,
    key: str | None = None,
    cancel: threading.Event | None = None,
    sleep_func: Callable[[float], None] | None = None,
) -> PublishResult:
    """Run whole publish cycles until one succeeds or a failure is not retryable.

    Raises:
        PublishFailed: The last failure, once attempts run out or as soon as
            a failure could lead to a duplicate post if retried.
    """
    config = RetryConfig(
        max_attempts=attempts,
        base_delay=5.0,
        retryable_exceptions=(PublishFailed,),
        retry_if=_is_retryable,
    )
    try:
        return retry(publisher.run, config, sleep_func, key, cancel)
    except RetryError as exc:
        raise exc.last_error from exc


def post_and_notify(
    publisher: Publisher,
    notifier: Notifier | None,
    key: str | None = None,
    attempts: int = 1,
    cancel: threading.Event | None = None,
) -> PipelineReport:
    """Publish one record and relay the resulting url to the chat channel.

    Notification failures are reported on the returned PipelineReport and
    never affect the publish result.
    """
    if attempts > 1:
        result = publish_with_retry(publisher, attempts, key, cancel)
    else:
        result = publisher.run(key, cancel)

    notification_error = None
    if notifier is not None:
        if result.status == PublishStatus.PUBLISHED:
            logger.info("Going to post to Discord")
            notification_error = notifier.notify_published(result.url)
        elif result.status == PublishStatus.NOTHING_TO_PUBLISH:
            notification_error = notifier.notify_nothing_to_publish()
    return PipelineReport(result=result, notification_error=notification_error)
