"""Error taxonomy for the publish pipeline.

Stage errors are wrapped by the publisher into PublishFailed, which carries
the stage that failed. An empty selection is not an error and has no class
here; it is reported as a result.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from museum_poster.publisher import PublishStage


class PosterError(Exception):
    """Base class for all museum-poster errors."""


class SelectionError(PosterError):
    """Raised when an explicitly requested record cannot be published."""


class ScreenshotError(PosterError):
    """Raised when a record's screenshot bytes cannot be fetched."""


class MediaDecodeError(PosterError):
    """Raised when screenshot bytes are not a decodable raster image."""


class AuthenticationError(PosterError):
    """Raised when the platform rejects the login."""


class UploadError(PosterError):
    """Raised when the platform reports a failed blob upload."""

    def __init__(self, kind: str, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        msg = f"Blob upload failed ({kind})"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class SubmissionError(PosterError):
    """Raised when the platform rejects the composed post."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class RecordingError(PosterError):
    """Raised when the store cannot persist a publication."""


class PublishCancelled(PosterError):
    """Raised when a publish cycle is cancelled between stages."""


class NotificationError(PosterError):
    """Raised when a chat notification cannot be delivered."""


class PublishFailed(PosterError):
    """A publish cycle stopped at `stage` because of `cause`."""

    def __init__(self, stage: PublishStage, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage.value} failed: {cause}")

    @property
    def post_exists(self) -> bool:
        """True when the post is public but the store does not know about it."""
        from museum_poster.publisher import PublishStage
        return self.stage == PublishStage.RECORDING

    @property
    def retryable(self) -> bool:
        """Whether re-running the whole cycle cannot produce a duplicate post."""
        from museum_poster.publisher import PublishStage
        if self.stage == PublishStage.UPLOADING:
            return not isinstance(self.cause, AuthenticationError)
        if self.stage == PublishStage.SUBMITTING:
            return isinstance(self.cause, SubmissionError)
        return False
