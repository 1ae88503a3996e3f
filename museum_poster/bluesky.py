"""Bluesky (AT Protocol) client: session login, blob upload and post creation.

Follows the live/mock pattern of the Discord notifier. In mock mode no
network calls are made; sessions, blobs and posts are synthesized locally.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Union

from museum_poster.errors import AuthenticationError, SubmissionError, UploadError

logger = logging.getLogger(__name__)

POST_COLLECTION = "app.bsky.feed.post"


@dataclass
class BlueskyConfig:
    handle: str
    app_password: str
    service_url: str = "https://bsky.social"
    timeout: float = 30.0


@dataclass
class XrpcResponse:
    """Response envelope of an XRPC call. `success` is false for 4xx/5xx."""
    success: bool
    status: int
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def error_message(self) -> str:
        error = self.data.get("error", "")
        message = self.data.get("message", "")
        return ": ".join(p for p in (error, message) if p) or f"HTTP {self.status}"


@dataclass
class BlobUploaded:
    blob: dict[str, Any]


@dataclass
class BlobUploadFailed:
    kind: str  # "rejected" or "malformed"
    detail: str = ""


UploadResult = Union[BlobUploaded, BlobUploadFailed]


def parse_upload_envelope(envelope: XrpcResponse) -> UploadResult:
    """Turn an uploadBlob envelope into a tagged result."""
    if not envelope.success:
        return BlobUploadFailed("rejected", envelope.error_message)
    blob = envelope.data.get("blob")
    if not isinstance(blob, dict) or "ref" not in blob:
        return BlobUploadFailed("malformed", "response has no blob reference")
    return BlobUploaded(blob)


@dataclass
class CreatedPost:
    cid: str
    uri: str

    @property
    def web_url(self) -> str:
        """bsky.app address of an at://did/app.bsky.feed.post/rkey uri."""
        prefix = "at://"
        if not self.uri.startswith(prefix):
            return self.uri
        parts = self.uri[len(prefix):].split("/")
        if len(parts) != 3 or parts[1] != POST_COLLECTION:
            return self.uri
        did, _, rkey = parts
        return f"https://bsky.app/profile/{did}/post/{rkey}"


class BlueskyClient:
    """Client for uploading blobs and posting to Bluesky via XRPC."""

    def __init__(self, config: BlueskyConfig, live: bool = False) -> None:
        self.config = config
        self._live = live
        self._session: dict[str, Any] | None = None
        self._uploaded: list[dict[str, Any]] = []
        self._posted: list[dict[str, Any]] = []

    def _xrpc(
        self,
        method: str,
        data: bytes,
        content_type: str = "application/json",
        auth: bool = True,
    ) -> XrpcResponse:
        url = f"{self.config.service_url}/xrpc/{method}"
        headers = {"Content-Type": content_type}
        if auth and self._session:
            headers["Authorization"] = f"Bearer {self._session['accessJwt']}"
        req = urllib.request.Request(url, data=data, headers=headers, method="POST")
        try:
            with urllib.request.urlopen(req, timeout=self.config.timeout) as resp:
                body = resp.read().decode("utf-8")
                return XrpcResponse(True, resp.status, json.loads(body) if body else {})
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            try:
                payload = json.loads(body)
            except json.JSONDecodeError:
                payload = {"message": body}
            return XrpcResponse(False, exc.code, payload if isinstance(payload, dict) else {})
        except urllib.error.URLError as exc:
            raise RuntimeError(f"Bluesky connection error: {exc.reason}") from exc
        except (OSError, ValueError) as exc:
            # Read timeouts, resets and non-JSON replies: outcome unknown.
            raise RuntimeError(f"Bluesky transport error: {exc}") from exc

    def _json(self, method: str, payload: dict[str, Any], auth: bool = True) -> XrpcResponse:
        return self._xrpc(method, json.dumps(payload).encode("utf-8"), auth=auth)

    def login(self) -> dict[str, Any]:
        """Create a fresh session, replacing any previous one."""
        self._session = None
        if not self._live:
            self._session = {
                "did": "did:plc:mock",
                "handle": self.config.handle,
                "accessJwt": "mock-jwt",
            }
            return self._session

        resp = self._json(
            "com.atproto.server.createSession",
            {"identifier": self.config.handle, "password": self.config.app_password},
            auth=False,
        )
        if not resp.success:
            raise AuthenticationError(f"Bluesky login rejected: {resp.error_message}")
        if "accessJwt" not in resp.data or "did" not in resp.data:
            raise AuthenticationError("Bluesky login response has no session")
        self._session = resp.data
        logger.info("Logged in to %s as %s", self.config.service_url, self.config.handle)
        return self._session

    def _require_session(self) -> dict[str, Any]:
        if not self._session:
            raise AuthenticationError("No Bluesky session, call login() first")
        return self._session

    def upload_blob(self, data: bytes, mime_type: str = "image/png") -> dict[str, Any]:
        """Upload raw bytes and return the platform's blob reference."""
        self._require_session()
        if not self._live:
            blob = {
                "$type": "blob",
                "ref": {"$link": f"mock-blob-{len(self._uploaded) + 1}"},
                "mimeType": mime_type,
                "size": len(data),
            }
            self._uploaded.append(blob)
            return blob

        envelope = self._xrpc("com.atproto.repo.uploadBlob", data, content_type=mime_type)
        result = parse_upload_envelope(envelope)
        if isinstance(result, BlobUploadFailed):
            raise UploadError(result.kind, result.detail)
        self._uploaded.append(result.blob)
        logger.info("Uploaded blob of %d bytes", len(data))
        return result.blob

    def create_post(self, record: dict[str, Any]) -> CreatedPost:
        """Submit a post record and return its cid and uri."""
        session = self._require_session()
        if not self._live:
            n = len(self._posted) + 1
            created = CreatedPost(
                cid=f"mock-cid-{n}",
                uri=f"at://{session['did']}/{POST_COLLECTION}/mock{n}",
            )
            self._posted.append({"record": record, "cid": created.cid, "uri": created.uri})
            return created

        resp = self._json("com.atproto.repo.createRecord", {
            "repo": session["did"],
            "collection": POST_COLLECTION,
            "record": record,
        })
        if not resp.success and resp.status >= 500:
            # A gateway error may hide a post that was created.
            raise RuntimeError(
                f"Bluesky post outcome unknown: {resp.error_message}"
            )
        if not resp.success:
            raise SubmissionError(
                f"Bluesky rejected post: {resp.error_message}", status=resp.status,
            )
        cid = resp.data.get("cid")
        uri = resp.data.get("uri")
        if not cid or not uri:
            # Accepted but unidentifiable; not a rejection.
            raise RuntimeError("Bluesky post response has no cid/uri")
        self._posted.append({"record": record, "cid": cid, "uri": uri})
        return CreatedPost(cid=cid, uri=uri)

    @property
    def post_count(self) -> int:
        return len(self._posted)

    @property
    def upload_count(self) -> int:
        return len(self._uploaded)
