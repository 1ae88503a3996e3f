"""Tests for the Bluesky module."""

import io
import json
import urllib.error
import urllib.request

import pytest

from museum_poster.bluesky import (
    BlobUploaded,
    BlobUploadFailed,
    BlueskyClient,
    BlueskyConfig,
    CreatedPost,
    XrpcResponse,
    parse_upload_envelope,
)
from museum_poster.errors import AuthenticationError, PublishFailed, SubmissionError, UploadError
from museum_poster.publisher import Publisher, PublishStage, publish_with_retry
from museum_poster.store import Platform, PublicationStatus

BLOB = {"$type": "blob", "ref": {"$link": "bafkrei"}, "mimeType": "image/png", "size": 3}


class _Resp:
    def __init__(self, payload, status=200, read_error=None):
        self._body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        self.status = status
        self._read_error = read_error

    def read(self):
        if self._read_error:
            raise self._read_error
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeXrpc:
    """Stands in for urlopen; answers by XRPC method name.

    An answer is a (status, payload) pair, an exception to raise from
    the response read, or a list of those consumed in order.
    """

    def __init__(self, answers):
        self.answers = answers
        self.requests = []

    def __call__(self, req, timeout=None):
        method = req.full_url.rsplit("/", 1)[-1]
        self.requests.append((method, req, timeout))
        answer = self.answers[method]
        if isinstance(answer, list):
            answer = answer.pop(0)
        if isinstance(answer, Exception):
            return _Resp(b"", read_error=answer)
        status, payload = answer
        if status >= 400:
            raise urllib.error.HTTPError(
                req.full_url, status, "error", {}, io.BytesIO(json.dumps(payload).encode()),
            )
        return _Resp(payload, status)


SESSION = {"did": "did:plc:abc", "accessJwt": "jwt-1", "handle": "skins.bsky.social"}


def _live_client(monkeypatch, answers):
    fake = FakeXrpc(answers)
    monkeypatch.setattr(urllib.request, "urlopen", fake)
    client = BlueskyClient(
        BlueskyConfig(handle="skins.bsky.social", app_password="pw", timeout=5.0),
        live=True,
    )
    return client, fake


class TestMockMode:
    def _client(self) -> BlueskyClient:
        return BlueskyClient(BlueskyConfig(handle="test.bsky.social", app_password="test"))

    def test_upload_requires_login(self):
        with pytest.raises(AuthenticationError):
            self._client().upload_blob(b"abc")

    def test_upload_and_post(self):
        client = self._client()
        client.login()
        blob = client.upload_blob(b"abc")
        assert blob["size"] == 3
        created = client.create_post({"text": "hi"})
        assert created.uri.startswith("at://did:plc:mock/app.bsky.feed.post/")
        assert client.upload_count == 1
        assert client.post_count == 1


class TestUploadEnvelope:
    def test_success(self):
        result = parse_upload_envelope(XrpcResponse(True, 200, {"blob": BLOB}))
        assert result == BlobUploaded(BLOB)

    def test_rejected(self):
        result = parse_upload_envelope(
            XrpcResponse(False, 400, {"error": "BlobTooLarge", "message": "too big"}),
        )
        assert isinstance(result, BlobUploadFailed)
        assert result.kind == "rejected"
        assert "BlobTooLarge" in result.detail

    def test_success_without_blob_is_malformed(self):
        result = parse_upload_envelope(XrpcResponse(True, 200, {}))
        assert isinstance(result, BlobUploadFailed)
        assert result.kind == "malformed"


class TestLiveMode:
    def test_login_rejected(self, monkeypatch):
        client, _ = _live_client(monkeypatch, {
            "com.atproto.server.createSession": (401, {"error": "AuthenticationRequired"}),
        })
        with pytest.raises(AuthenticationError, match="AuthenticationRequired"):
            client.login()

    def test_upload_sends_raw_bytes_with_session(self, monkeypatch):
        client, fake = _live_client(monkeypatch, {
            "com.atproto.server.createSession": (200, SESSION),
            "com.atproto.repo.uploadBlob": (200, {"blob": BLOB}),
        })
        client.login()
        assert client.upload_blob(b"\x89PNG", "image/png") == BLOB

        method, req, timeout = fake.requests[-1]
        assert method == "com.atproto.repo.uploadBlob"
        assert req.data == b"\x89PNG"
        assert req.get_header("Content-type") == "image/png"
        assert req.get_header("Authorization") == "Bearer jwt-1"
        assert timeout == 5.0

    def test_upload_failure_envelope(self, monkeypatch):
        client, _ = _live_client(monkeypatch, {
            "com.atproto.server.createSession": (200, SESSION),
            "com.atproto.repo.uploadBlob": (500, {"error": "InternalServerError"}),
        })
        client.login()
        with pytest.raises(UploadError) as exc_info:
            client.upload_blob(b"abc")
        assert exc_info.value.kind == "rejected"

    def test_create_post(self, monkeypatch):
        client, fake = _live_client(monkeypatch, {
            "com.atproto.server.createSession": (200, SESSION),
            "com.atproto.repo.createRecord": (200, {
                "uri": "at://did:plc:abc/app.bsky.feed.post/3kabc", "cid": "bafyre",
            }),
        })
        client.login()
        created = client.create_post({"text": "hi"})
        assert created.cid == "bafyre"
        body = json.loads(fake.requests[-1][1].data)
        assert body["repo"] == "did:plc:abc"
        assert body["collection"] == "app.bsky.feed.post"
        assert body["record"] == {"text": "hi"}

    def test_create_post_rejected(self, monkeypatch):
        client, _ = _live_client(monkeypatch, {
            "com.atproto.server.createSession": (200, SESSION),
            "com.atproto.repo.createRecord": (400, {"error": "InvalidRequest"}),
        })
        client.login()
        with pytest.raises(SubmissionError) as exc_info:
            client.create_post({"text": "hi"})
        assert exc_info.value.status == 400

    def test_login_is_fresh_each_time(self, monkeypatch):
        client, fake = _live_client(monkeypatch, {
            "com.atproto.server.createSession": (200, SESSION),
        })
        client.login()
        client.login()
        assert [m for m, _, _ in fake.requests] == ["com.atproto.server.createSession"] * 2
        # No bearer token is sent when creating a session.
        assert fake.requests[1][1].get_header("Authorization") is None


TRANSPORT_ERRORS = [
    TimeoutError("The read operation timed out"),
    ConnectionResetError(104, "Connection reset by peer"),
]


class TestTransportFailures:
    @pytest.mark.parametrize("error", TRANSPORT_ERRORS)
    def test_upload_read_failure(self, monkeypatch, error):
        client, _ = _live_client(monkeypatch, {
            "com.atproto.server.createSession": (200, SESSION),
            "com.atproto.repo.uploadBlob": error,
        })
        client.login()
        with pytest.raises(RuntimeError, match="transport error"):
            client.upload_blob(b"abc")

    @pytest.mark.parametrize("error", TRANSPORT_ERRORS)
    def test_create_post_read_failure_is_not_a_rejection(self, monkeypatch, error):
        client, _ = _live_client(monkeypatch, {
            "com.atproto.server.createSession": (200, SESSION),
            "com.atproto.repo.createRecord": error,
        })
        client.login()
        with pytest.raises(RuntimeError) as exc_info:
            client.create_post({"text": "hi"})
        assert not isinstance(exc_info.value, SubmissionError)

    def test_create_post_non_json_body(self, monkeypatch):
        client, _ = _live_client(monkeypatch, {
            "com.atproto.server.createSession": (200, SESSION),
            "com.atproto.repo.createRecord": (200, b"<html>cloudflare</html>"),
        })
        client.login()
        with pytest.raises(RuntimeError, match="transport error"):
            client.create_post({"text": "hi"})

    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    def test_create_post_server_error_is_ambiguous(self, monkeypatch, status):
        client, _ = _live_client(monkeypatch, {
            "com.atproto.server.createSession": (200, SESSION),
            "com.atproto.repo.createRecord": (status, {"error": "UpstreamFailure"}),
        })
        client.login()
        with pytest.raises(RuntimeError, match="outcome unknown") as exc_info:
            client.create_post({"text": "hi"})
        assert not isinstance(exc_info.value, SubmissionError)


class TestLivePublishRetry:
    def test_gateway_timeout_on_submit_is_not_reposted(self, monkeypatch, store, foo_skin):
        client, fake = _live_client(monkeypatch, {
            "com.atproto.server.createSession": (200, SESSION),
            "com.atproto.repo.uploadBlob": (200, {"blob": BLOB}),
            "com.atproto.repo.createRecord": [
                (504, {"error": "GatewayTimeout"}),
                (200, {"uri": "at://did:plc:abc/app.bsky.feed.post/3kabc", "cid": "bafyre"}),
            ],
        })
        publisher = Publisher(store, client)

        with pytest.raises(PublishFailed) as exc_info:
            publish_with_retry(publisher, attempts=3, sleep_func=lambda _: None)

        assert exc_info.value.stage == PublishStage.SUBMITTING
        assert exc_info.value.retryable is False
        assert [m for m, _, _ in fake.requests].count("com.atproto.repo.createRecord") == 1
        assert store.get(foo_skin.md5).status(Platform.BLUESKY) == PublicationStatus.PENDING

    def test_rejected_submit_is_retried(self, monkeypatch, store, foo_skin):
        client, fake = _live_client(monkeypatch, {
            "com.atproto.server.createSession": (200, SESSION),
            "com.atproto.repo.uploadBlob": (200, {"blob": BLOB}),
            "com.atproto.repo.createRecord": [
                (400, {"error": "InvalidRequest"}),
                (200, {"uri": "at://did:plc:abc/app.bsky.feed.post/3kabc", "cid": "bafyre"}),
            ],
        })
        result = publish_with_retry(Publisher(store, client), attempts=3, sleep_func=lambda _: None)

        assert result.url == "https://bsky.app/profile/did:plc:abc/post/3kabc"
        assert [m for m, _, _ in fake.requests].count("com.atproto.repo.createRecord") == 2
        assert store.get(foo_skin.md5).status(Platform.BLUESKY) == PublicationStatus.PUBLISHED


class TestCreatedPost:
    def test_web_url(self):
        post = CreatedPost(cid="c", uri="at://did:plc:abc/app.bsky.feed.post/3kabc")
        assert post.web_url == "https://bsky.app/profile/did:plc:abc/post/3kabc"

    def test_web_url_passthrough(self):
        post = CreatedPost(cid="c", uri="https://platform/post/p1")
        assert post.web_url == "https://platform/post/p1"
