"""Shared fixtures: screenshots, stores and a scriptable Bluesky client."""

import hashlib
import io

import pytest
from PIL import Image

from museum_poster.bluesky import CreatedPost
from museum_poster.errors import UploadError
from museum_poster.store import ContentRecord, ContentStore


def make_png(width: int = 64, height: int = 64) -> bytes:
    """A small checkerboard PNG with hard pixel edges."""
    im = Image.new("RGB", (width, height), (0, 0, 0))
    for x in range(width):
        for y in range(height):
            if (x + y) % 2:
                im.putpixel((x, y), (255, 200, 0))
    buf = io.BytesIO()
    im.save(buf, format="PNG")
    return buf.getvalue()


def md5_of(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


class FakeBlueskyClient:
    """Records calls; each step can be told to fail."""

    def __init__(self, upload_error=None, login_error=None, post_error=None,
                 cid="p1", uri="https://platform/post/p1"):
        self.calls = []
        self.upload_error = upload_error
        self.login_error = login_error
        self.post_error = post_error
        self.cid = cid
        self.uri = uri
        self.uploaded = []
        self.records = []

    def login(self):
        self.calls.append("login")
        if self.login_error:
            raise self.login_error
        return {"did": "did:plc:test", "accessJwt": "jwt"}

    def upload_blob(self, data, mime_type="image/png"):
        self.calls.append("upload_blob")
        if self.upload_error:
            raise self.upload_error
        self.uploaded.append((data, mime_type))
        return {"blobRef": "b1"}

    def create_post(self, record):
        self.calls.append("create_post")
        if self.post_error:
            raise self.post_error
        self.records.append(record)
        return CreatedPost(cid=self.cid, uri=self.uri)


@pytest.fixture
def png_path(tmp_path):
    path = tmp_path / "screenshot.png"
    path.write_bytes(make_png(64, 64))
    return path


@pytest.fixture
def foo_skin(png_path):
    return ContentRecord(
        md5=md5_of("Foo Skin"),
        file_name="Foo Skin",
        canonical_url="https://museum/x",
        screenshot_url=str(png_path),
    )


@pytest.fixture
def store(foo_skin):
    s = ContentStore()
    s.add(foo_skin)
    return s


@pytest.fixture
def client():
    return FakeBlueskyClient()


@pytest.fixture
def failing_upload_client():
    return FakeBlueskyClient(upload_error=UploadError("rejected", "HTTP 500"))
