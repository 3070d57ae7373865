# backend/tests/conftest.py
import itertools
import uuid
from datetime import datetime, timedelta, timezone
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from wall_backend.client import BackendError, Subscription, WallClient
from wall_backend.config import Settings
from wall_backend.db import LocalWallClient
from wall_backend.main import create_app
from wall_backend.models import Post, sort_newest_first


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


# ----------------------------
# In-memory backend
# ----------------------------

class FakeSubscription(Subscription):
    def __init__(self, owner, callback):
        self.owner = owner
        self.callback = callback
        self.closed = False

    async def close(self) -> None:
        self.closed = True
        self.owner.subscribers.remove(self.callback)


class FakeWallClient(WallClient):
    """
    Records every backend call; errors can be armed per operation.
    Each inserted row is one second newer than the previous one.
    """

    public_base = "https://cdn.example.test/wall-images"

    def __init__(self, rows=()):
        self.rows: list[Post] = list(rows)
        self.uploads: dict[str, bytes] = {}
        self.calls: list[tuple] = []
        self.subscribers: list = []
        self.subscriptions: list[FakeSubscription] = []
        self.insert_error: Exception | None = None
        self.upload_error: Exception | None = None
        self.list_error: Exception | None = None
        self.subscribe_error: Exception | None = None
        self._ticks = itertools.count(len(self.rows) + 1)

    def make_post(self, body: str, image_url: str = "") -> Post:
        return Post(
            id=uuid.uuid4().hex,
            body=body,
            image_url=image_url,
            created_at=BASE_TIME + timedelta(seconds=next(self._ticks)),
        )

    async def list_posts(self):
        self.calls.append(("list",))
        if self.list_error:
            raise self.list_error
        return sort_newest_first(self.rows)

    async def insert_post(self, body, image_url=""):
        self.calls.append(("insert", body, image_url))
        if self.insert_error:
            raise self.insert_error
        post = self.make_post(body, image_url)
        self.rows.append(post)
        for callback in list(self.subscribers):
            callback(post)
        return post

    async def subscribe_inserts(self, callback):
        self.calls.append(("subscribe",))
        if self.subscribe_error:
            raise self.subscribe_error
        self.subscribers.append(callback)
        subscription = FakeSubscription(self, callback)
        self.subscriptions.append(subscription)
        return subscription

    async def upload_image(self, name, data, content_type):
        self.calls.append(("upload", name, content_type))
        if self.upload_error:
            raise self.upload_error
        if name in self.uploads:
            raise BackendError("The resource already exists")
        self.uploads[name] = data

    async def public_url(self, name):
        return f"{self.public_base}/{name}"

    def backend_calls(self, kind: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == kind]


@pytest.fixture()
def fake_client() -> FakeWallClient:
    return FakeWallClient()


@pytest.fixture()
def make_fake_client():
    return FakeWallClient


# ----------------------------
# Local backend (SQLite + tmp images dir)
# ----------------------------

@pytest.fixture()
def local_settings(tmp_path) -> Settings:
    return Settings(
        backend="local",
        database_url=f"sqlite:///{tmp_path / 'wall.db'}",
        images_dir=tmp_path / "images",
    )


@pytest.fixture()
def local_client(local_settings) -> LocalWallClient:
    return LocalWallClient(
        database_url=local_settings.database_url,
        images_dir=local_settings.images_dir,
    )


@pytest.fixture()
def api_client(local_settings):
    with TestClient(create_app(local_settings)) as client:
        yield client


# ----------------------------
# Helpers
# ----------------------------

def png_bytes(size=(32, 32)) -> bytes:
    img = Image.new("RGB", size, (248, 206, 213))
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def png():
    return png_bytes()
