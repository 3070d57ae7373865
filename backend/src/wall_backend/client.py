from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from .config import Settings
from .models import Post


InsertCallback = Callable[[Post], None]


class BackendError(Exception):
    """Error reported by the backend; `message` is shown to the user as-is."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Subscription(ABC):
    @abstractmethod
    async def close(self) -> None:
        ...


class WallClient(ABC):
    """
    Data-access client for the wall:
    - posts table: insert, list newest-first, subscribe to inserts
    - object store: upload image, public URL
    """

    @abstractmethod
    async def list_posts(self) -> list[Post]:
        ...

    @abstractmethod
    async def insert_post(self, body: str, image_url: str = "") -> Post:
        ...

    @abstractmethod
    async def subscribe_inserts(self, callback: InsertCallback) -> Subscription:
        ...

    @abstractmethod
    async def upload_image(self, name: str, data: bytes, content_type: str | None) -> None:
        ...

    @abstractmethod
    async def public_url(self, name: str) -> str:
        ...

    async def aclose(self) -> None:
        return None


def make_client(settings: Settings) -> WallClient:
    if settings.backend == "supabase":
        from .supabase_client import SupabaseWallClient

        return SupabaseWallClient(
            url=settings.require("supabase_url"),
            key=settings.require("supabase_key"),
            table=settings.posts_table,
            bucket=settings.images_bucket,
        )
    if settings.backend == "local":
        from .db import LocalWallClient

        return LocalWallClient(
            database_url=settings.require("database_url"),
            images_dir=settings.images_dir,
            public_base_url=settings.public_base_url,
        )
    raise RuntimeError(f"Unknown WALL_BACKEND: {settings.backend!r} (expected 'supabase' or 'local')")
