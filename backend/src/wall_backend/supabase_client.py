from __future__ import annotations

import logging

import httpx
from postgrest.exceptions import APIError
from pydantic import ValidationError
from storage3.utils import StorageException
from supabase import AsyncClient, acreate_client

from .client import BackendError, InsertCallback, Subscription, WallClient
from .models import Post


log = logging.getLogger(__name__)

CACHE_CONTROL = "3600"

# ValueError deckt auch kaputtes JSON und pydantic ValidationError ab
BACKEND_ERRORS = (APIError, StorageException, httpx.HTTPError, ValueError)


def _backend_error(exc: Exception) -> BackendError:
    message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
    return BackendError(str(message))


def record_from_payload(payload: dict) -> dict | None:
    """
    postgres_changes payload:
      {"data": {"type": "INSERT", "record": {...}, ...}, "ids": [...]}
    """
    data = payload.get("data")
    if isinstance(data, dict):
        if data.get("type", "INSERT") != "INSERT":
            return None
        record = data.get("record")
    else:
        record = payload.get("record") or payload.get("new")
    return record if isinstance(record, dict) else None


class ChannelSubscription(Subscription):
    def __init__(self, supabase: AsyncClient, channel):
        self._supabase = supabase
        self._channel = channel

    async def close(self) -> None:
        await self._supabase.remove_channel(self._channel)


class SupabaseWallClient(WallClient):
    """
    Hosted backend via the supabase client library: posts table, image
    bucket and realtime insert notifications.
    """

    def __init__(
        self,
        url: str,
        key: str,
        table: str = "posts",
        bucket: str = "wall-images",
        supabase: AsyncClient | None = None,
    ):
        self.url = url
        self.key = key
        self.table = table
        self.bucket = bucket
        self._supabase = supabase

    async def client(self) -> AsyncClient:
        # wird lazy erzeugt, acreate_client braucht einen laufenden Event-Loop
        if self._supabase is None:
            self._supabase = await acreate_client(self.url, self.key)
        return self._supabase

    # ---------------------------
    # posts table
    # ---------------------------

    async def list_posts(self) -> list[Post]:
        supabase = await self.client()
        try:
            response = await (
                supabase.table(self.table)
                .select("*")
                .order("created_at", desc=True)
                .execute()
            )
            return [Post.model_validate(row) for row in response.data or []]
        except BACKEND_ERRORS as exc:
            raise _backend_error(exc) from exc

    async def insert_post(self, body: str, image_url: str = "") -> Post:
        supabase = await self.client()
        try:
            response = await (
                supabase.table(self.table)
                .insert({"body": body, "image_url": image_url})
                .execute()
            )
            rows = response.data
            if not rows:
                raise BackendError("Insert returned no row")
            return Post.model_validate(rows[0])
        except BACKEND_ERRORS as exc:
            raise _backend_error(exc) from exc

    async def subscribe_inserts(self, callback: InsertCallback) -> Subscription:
        supabase = await self.client()

        def on_insert(payload: dict) -> None:
            record = record_from_payload(payload)
            if record is None:
                return
            try:
                post = Post.model_validate(record)
            except ValidationError as exc:
                log.warning("[realtime] ignoring malformed row %r: %s", record, exc)
                return
            callback(post)

        channel = supabase.channel(f"{self.table}-inserts")
        await channel.on_postgres_changes(
            "INSERT",
            schema="public",
            table=self.table,
            callback=on_insert,
        ).subscribe()
        log.info("[realtime] subscribed to inserts on %s", self.table)
        return ChannelSubscription(supabase, channel)

    # ---------------------------
    # object store
    # ---------------------------

    async def upload_image(self, name: str, data: bytes, content_type: str | None) -> None:
        supabase = await self.client()
        try:
            await supabase.storage.from_(self.bucket).upload(
                name,
                data,
                file_options={
                    "content-type": content_type or "application/octet-stream",
                    "cache-control": CACHE_CONTROL,
                    "upsert": "false",
                },
            )
        except BACKEND_ERRORS as exc:
            raise _backend_error(exc) from exc

    async def public_url(self, name: str) -> str:
        supabase = await self.client()
        return await supabase.storage.from_(self.bucket).get_public_url(name)

    async def aclose(self) -> None:
        if self._supabase is not None:
            await self._supabase.remove_all_channels()
