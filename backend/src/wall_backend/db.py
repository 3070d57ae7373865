from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from sqlmodel import SQLModel, Session, create_engine, select

from .client import BackendError, InsertCallback, Subscription, WallClient
from .models import Post, PostRow


log = logging.getLogger(__name__)


def create_db_engine(database_url: str | None):
    """
    Engine wird erst beim ersten Zugriff gebaut, damit Imports/pytest collection
    ohne Datenbank funktionieren.
    """
    if not database_url:
        raise RuntimeError(
            "Keine Datenbank-URL gesetzt. Bitte setze DATABASE_URL "
            "für das lokale Backend."
        )
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, echo=False, pool_pre_ping=True, connect_args=connect_args)


class _LocalSubscription(Subscription):
    def __init__(self, owner: "LocalWallClient", callback: InsertCallback):
        self._owner = owner
        self._callback = callback

    async def close(self) -> None:
        self._owner._subscribers.discard(self._callback)


class LocalWallClient(WallClient):
    """
    Same contract as the hosted backend, on a SQLModel database and a local
    images directory (served by the app under /images).
    """

    def __init__(self, database_url: str | None, images_dir: Path, public_base_url: str = ""):
        self.database_url = database_url
        self.images_dir = Path(images_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self._engine = None
        self._subscribers: set[InsertCallback] = set()

    @property
    def engine(self):
        if self._engine is None:
            self._engine = create_db_engine(self.database_url)
            SQLModel.metadata.create_all(self._engine)
        return self._engine

    # ---------------------------
    # posts table
    # ---------------------------

    def _list_posts(self) -> list[Post]:
        with Session(self.engine) as session:
            stmt = select(PostRow).order_by(PostRow.created_at.desc())
            return [row.to_post() for row in session.exec(stmt).all()]

    def _insert_post(self, body: str, image_url: str) -> Post:
        with Session(self.engine) as session:
            row = PostRow(body=body, image_url=image_url)
            session.add(row)
            session.commit()
            session.refresh(row)
            return row.to_post()

    async def list_posts(self) -> list[Post]:
        return await asyncio.to_thread(self._list_posts)

    async def insert_post(self, body: str, image_url: str = "") -> Post:
        try:
            post = await asyncio.to_thread(self._insert_post, body, image_url)
        except Exception as exc:  # noqa: BLE001
            raise BackendError(str(exc)) from exc

        # nach dem Commit, auf dem Event-Loop
        for callback in list(self._subscribers):
            callback(post)
        return post

    async def subscribe_inserts(self, callback: InsertCallback) -> Subscription:
        self._subscribers.add(callback)
        return _LocalSubscription(self, callback)

    # ---------------------------
    # object store
    # ---------------------------

    def _write_image(self, name: str, data: bytes) -> None:
        self.images_dir.mkdir(parents=True, exist_ok=True)
        path = self.images_dir / name
        try:
            # "x" = kein Überschreiben, wie upsert=false
            with open(path, "xb") as f:
                f.write(data)
        except FileExistsError:
            raise BackendError("The resource already exists") from None

    async def upload_image(self, name: str, data: bytes, content_type: str | None) -> None:
        if "/" in name or "\\" in name or name.startswith("."):
            raise BackendError(f"Invalid key: {name}")
        await asyncio.to_thread(self._write_image, name, data)
        log.info("[storage] stored %s (%d bytes, %s)", name, len(data), content_type)

    async def public_url(self, name: str) -> str:
        return f"{self.public_base_url}/images/{name}"

    async def aclose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
