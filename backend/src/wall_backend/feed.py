from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from .client import Subscription, WallClient
from .models import Post, sort_newest_first


log = logging.getLogger(__name__)


class Feed:
    """
    In-memory list of posts, newest first, shared by all visitors.

    mount():   subscribe to inserts, then fetch the existing posts
    unmount(): release the subscription and end every listener stream

    Inserts are put on a queue by the subscription callback and applied by
    a single consumer task. The post id is the de-duplication key: rows
    that arrive via the subscription before the initial fetch completes are
    merged with the fetch result instead of being overwritten or counted
    twice.
    """

    def __init__(self, client: WallClient):
        self.client = client
        self._posts: tuple[Post, ...] = ()
        self._events: asyncio.Queue[Post] | None = None
        self._consumer: asyncio.Task | None = None
        self._subscription: Subscription | None = None
        self._listeners: set[asyncio.Queue[Post | None]] = set()
        self._closed = False

    @property
    def posts(self) -> tuple[Post, ...]:
        return self._posts

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def mount(self) -> None:
        self._closed = False
        self._events = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume(self._events))

        try:
            self._subscription = await self.client.subscribe_inserts(self._events.put_nowait)
        except Exception:  # noqa: BLE001
            # kein Live-Update, Liste bleibt nach dem Fetch stale
            log.exception("[feed] subscribe to inserts failed")

        try:
            fetched = await self.client.list_posts()
        except Exception:  # noqa: BLE001
            log.exception("[feed] initial fetch failed")
            fetched = []
        self._merge(fetched)
        log.info("[feed] mounted with %d posts", len(self._posts))

    async def unmount(self) -> None:
        self._closed = True
        if self._consumer is not None:
            self._consumer.cancel()
            await asyncio.gather(self._consumer, return_exceptions=True)
            self._consumer = None
        if self._subscription is not None:
            try:
                await self._subscription.close()
            except Exception:  # noqa: BLE001
                log.exception("[feed] closing subscription failed")
            self._subscription = None
        if self._listeners:
            log.info("[feed] closing %d listener streams", self.listener_count)
        for queue in list(self._listeners):
            queue.put_nowait(None)

    async def drain(self) -> None:
        """Wait until every insert received so far has been applied."""
        if self._events is not None:
            await self._events.join()

    async def listen(self) -> AsyncIterator[Post]:
        """New posts as they arrive, until the feed is unmounted."""
        if self._closed:
            return
        queue: asyncio.Queue[Post | None] = asyncio.Queue()
        self._listeners.add(queue)
        try:
            while True:
                post = await queue.get()
                if post is None:
                    return
                yield post
        finally:
            self._listeners.discard(queue)

    # ---------------------------
    # list updates (always replace, never mutate)
    # ---------------------------

    async def _consume(self, events: asyncio.Queue[Post]) -> None:
        while True:
            post = await events.get()
            try:
                self.apply_insert(post)
            finally:
                events.task_done()

    def apply_insert(self, post: Post) -> bool:
        if any(p.id == post.id for p in self._posts):
            return False
        self._posts = tuple(sort_newest_first((post, *self._posts)))
        for queue in list(self._listeners):
            queue.put_nowait(post)
        return True

    def _merge(self, fetched: list[Post]) -> None:
        by_id: dict[str, Post] = {}
        for post in (*self._posts, *fetched):
            by_id.setdefault(post.id, post)
        self._posts = tuple(sort_newest_first(by_id.values()))
