from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from .client import BackendError, WallClient
from .config import MAX_BODY_LENGTH, MAX_FILE_SIZE
from .models import Post


log = logging.getLogger(__name__)


@dataclass
class ImageFile:
    filename: str
    content_type: str | None
    data: bytes
    # Größe laut Upload-Header, wenn der Inhalt gar nicht erst gelesen wurde
    declared_size: int | None = None

    @property
    def size(self) -> int:
        if self.declared_size is not None:
            return self.declared_size
        return len(self.data)


def object_name(filename: str, now_ms: int) -> str:
    """
    <epoch-millis>.<ext>, ext = alles nach dem letzten Punkt des Originalnamens.
    """
    ext = filename.rsplit(".", 1)[-1]
    return f"{now_ms}.{ext}"


class Composer:
    """
    Draft of one visitor's post and the submit flow:
    optional image upload, then insert of the row.

    Errors never escape `submit()`; they end up in `error` as the text the
    visitor sees, and the draft is kept so the post can be resubmitted.
    """

    def __init__(self, client: WallClient, max_file_size: int = MAX_FILE_SIZE, clock=time.time):
        self.client = client
        self.max_file_size = max_file_size
        self._clock = clock

        self.message = ""
        self.image: ImageFile | None = None
        self.busy = False
        self.error = ""

    # ---------------------------
    # draft state
    # ---------------------------

    def set_message(self, text: str) -> None:
        self.message = (text or "")[:MAX_BODY_LENGTH]

    def attach_image(self, image: ImageFile | None) -> None:
        self.image = image

    def remove_image(self) -> None:
        self.image = None

    @property
    def chars_left(self) -> int:
        return MAX_BODY_LENGTH - len(self.message)

    @property
    def has_content(self) -> bool:
        return bool(self.message.strip()) or self.image is not None

    @property
    def can_submit(self) -> bool:
        return self.has_content and not self.busy

    @property
    def submit_label(self) -> str:
        return "Sharing..." if self.busy else "Share"

    # ---------------------------
    # submit
    # ---------------------------

    async def submit(self) -> Post | None:
        if not self.can_submit:
            return None

        self.busy = True
        self.error = ""
        try:
            image_url = ""
            if self.image is not None:
                if self.image.size > self.max_file_size:
                    limit_mb = self.max_file_size // (1024 * 1024)
                    self.error = f"File is too large. Max size is {limit_mb}MB."
                    return None
                uploaded = await self._upload(self.image)
                if uploaded is None:
                    return None
                image_url = uploaded

            try:
                post = await self.client.insert_post(self.message, image_url)
            except BackendError as exc:
                self.error = f"Failed to post: {exc.message}"
                return None
            except Exception as exc:  # noqa: BLE001
                log.exception("[composer] insert failed")
                self.error = f"Failed to post: {exc}"
                return None

            self.message = ""
            self.image = None
            return post
        finally:
            self.busy = False

    async def _upload(self, image: ImageFile) -> str | None:
        name = object_name(image.filename, int(self._clock() * 1000))
        try:
            await self.client.upload_image(name, image.data, image.content_type)
            return await self.client.public_url(name)
        except BackendError as exc:
            self.error = f"Failed to upload photo: {exc.message}"
        except Exception:  # noqa: BLE001
            log.exception("[composer] upload of %s failed", name)
            self.error = "Failed to upload photo. Please try again."
        return None
