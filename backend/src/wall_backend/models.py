from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, field_validator
from sqlmodel import SQLModel, Field

from .config import MAX_BODY_LENGTH


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Post(BaseModel):
    id: str
    body: str
    image_url: str | None = None
    created_at: datetime

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        # Postgres liefert je nach Schema int/uuid
        return str(value)

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class PostRow(SQLModel, table=True):
    """Row of the `posts` table used by the local backend."""

    __tablename__ = "posts"

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    body: str = Field(max_length=MAX_BODY_LENGTH)
    image_url: str = ""
    created_at: datetime = Field(default_factory=utcnow, index=True)

    def to_post(self) -> Post:
        return Post.model_validate(self.model_dump())


class Profile(BaseModel):
    title: str = "Lena's Wall"
    name: str = "Lena Tran"
    tagline: str = "03 | she/her | ISFJ"
    networks: str = "UT Arlington Alumna"
    current_city: str = "Grand Prairie, TX"
    picture: str = "profile.svg"
    picture_alt: str = "Lena's profile photo"


def sort_newest_first(posts) -> list[Post]:
    return sorted(posts, key=lambda p: p.created_at, reverse=True)
