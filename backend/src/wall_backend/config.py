from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv, find_dotenv

# Repo-Root .env laden, vorhandene Environment-Variablen werden NICHT überschrieben
load_dotenv(find_dotenv())


MAX_BODY_LENGTH = 280
MAX_FILE_SIZE = 5 * 1024 * 1024
ACCEPTED_IMAGE_TYPES = ("image/png", "image/jpeg", "image/gif")

# <repo>/backend/images
DEFAULT_IMAGES_DIR = Path(__file__).resolve().parents[2] / "images"


@dataclass(frozen=True)
class Settings:
    backend: str = "local"
    supabase_url: str | None = None
    supabase_key: str | None = None
    posts_table: str = "posts"
    images_bucket: str = "wall-images"
    database_url: str | None = None
    images_dir: Path = DEFAULT_IMAGES_DIR
    public_base_url: str = ""
    max_file_size: int = MAX_FILE_SIZE
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        supabase_url = os.getenv("SUPABASE_URL") or None
        backend = os.getenv("WALL_BACKEND") or ("supabase" if supabase_url else "local")
        return cls(
            backend=backend.strip().lower(),
            supabase_url=supabase_url,
            supabase_key=os.getenv("SUPABASE_KEY") or None,
            posts_table=os.getenv("POSTS_TABLE", "posts"),
            images_bucket=os.getenv("IMAGES_BUCKET", "wall-images"),
            database_url=os.getenv("DATABASE_URL") or None,
            images_dir=Path(os.getenv("IMAGES_DIR", str(DEFAULT_IMAGES_DIR))).resolve(),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "").rstrip("/"),
            max_file_size=int(os.getenv("MAX_FILE_SIZE", str(MAX_FILE_SIZE))),
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def require(self, name: str) -> str:
        """Return a mandatory setting or fail with the env var that is missing."""
        value = getattr(self, name)
        if not value:
            raise RuntimeError(f"Missing env var: {name.upper()}")
        return value
