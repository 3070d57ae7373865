import asyncio
import logging

import uvicorn

from .client import make_client
from .config import Settings


log = logging.getLogger(__name__)


def _setup_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _seed(settings: Settings) -> int:
    client = make_client(settings)
    try:
        for body in ("Hello wall!", "First post from the seed script.", "Neapolitan vibes only 🍦"):
            await client.insert_post(body)
    finally:
        await client.aclose()
    return 3


def seed():
    settings = Settings.from_env()
    _setup_logging(settings)
    count = asyncio.run(_seed(settings))
    log.info("Seeded %d posts.", count)


def start_api():
    settings = Settings.from_env()
    _setup_logging(settings)
    uvicorn.run(
        "wall_backend.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
