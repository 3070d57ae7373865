from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from .client import WallClient, make_client
from .composer import Composer, ImageFile
from .config import ACCEPTED_IMAGE_TYPES, MAX_BODY_LENGTH, Settings
from .feed import Feed
from .models import Post, Profile


log = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(PACKAGE_DIR / "templates"))


class PostOut(BaseModel):
    id: str
    body: str
    image_url: str | None = None
    created_at: datetime


def _format_timestamp(value: datetime) -> str:
    return value.strftime("%m/%d/%Y, %I:%M:%S %p UTC")


templates.env.filters["timestamp"] = _format_timestamp


# ----------------------------
# Dependencies
# ----------------------------
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_client(request: Request) -> WallClient:
    return request.app.state.client


def get_feed(request: Request) -> Feed:
    return request.app.state.feed


async def _image_from_upload(upload: UploadFile | None, max_file_size: int) -> ImageFile | None:
    # leeres <input type="file"> kommt als UploadFile ohne Dateinamen an
    if upload is None or not upload.filename:
        return None
    if upload.size is not None and upload.size > max_file_size:
        # zu groß: gar nicht erst einlesen, der Composer lehnt ab
        return ImageFile(upload.filename, upload.content_type, b"", declared_size=upload.size)
    return ImageFile(
        filename=upload.filename,
        content_type=upload.content_type,
        data=await upload.read(),
    )


async def _submit(
    client: WallClient,
    settings: Settings,
    feed: Feed,
    body: str,
    image: UploadFile | None,
) -> tuple[Composer, Post | None]:
    composer = Composer(client, max_file_size=settings.max_file_size)
    composer.set_message(body)
    composer.attach_image(await _image_from_upload(image, settings.max_file_size))
    if not composer.can_submit:
        return composer, None

    post = await composer.submit()
    if post is not None:
        # sofort sichtbar, auch bevor das Realtime-Event ankommt (Dedupe per id)
        feed.apply_insert(post)
    return composer, post


def _render(request: Request, composer: Composer, feed: Feed, status_code: int = 200):
    settings: Settings = request.app.state.settings
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "profile": request.app.state.profile,
            "composer": composer,
            "posts": feed.posts,
            "max_body_length": MAX_BODY_LENGTH,
            "accepted_types": ",".join(ACCEPTED_IMAGE_TYPES),
            "max_file_mb": settings.max_file_size // (1024 * 1024),
        },
        status_code=status_code,
    )


router = APIRouter()


# ----------------------------
# Page
# ----------------------------
@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def index(request: Request, client: WallClient = Depends(get_client), feed: Feed = Depends(get_feed)):
    return _render(request, Composer(client), feed)


@router.post("/", response_class=HTMLResponse, include_in_schema=False)
async def submit_form(
    request: Request,
    body: str = Form(""),
    image: UploadFile | None = File(None),
    client: WallClient = Depends(get_client),
    settings: Settings = Depends(get_settings),
    feed: Feed = Depends(get_feed),
):
    composer, _ = await _submit(client, settings, feed, body, image)
    if composer.error:
        return _render(request, composer, feed, status_code=400)
    return RedirectResponse("/", status_code=303)


# ----------------------------
# JSON API
# ----------------------------
@router.get("/api/posts", response_model=list[PostOut], summary="List posts, newest first")
def list_posts(feed: Feed = Depends(get_feed)):
    return list(feed.posts)


@router.post("/api/posts", response_model=PostOut, status_code=201, summary="Create a new post")
async def create_post(
    body: str = Form(""),
    image: UploadFile | None = File(None),
    client: WallClient = Depends(get_client),
    settings: Settings = Depends(get_settings),
    feed: Feed = Depends(get_feed),
):
    """
    Flow:
    1) optional: Bild hochladen (max. 5MB), public URL holen
    2) Post einfügen
    """
    composer, post = await _submit(client, settings, feed, body, image)
    if composer.error:
        raise HTTPException(status_code=400, detail=composer.error)
    if post is None:
        raise HTTPException(status_code=422, detail="Nothing to post")
    return post


@router.get("/api/posts/stream", summary="Server-sent events with new posts")
async def stream_posts(feed: Feed = Depends(get_feed)):
    async def events():
        async for post in feed.listen():
            yield f"data: {post.model_dump_json()}\n\n"

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


def create_app(settings: Settings | None = None, client: WallClient | None = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        wall_client = client or make_client(settings)
        log.info("[app] starting with %s backend", type(wall_client).__name__)
        feed = Feed(wall_client)
        app.state.client = wall_client
        app.state.feed = feed
        await feed.mount()
        yield
        await feed.unmount()
        await wall_client.aclose()

    app = FastAPI(
        title="Social Wall",
        description="Single-page wall: short posts with an optional image, live feed.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.profile = Profile()

    app.mount("/static", StaticFiles(directory=str(PACKAGE_DIR / "static")), name="static")
    # Uploads des lokalen Backends (URLs bleiben /images/...)
    app.mount("/images", StaticFiles(directory=str(settings.images_dir), check_dir=False), name="images")

    app.include_router(router)
    return app


app = create_app()
