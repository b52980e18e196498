import os
import tempfile

os.environ.setdefault("VIDEOTUBE_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("VIDEOTUBE_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("VIDEOTUBE_LOG_JSON", "false")
os.environ.setdefault("VIDEOTUBE_UPLOAD_TMP_DIR", tempfile.mkdtemp(prefix="videotube-"))

import pytest
import pytest_asyncio
from fastapi_cache import FastAPICache
from fastapi_cache.backends.inmemory import InMemoryBackend
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import create_tables, get_db
from app.main import app
from app.media import MediaAsset, MediaService, get_media_service

API = "/api/v1"
PASSWORD = "secret-pass"


class FakeMediaService(MediaService):
    """Records uploads and discards instead of talking to S3 and Celery."""

    def __init__(self):
        super().__init__(
            bucket="test-bucket", region="us-west-1",
            base_url="https://media.example.com", tmp_dir=tempfile.gettempdir(),
        )
        self.uploaded = []
        self.discarded = []
        # what ffprobe would report for the uploaded clip
        self.clip_duration = 42.5

    async def upload(self, upload, folder, measure_duration=False):
        key = f"{folder}/{len(self.uploaded)}-{upload.filename}"
        self.uploaded.append(key)
        duration = self.clip_duration if measure_duration else None
        return MediaAsset(url=f"{self.base_url}/{key}", key=key, duration=duration)

    def discard(self, url):
        if url:
            self.discarded.append(url)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def media():
    return FakeMediaService()


@pytest_asyncio.fixture
async def client(session_factory, media):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_media_service] = lambda: media
    FastAPICache.init(InMemoryBackend(), prefix="test-cache")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(client):
    """Register and log in a user; returns its id, tokens and bearer headers."""

    async def _make(username):
        response = await client.post(
            f"{API}/users/register",
            data={
                "fullName": username.title(),
                "email": f"{username}@example.com",
                "username": username,
                "password": PASSWORD,
            },
            files={"avatar": ("avatar.png", b"\x89PNG", "image/png")},
        )
        assert response.status_code == 201, response.text
        login = await client.post(f"{API}/users/login", json={"username": username, "password": PASSWORD})
        assert login.status_code == 200, login.text
        client.cookies.clear()
        data = login.json()["data"]
        return {
            "id": data["user"]["id"],
            "username": username,
            "access_token": data["accessToken"],
            "refresh_token": data["refreshToken"],
            "headers": {"Authorization": f"Bearer {data['accessToken']}"},
        }

    return _make


@pytest.fixture
def make_video(client):
    async def _make(user, title="Intro to FastAPI", description="A short walkthrough"):
        response = await client.post(
            f"{API}/videos",
            data={"title": title, "description": description},
            files={
                "videoFile": ("clip.mp4", b"\x00\x00\x00\x18ftypmp42", "video/mp4"),
                "thumbnail": ("thumb.jpg", b"\xff\xd8\xff", "image/jpeg"),
            },
            headers=user["headers"],
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _make
