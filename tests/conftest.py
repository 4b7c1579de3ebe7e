import asyncio
import dataclasses
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt
import pytest
from fastapi.testclient import TestClient

from tubely.api import deps
from tubely.core.config import get_settings
from tubely.core.db import Base, create_engine
from tubely.core.storage import ObjectStore, ObjectStoreError, PresignedURL, StorageLocation
from tubely.main import create_app
from tubely.media.faststart import RemuxError, faststart_output_path
from tubely.media.probe import ProbeError
from tubely.services.video_store import VideoRecord, VideoStore, VideoStoreError

TEST_BUCKET = "tubely-test"
JWT_SECRET = "test-secret"


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default Tubely environment bootstrap fixture for tests that manage their own env",
    )


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()
        return
    db_path = tmp_path / "tubely_test.db"

    monkeypatch.setenv("TUBELY_ENV", "test")
    monkeypatch.setenv("TUBELY_LOG_LEVEL", "debug")
    monkeypatch.setenv("TUBELY_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("TUBELY_OBJECT_STORE_BACKEND", "local")
    monkeypatch.setenv("TUBELY_S3_BUCKET", TEST_BUCKET)
    monkeypatch.setenv("TUBELY_LOCAL_STORE_ROOT", str(tmp_path / "objects"))
    monkeypatch.setenv("TUBELY_ASSETS_ROOT", str(tmp_path / "assets"))
    monkeypatch.setenv("TUBELY_UPLOAD_TMP_DIR", str(tmp_path / "scratch"))
    monkeypatch.setenv("TUBELY_PUBLIC_BASE_URL", "http://testserver")
    monkeypatch.setenv("TUBELY_JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("TUBELY_JWT_ISSUER", "tubely-test")
    monkeypatch.setenv("TUBELY_JWT_AUDIENCE", "tubely")

    get_settings.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_setup())

    yield

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_settings.cache_clear()


class FakeToolchain:
    """Stands in for ffprobe/ffmpeg; remux writes a real sibling file."""

    def __init__(self, ratio: str = "16:9"):
        self.ratio = ratio
        self.fail_probe = False
        self.fail_remux = False
        self.probed: list[Path] = []
        self.remuxed: list[Path] = []

    def probe(self, path: Path) -> str:
        self.probed.append(path)
        if self.fail_probe:
            raise ProbeError("ffprobe exited with status 1: invalid data")
        return self.ratio

    def remux(self, path: Path) -> Path:
        self.remuxed.append(path)
        if self.fail_remux:
            raise RemuxError("ffmpeg exited with status 1: moov atom not found")
        output = faststart_output_path(path)
        output.write_bytes(b"faststart:" + path.read_bytes())
        return output


class FakeObjectStore(ObjectStore):
    def __init__(self, bucket: str = TEST_BUCKET):
        self.bucket = bucket
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.put_calls = 0
        self.fail_puts = False
        self.put_delay_s = 0.0
        self.ack_delay_s = 0.0
        self.deleted: list[str] = []
        self.presigned: list[tuple[StorageLocation, int]] = []

    def put_object(self, location, body, *, content_type):
        self.put_calls += 1
        # put_delay_s stalls before the body is sent, ack_delay_s after it.
        if self.put_delay_s:
            time.sleep(self.put_delay_s)
        payload = body.read()
        if self.ack_delay_s:
            time.sleep(self.ack_delay_s)
        if self.fail_puts:
            raise ObjectStoreError("AccessDenied")
        self.objects[location.key] = (payload, content_type)

    def delete_object(self, location):
        self.deleted.append(location.key)
        self.objects.pop(location.key, None)

    def exists(self, location):
        return location.key in self.objects

    def presign_get(self, location, *, expires_s):
        self.presigned.append((location, expires_s))
        return PresignedURL(
            url=f"https://{location.bucket}.s3.test/{location.key}?X-Amz-Expires={expires_s}",
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_s),
        )


class InMemoryVideoStore(VideoStore):
    def __init__(self):
        self.records: dict[str, VideoRecord] = {}
        self.fail_updates = False

    async def get(self, video_id):
        record = self.records.get(video_id)
        return dataclasses.replace(record) if record else None

    async def set_video_url(self, video_id, video_url):
        return self._set(video_id, video_url=video_url)

    async def set_thumbnail_url(self, video_id, thumbnail_url):
        return self._set(video_id, thumbnail_url=thumbnail_url)

    def _set(self, video_id, **values):
        if self.fail_updates:
            raise VideoStoreError("database is locked")
        if video_id not in self.records:
            raise VideoStoreError(f"video {video_id} does not exist")
        updated = dataclasses.replace(self.records[video_id], **values)
        self.records[video_id] = updated
        return dataclasses.replace(updated)

    async def create(self, record):
        self.records[record.id] = dataclasses.replace(record)
        return record

    async def list_for_user(self, user_id):
        return [record for record in self.records.values() if record.user_id == user_id]


@pytest.fixture()
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture()
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture()
def video_store() -> InMemoryVideoStore:
    return InMemoryVideoStore()


@pytest.fixture()
def scratch_dir(configure_environment) -> Path:
    return Path(get_settings().upload_tmp_dir)


@pytest.fixture()
def client(configure_environment, toolchain, object_store):
    app = create_app()
    app.dependency_overrides[deps.get_toolchain] = lambda: toolchain
    app.dependency_overrides[deps.get_object_store] = lambda: object_store
    with TestClient(app) as client:
        yield client


def build_token(user_id: str, *, scopes: list[str] | None = None) -> str:
    payload: dict[str, object] = {"sub": user_id, "iss": "tubely-test", "aud": "tubely"}
    if scopes:
        payload["scopes"] = scopes
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


@pytest.fixture()
def user_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token('user-1')}"}


@pytest.fixture()
def other_user_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token('user-2')}"}


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token('admin-1', scopes=['admin'])}"}


def leftovers(directory: Path) -> list[Path]:
    if not directory.exists():
        return []
    return sorted(directory.iterdir())


@pytest.fixture()
def scratch_files(scratch_dir):
    return lambda: leftovers(scratch_dir)
