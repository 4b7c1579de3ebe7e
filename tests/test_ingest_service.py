from __future__ import annotations

import asyncio
import dataclasses
import io
import re
import tempfile

import pytest

from tubely.core.config import get_settings
from tubely.core.errors import (
    BadRequest,
    Forbidden,
    NotFound,
    PersistError,
    PublishError,
    UploadIOError,
    UploadTooLarge,
)
from tubely.core.storage import StorageLocation
from tubely.services import ingest_service
from tubely.services.ingest_service import VideoIngestService
from tubely.services.uploads import IncomingFile
from tubely.services.video_store import VideoRecord

PAYLOAD = b"ftyp....mdat....moov...."
VIDEO_ID = "5f0c9d1e-7a53-4a7e-9d0b-0c7f2b9a1e11"


@pytest.fixture()
def owned_video(video_store):
    record = VideoRecord(id=VIDEO_ID, user_id="user-1", title="Boots", description="Unboxing")
    video_store.records[record.id] = record
    return record


def _service(video_store, object_store, toolchain, **overrides) -> VideoIngestService:
    settings = get_settings()
    if overrides:
        settings = settings.model_copy(update=overrides)
    return VideoIngestService(settings, video_store, object_store, toolchain)


def _upload(content_type: str | None = "video/mp4", payload: bytes = PAYLOAD) -> IncomingFile:
    return IncomingFile(file=io.BytesIO(payload), content_type=content_type, filename="boots.mp4")


def _run(service: VideoIngestService, upload: IncomingFile | None, *, user_id: str = "user-1", video_id: str = VIDEO_ID):
    return asyncio.run(service.upload_video(video_id=video_id, user_id=user_id, upload=upload))


def test_landscape_upload_is_published_and_signed(owned_video, video_store, object_store, toolchain, scratch_files):
    signed = _run(_service(video_store, object_store, toolchain), _upload())

    assert len(object_store.objects) == 1
    key, (body, content_type) = next(iter(object_store.objects.items()))
    assert re.match(r"^landscape/[A-Za-z0-9_-]{43}\.mp4$", key)
    assert body == b"faststart:" + PAYLOAD
    assert content_type == "video/mp4"

    stored = video_store.records[VIDEO_ID]
    assert stored.video_url == f"tubely-test,{key}"
    assert StorageLocation.decode(stored.video_url) == StorageLocation("tubely-test", key)
    assert stored.title == "Boots"

    assert signed.record.video_url == f"https://tubely-test.s3.test/{key}?X-Amz-Expires=300"
    assert signed.video_url_expires_at is not None
    assert object_store.presigned == [(StorageLocation("tubely-test", key), 300)]
    assert scratch_files() == []


@pytest.mark.parametrize("ratio, prefix", [("9:16", "portrait/"), ("4:3", "other/"), ("", "other/")])
def test_classification_picks_the_key_prefix(owned_video, video_store, object_store, toolchain, ratio, prefix):
    toolchain.ratio = ratio
    _run(_service(video_store, object_store, toolchain), _upload())

    (key,) = object_store.objects
    assert key.startswith(prefix)


def test_probe_sees_the_buffered_upload(owned_video, video_store, object_store, toolchain):
    _run(_service(video_store, object_store, toolchain), _upload())

    (probed,) = toolchain.probed
    assert toolchain.remuxed == [probed]
    assert probed.name.startswith("tubely-upload-")
    assert probed.suffix == ".mp4"


def test_content_type_parameters_are_accepted(owned_video, video_store, object_store, toolchain):
    _run(_service(video_store, object_store, toolchain), _upload('video/mp4; codecs="avc1.42E01E"'))
    assert len(object_store.objects) == 1


@pytest.mark.parametrize("content_type", ["image/png", "video/quicktime", None, "", "mp4"])
def test_wrong_content_type_is_rejected_before_buffering(
    owned_video, video_store, object_store, toolchain, scratch_files, content_type
):
    with pytest.raises(BadRequest):
        _run(_service(video_store, object_store, toolchain), _upload(content_type))

    assert toolchain.probed == []
    assert object_store.put_calls == 0
    assert video_store.records[VIDEO_ID].video_url is None
    assert scratch_files() == []


def test_missing_file_is_rejected(owned_video, video_store, object_store, toolchain):
    with pytest.raises(BadRequest):
        _run(_service(video_store, object_store, toolchain), None)


def test_unknown_video_is_not_found(video_store, object_store, toolchain):
    with pytest.raises(NotFound):
        _run(_service(video_store, object_store, toolchain), _upload())


def test_foreign_video_is_forbidden(owned_video, video_store, object_store, toolchain, scratch_files):
    with pytest.raises(Forbidden):
        _run(_service(video_store, object_store, toolchain), _upload(), user_id="user-2")

    assert object_store.put_calls == 0
    assert scratch_files() == []


def test_oversized_upload_is_rejected_and_cleaned_up(owned_video, video_store, object_store, toolchain, scratch_files):
    service = _service(video_store, object_store, toolchain, max_video_upload_bytes=4)

    with pytest.raises(UploadTooLarge):
        _run(service, _upload())

    assert toolchain.probed == []
    assert scratch_files() == []


def test_probe_failure_stops_before_publishing(owned_video, video_store, object_store, toolchain, scratch_files):
    toolchain.fail_probe = True

    with pytest.raises(UploadIOError):
        _run(_service(video_store, object_store, toolchain), _upload())

    assert toolchain.remuxed == []
    assert object_store.put_calls == 0
    assert video_store.records[VIDEO_ID].video_url is None
    assert scratch_files() == []


def test_remux_failure_stops_before_publishing(owned_video, video_store, object_store, toolchain, scratch_files):
    toolchain.fail_remux = True

    with pytest.raises(UploadIOError):
        _run(_service(video_store, object_store, toolchain), _upload())

    assert object_store.put_calls == 0
    assert scratch_files() == []


def test_rejected_put_is_a_publish_error(owned_video, video_store, object_store, toolchain, scratch_files):
    object_store.fail_puts = True

    with pytest.raises(PublishError):
        _run(_service(video_store, object_store, toolchain), _upload())

    assert video_store.records[VIDEO_ID].video_url is None
    assert scratch_files() == []


def test_put_stalled_past_deadline_is_aborted(owned_video, video_store, object_store, toolchain, scratch_files):
    object_store.put_delay_s = 0.3
    service = _service(video_store, object_store, toolchain, publish_timeout_s=0.05)

    with pytest.raises(PublishError, match="timed out"):
        _run(service, _upload())

    assert object_store.objects == {}
    assert object_store.deleted == []
    assert video_store.records[VIDEO_ID].video_url is None
    assert scratch_files() == []


def test_put_completing_after_deadline_is_withdrawn(owned_video, video_store, object_store, toolchain, scratch_files):
    object_store.ack_delay_s = 0.3
    service = _service(video_store, object_store, toolchain, publish_timeout_s=0.05)

    with pytest.raises(PublishError, match="timed out"):
        _run(service, _upload())

    assert object_store.objects == {}
    (withdrawn,) = object_store.deleted
    assert withdrawn.startswith("landscape/")
    assert video_store.records[VIDEO_ID].video_url is None
    assert scratch_files() == []


def test_persist_failure_leaves_published_object_and_record_unchanged(
    owned_video, video_store, object_store, toolchain, scratch_files
):
    video_store.fail_updates = True

    with pytest.raises(PersistError):
        _run(_service(video_store, object_store, toolchain), _upload())

    (key,) = object_store.objects
    assert object_store.exists(StorageLocation("tubely-test", key))
    assert object_store.deleted == []
    assert video_store.records[VIDEO_ID].video_url is None
    assert object_store.presigned == []
    assert scratch_files() == []


def test_location_update_keeps_a_thumbnail_set_mid_upload(owned_video, video_store, object_store, toolchain, monkeypatch):
    fake_probe = toolchain.probe

    def probe_while_thumbnail_lands(path):
        record = video_store.records[VIDEO_ID]
        video_store.records[VIDEO_ID] = dataclasses.replace(record, thumbnail_url="http://testserver/assets/new.png")
        return fake_probe(path)

    monkeypatch.setattr(toolchain, "probe", probe_while_thumbnail_lands)

    signed = _run(_service(video_store, object_store, toolchain), _upload())

    stored = video_store.records[VIDEO_ID]
    assert stored.thumbnail_url == "http://testserver/assets/new.png"
    assert stored.video_url.startswith("tubely-test,landscape/")
    assert signed.record.thumbnail_url == "http://testserver/assets/new.png"


class _SeekFailingHandle:
    """Scratch handle whose rewind either raises or lands somewhere other than 0."""

    def __init__(self, handle, offset):
        self._handle = handle
        self._offset = offset

    def __getattr__(self, name):
        return getattr(self._handle, name)

    def __enter__(self):
        self._handle.__enter__()
        return self

    def __exit__(self, *exc_info):
        return self._handle.__exit__(*exc_info)

    def seek(self, *args):
        if self._offset is None:
            raise OSError(29, "Illegal seek")
        return self._offset


@pytest.mark.parametrize("offset", [None, 7])
def test_failed_rewind_is_an_io_error(owned_video, video_store, object_store, toolchain, scratch_files, monkeypatch, offset):
    real_named_temporary_file = tempfile.NamedTemporaryFile

    def named_temporary_file(*args, **kwargs):
        return _SeekFailingHandle(real_named_temporary_file(*args, **kwargs), offset)

    monkeypatch.setattr(ingest_service.tempfile, "NamedTemporaryFile", named_temporary_file)

    with pytest.raises(UploadIOError, match="seeking"):
        _run(_service(video_store, object_store, toolchain), _upload())

    assert len(toolchain.probed) == 1
    assert toolchain.remuxed == []
    assert object_store.put_calls == 0
    assert scratch_files() == []


def test_second_upload_gets_a_new_key(owned_video, video_store, object_store, toolchain):
    service = _service(video_store, object_store, toolchain)
    _run(service, _upload())
    first = video_store.records[VIDEO_ID].video_url
    _run(service, _upload())
    second = video_store.records[VIDEO_ID].video_url

    assert first != second
    assert len(object_store.objects) == 2
