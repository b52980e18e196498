import io
import json
import shutil
import subprocess
import wave

import pytest
from botocore.exceptions import ClientError
from fastapi import UploadFile

from app import tasks
from app.errors import DependencyError
from app.media import MediaService


class RecordingS3:
    def __init__(self, fail=False):
        self.fail = fail
        self.uploads = []
        self.deleted = []

    def upload_file(self, filename, bucket, key, ExtraArgs=None):
        if self.fail:
            raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")
        with open(filename, "rb") as fh:
            self.uploads.append((bucket, key, fh.read()))

    def delete_object(self, Bucket, Key):
        self.deleted.append((Bucket, Key))


def _service(tmp_path, client):
    return MediaService(
        bucket="media-bucket", region="us-west-1",
        base_url="https://media.example.com/", tmp_dir=str(tmp_path), client=client,
    )


def _upload(name="clip.mp4", payload=b"frames"):
    return UploadFile(file=io.BytesIO(payload), filename=name)


@pytest.mark.asyncio
async def test_upload_removes_temp_file_on_success(tmp_path):
    s3 = RecordingS3()
    service = _service(tmp_path, s3)

    asset = await service.upload(_upload(), "videos")

    assert asset.key.startswith("videos/")
    assert asset.key.endswith(".mp4")
    assert asset.url == f"https://media.example.com/{asset.key}"
    assert s3.uploads == [("media-bucket", asset.key, b"frames")]
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_upload_removes_temp_file_on_failure(tmp_path):
    service = _service(tmp_path, RecordingS3(fail=True))

    with pytest.raises(DependencyError) as exc:
        await service.upload(_upload("cover.png"), "covers")

    assert exc.value.status_code == 502
    assert list(tmp_path.iterdir()) == []


def test_key_from_url_only_accepts_own_objects(tmp_path):
    service = _service(tmp_path, RecordingS3())
    assert service.key_from_url("https://media.example.com/avatars/a.png") == "avatars/a.png"
    assert service.key_from_url("https://elsewhere.example.com/avatars/a.png") is None
    assert service.key_from_url("") is None


def test_discard_queues_remote_deletion(tmp_path, monkeypatch):
    queued = []
    monkeypatch.setattr(tasks.delete_remote_media, "delay", lambda key: queued.append(key))
    service = _service(tmp_path, RecordingS3())

    service.discard("https://media.example.com/thumbnails/t.jpg")
    service.discard("https://elsewhere.example.com/thumbnails/t.jpg")
    service.discard(None)

    assert queued == ["thumbnails/t.jpg"]


def test_delete_task_removes_object(monkeypatch, tmp_path):
    s3 = RecordingS3()
    monkeypatch.setattr("app.media.get_media_service", lambda: _service(tmp_path, s3))

    result = tasks.delete_remote_media.run("videos/old.mp4")

    assert result == {"key": "videos/old.mp4", "status": "deleted"}
    assert s3.deleted == [("media-bucket", "videos/old.mp4")]


def _wav_bytes(seconds=0.5, rate=8000):
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as clip:
        clip.setnchannels(1)
        clip.setsampwidth(2)
        clip.setframerate(rate)
        clip.writeframes(b"\x00\x00" * int(seconds * rate))
    return buffer.getvalue()


@pytest.mark.asyncio
@pytest.mark.skipif(shutil.which("ffprobe") is None, reason="ffprobe is not installed")
async def test_upload_measures_real_clip_duration(tmp_path):
    s3 = RecordingS3()
    service = _service(tmp_path, s3)

    asset = await service.upload(_upload("clip.wav", _wav_bytes(0.5)), "videos", measure_duration=True)

    assert asset.duration is not None
    assert asset.duration == pytest.approx(0.5, abs=0.05)
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_upload_reads_duration_from_ffprobe_output(tmp_path, monkeypatch):
    seen = []

    def fake_run(command, **kwargs):
        path = command[-1]
        with open(path, "rb") as fh:
            seen.append(fh.read())
        output = json.dumps({"format": {"duration": "93.480000"}})
        return subprocess.CompletedProcess(command, 0, stdout=output, stderr="")

    monkeypatch.setattr("app.media.subprocess.run", fake_run)
    service = _service(tmp_path, RecordingS3())

    asset = await service.upload(_upload(payload=b"frames"), "videos", measure_duration=True)

    assert asset.duration == 93.48
    assert seen == [b"frames"]
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_unreadable_media_has_no_duration(tmp_path, monkeypatch):
    def missing_binary(command, **kwargs):
        raise FileNotFoundError(command[0])

    monkeypatch.setattr("app.media.subprocess.run", missing_binary)
    service = _service(tmp_path, RecordingS3())

    asset = await service.upload(_upload(), "videos", measure_duration=True)
    assert asset.duration is None

    monkeypatch.setattr(
        "app.media.subprocess.run",
        lambda command, **kwargs: subprocess.CompletedProcess(command, 1, stdout="", stderr="bad data"),
    )
    asset = await service.upload(_upload(), "videos", measure_duration=True)
    assert asset.duration is None


@pytest.mark.asyncio
async def test_images_are_not_measured(tmp_path, monkeypatch):
    def unexpected(command, **kwargs):
        raise AssertionError("ffprobe should not run for thumbnails")

    monkeypatch.setattr("app.media.subprocess.run", unexpected)
    service = _service(tmp_path, RecordingS3())

    asset = await service.upload(_upload("thumb.jpg"), "thumbnails")
    assert asset.duration is None
