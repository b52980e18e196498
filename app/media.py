# app/media.py
"""
Media uploads.

Incoming files are spooled to ``settings.upload_tmp_dir`` and pushed to S3 from
the thread pool. Playable media is measured with ffprobe while the local copy
still exists. The temporary copy is removed whether the upload succeeds or
fails. Replaced or orphaned remote objects are deleted by a Celery task.
"""
import json
import logging
import os
import shutil
import subprocess
import uuid
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool
from kombu.exceptions import OperationalError

from app.config import settings
from app.errors import DependencyError

logger = logging.getLogger(__name__)


@dataclass
class MediaAsset:
    url: str
    key: str
    duration: Optional[float] = None


class MediaService:
    def __init__(
        self, bucket: str, region: str, base_url: str, tmp_dir: str,
        client=None, ffprobe: str = "ffprobe",
    ):
        self.bucket = bucket
        self.region = region
        self.base_url = base_url.rstrip("/")
        self.tmp_dir = Path(tmp_dir)
        self._client = client
        self.ffprobe = ffprobe

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    def _spool(self, upload: UploadFile) -> Path:
        self.tmp_dir.mkdir(parents=True, exist_ok=True)
        suffix = os.path.splitext(upload.filename or "")[1]
        path = self.tmp_dir / f"{uuid.uuid4().hex}{suffix}"
        with open(path, "wb") as out:
            shutil.copyfileobj(upload.file, out)
        return path

    def _remove_temp(self, path: Path):
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove temp file %s: %s", path, exc)

    def _put(self, path: Path, key: str, content_type: Optional[str]):
        extra = {"ContentType": content_type} if content_type else None
        self.client.upload_file(str(path), self.bucket, key, ExtraArgs=extra)

    def _read_duration(self, path: Path) -> Optional[float]:
        """Container duration in seconds, or None when ffprobe cannot read the file."""
        try:
            result = subprocess.run(
                [self.ffprobe, "-v", "quiet", "-print_format", "json", "-show_format", str(path)],
                capture_output=True, text=True, timeout=30,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("ffprobe unavailable for %s: %s", path.name, exc)
            return None
        if result.returncode != 0:
            logger.warning("ffprobe could not read %s", path.name)
            return None
        try:
            duration = json.loads(result.stdout or "{}").get("format", {}).get("duration")
            return round(float(duration), 3) if duration is not None else None
        except (TypeError, ValueError):
            logger.warning("ffprobe returned no usable duration for %s", path.name)
            return None

    async def upload(self, upload: UploadFile, folder: str, measure_duration: bool = False) -> MediaAsset:
        path = await run_in_threadpool(self._spool, upload)
        key = f"{folder}/{path.name}"
        duration = None
        try:
            await run_in_threadpool(self._put, path, key, upload.content_type)
            if measure_duration:
                duration = await run_in_threadpool(self._read_duration, path)
        except (BotoCoreError, ClientError) as exc:
            logger.error("Upload of %s to s3://%s/%s failed: %s", upload.filename, self.bucket, key, exc)
            raise DependencyError(f"Error uploading {folder} file") from exc
        finally:
            self._remove_temp(path)
        logger.info("Uploaded %s to s3://%s/%s", upload.filename, self.bucket, key)
        return MediaAsset(url=f"{self.base_url}/{key}", key=key, duration=duration)

    def key_from_url(self, url: Optional[str]) -> Optional[str]:
        prefix = f"{self.base_url}/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None

    def delete(self, key: str):
        self.client.delete_object(Bucket=self.bucket, Key=key)

    def discard(self, url: Optional[str]):
        """Queue deletion of a remote object this service uploaded."""
        key = self.key_from_url(url)
        if not key:
            return
        from app.tasks import delete_remote_media
        try:
            delete_remote_media.delay(key)
        except OperationalError as exc:
            logger.warning("Could not queue deletion of %s: %s", key, exc)


@lru_cache
def get_media_service() -> MediaService:
    return MediaService(
        bucket=settings.s3_bucket,
        region=settings.s3_region,
        base_url=settings.media_base_url,
        tmp_dir=settings.upload_tmp_dir,
        ffprobe=settings.ffprobe_path,
    )
