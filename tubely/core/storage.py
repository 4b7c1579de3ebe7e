from __future__ import annotations

import shutil
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, BinaryIO

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .logging import get_logger

_SEPARATOR = ","


class ObjectStoreError(RuntimeError):
    """Raised when the object store rejects a write or cannot sign a request."""


class UploadAborted(ObjectStoreError):
    """The body of an in-flight write was cancelled by its owner."""


class AbortableBody:
    """File-like view of an upload body that stops yielding data once aborted.

    ``abort`` may be called from any thread. The next ``read`` raises
    ``UploadAborted``, which fails the transfer that is consuming the body.
    """

    def __init__(self, body: BinaryIO):
        self._body = body
        self._aborted = threading.Event()

    def abort(self) -> None:
        self._aborted.set()

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def read(self, size: int = -1) -> bytes:
        if self._aborted.is_set():
            raise UploadAborted("upload cancelled")
        return self._body.read(size)

    def seek(self, offset: int, whence: int = 0) -> int:
        return self._body.seek(offset, whence)

    def tell(self) -> int:
        return self._body.tell()

    def seekable(self) -> bool:
        return True

    def readable(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class StorageLocation:
    """Bucket and key of one stored object.

    ``encode``/``decode`` are the only conversion to and from the single text
    column the metadata store keeps, and they round-trip exactly.
    """

    bucket: str
    key: str

    def __post_init__(self) -> None:
        for label, value in (("bucket", self.bucket), ("key", self.key)):
            if not value:
                raise ValueError(f"storage location {label} must not be empty")
            if _SEPARATOR in value:
                raise ValueError(f"storage location {label} must not contain {_SEPARATOR!r}")

    def encode(self) -> str:
        return f"{self.bucket}{_SEPARATOR}{self.key}"

    @classmethod
    def decode(cls, raw: str) -> "StorageLocation":
        parts = raw.split(_SEPARATOR)
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"not an encoded storage location: {raw!r}")
        return cls(bucket=parts[0], key=parts[1])


@dataclass(slots=True)
class PresignedURL:
    url: str
    method: str = "GET"
    expires_at: datetime | None = None


def _expiry(expires_s: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=expires_s)


class ObjectStore(ABC):
    bucket: str

    def location_for(self, key: str) -> StorageLocation:
        return StorageLocation(bucket=self.bucket, key=key)

    @abstractmethod
    def put_object(self, location: StorageLocation, body: BinaryIO | AbortableBody, *, content_type: str) -> None: ...

    @abstractmethod
    def delete_object(self, location: StorageLocation) -> None: ...

    @abstractmethod
    def exists(self, location: StorageLocation) -> bool: ...

    @abstractmethod
    def presign_get(self, location: StorageLocation, *, expires_s: int) -> PresignedURL: ...


class LocalObjectStore(ObjectStore):
    """Filesystem-backed object store suitable for development."""

    def __init__(self, base_path: Path, bucket: str):
        self.base_path = base_path.resolve()
        self.bucket = bucket
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, location: StorageLocation) -> Path:
        path = (self.base_path / location.bucket / location.key).resolve()
        if self.base_path not in path.parents:
            raise ObjectStoreError(f"storage key escapes the store root: {location.key}")
        return path

    def put_object(self, location: StorageLocation, body: BinaryIO | AbortableBody, *, content_type: str) -> None:
        path = self._resolve(location)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as handle:
                shutil.copyfileobj(body, handle)
        except UploadAborted:
            path.unlink(missing_ok=True)
            raise
        except OSError as exc:
            path.unlink(missing_ok=True)
            raise ObjectStoreError(str(exc)) from exc

    def delete_object(self, location: StorageLocation) -> None:
        try:
            self._resolve(location).unlink(missing_ok=True)
        except OSError as exc:
            raise ObjectStoreError(str(exc)) from exc

    def exists(self, location: StorageLocation) -> bool:
        return self._resolve(location).is_file()

    def presign_get(self, location: StorageLocation, *, expires_s: int) -> PresignedURL:
        return PresignedURL(url=self._resolve(location).as_uri(), expires_at=_expiry(expires_s))


class S3ObjectStore(ObjectStore):
    """S3 (or S3-compatible) object store backed by boto3."""

    def __init__(
        self,
        bucket: str,
        *,
        region_name: str | None = None,
        endpoint_url: str | None = None,
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
        timeout_s: float = 30.0,
        client: Any | None = None,
    ) -> None:
        self.bucket = bucket
        self.logger = get_logger(component="s3_object_store", bucket=bucket)
        if client is not None:
            self.client = client
            return

        # Single attempt; socket timeouts never exceed the publish deadline.
        cfg = BotoConfig(
            signature_version="s3v4",
            retries={"max_attempts": 1, "mode": "standard"},
            connect_timeout=min(5.0, timeout_s),
            read_timeout=timeout_s,
        )
        client_kwargs: dict[str, Any] = {"config": cfg}
        if region_name:
            client_kwargs["region_name"] = region_name
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        if aws_access_key_id and aws_secret_access_key:
            client_kwargs["aws_access_key_id"] = aws_access_key_id
            client_kwargs["aws_secret_access_key"] = aws_secret_access_key
        self.client = boto3.client("s3", **client_kwargs)

    def put_object(self, location: StorageLocation, body: BinaryIO | AbortableBody, *, content_type: str) -> None:
        try:
            self.client.put_object(
                Bucket=location.bucket,
                Key=location.key,
                Body=body,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            self.logger.warning("s3_put_failed", key=location.key, error=str(exc))
            raise ObjectStoreError(str(exc)) from exc

    def delete_object(self, location: StorageLocation) -> None:
        try:
            self.client.delete_object(Bucket=location.bucket, Key=location.key)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(str(exc)) from exc

    def exists(self, location: StorageLocation) -> bool:
        try:
            self.client.head_object(Bucket=location.bucket, Key=location.key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise ObjectStoreError(str(exc)) from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(str(exc)) from exc
        return True

    def presign_get(self, location: StorageLocation, *, expires_s: int) -> PresignedURL:
        # Signing happens locally against the credentials; no request is sent.
        try:
            url = self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": location.bucket, "Key": location.key},
                ExpiresIn=expires_s,
            )
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(str(exc)) from exc
        return PresignedURL(url=url, expires_at=_expiry(expires_s))


def get_object_store(settings: Settings) -> ObjectStore:
    if settings.object_store_backend == "local":
        return LocalObjectStore(base_path=Path(settings.local_store_root), bucket=settings.s3_bucket)
    if settings.object_store_backend == "s3":
        return S3ObjectStore(
            settings.s3_bucket,
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.secrets.aws_access_key_id,
            aws_secret_access_key=settings.secrets.aws_secret_access_key,
            timeout_s=settings.publish_timeout_s,
        )
    raise ValueError(f"Unsupported object store backend: {settings.object_store_backend}")


__all__ = [
    "ObjectStore",
    "ObjectStoreError",
    "UploadAborted",
    "AbortableBody",
    "LocalObjectStore",
    "S3ObjectStore",
    "StorageLocation",
    "PresignedURL",
    "get_object_store",
]
