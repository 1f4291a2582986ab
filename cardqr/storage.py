"""Object stores for generated codes: local directory or S3-compatible bucket."""

import threading
from pathlib import Path
from typing import Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cardqr.config import Settings, get_settings
from cardqr.logging import audit, get_logger

log = get_logger("storage")

PUBLIC_READ_ACL = {"ACL": "public-read", "ContentType": "image/png"}


class StorageError(Exception):
    """Raised by an object store when a write is rejected or fails."""


class ObjectStore(Protocol):
    def upload(self, path: str, data: bytes, overwrite: bool = True) -> None: ...

    def public_url(self, path: str) -> str: ...


def normalize_key(path: str) -> str:
    """Reject empty, absolute or traversing keys; return the cleaned key."""
    candidate = path.replace("\\", "/").strip("/")
    segments = candidate.split("/")
    for segment in segments:
        if segment in {"", ".", ".."} or ".." in segment:
            raise StorageError(f"invalid key segment {segment!r} in {path!r}")
    return "/".join(segments)


class LocalObjectStore:
    """Filesystem-backed bucket. Public URLs are ``base_url/key``.

    Thread-safe. Suitable for development and tests.
    """

    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self._lock = threading.Lock()

    def upload(self, path: str, data: bytes, overwrite: bool = True) -> None:
        key = normalize_key(path)
        dest = self.root / key
        with self._lock:
            if dest.exists() and not overwrite:
                raise StorageError(f"object {key!r} already exists")
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                dest.write_bytes(data)
            except OSError as exc:
                raise StorageError(f"could not write {key!r}: {exc}") from exc
        audit("storage.put", logger=log, backend="local", key=key, bytes=len(data))

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{normalize_key(path)}"

    def read(self, path: str) -> bytes:
        return (self.root / normalize_key(path)).read_bytes()


class S3ObjectStore:
    """S3-compatible bucket (AWS, Spaces, MinIO) with public-read objects."""

    def __init__(self, bucket: str, base_url: str, endpoint_url: str | None = None,
                 region: str = "us-east-1", client=None):
        self.bucket = bucket
        self.base_url = base_url.rstrip("/")
        if client is None:
            session = boto3.session.Session()
            client = session.client(
                "s3",
                endpoint_url=endpoint_url or None,
                config=Config(region_name=region, retries={"max_attempts": 3, "mode": "standard"}),
            )
        self.client = client

    def _exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise StorageError(f"head {key!r} failed: {exc}") from exc

    def upload(self, path: str, data: bytes, overwrite: bool = True) -> None:
        key = normalize_key(path)
        if not overwrite and self._exists(key):
            raise StorageError(f"object {key!r} already exists")
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, **PUBLIC_READ_ACL)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"put {key!r} failed: {exc}") from exc
        audit("storage.put", logger=log, backend="s3", bucket=self.bucket, key=key, bytes=len(data))

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{normalize_key(path)}"


def get_object_store(settings: Settings | None = None) -> ObjectStore:
    """Build the store selected by ``CARDQR_STORAGE``."""
    settings = settings or get_settings()
    if settings.storage == "s3":
        return S3ObjectStore(
            bucket=settings.s3_bucket,
            base_url=settings.public_base_url,
            endpoint_url=settings.s3_endpoint,
            region=settings.s3_region,
        )
    return LocalObjectStore(settings.storage_root, settings.public_base_url)
