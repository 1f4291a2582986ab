"""Artifact publishing: persist the final PNG under a per-owner, time-stamped key."""

import re
import time
from dataclasses import dataclass

from cardqr.errors import PublishError
from cardqr.logging import audit, get_logger, trace
from cardqr.storage import ObjectStore, StorageError

log = get_logger("publish")

# Bumped whenever the rendering pipeline changes in a way that makes older
# stored codes non-canonical. Records carry the version they were built with.
CURRENT_ARTIFACT_FORMAT = 2

_SEGMENT_RE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class ArtifactRef:
    """What the owning card stores about its latest code image."""

    url: str
    format_version: int | None = None
    payload: str | None = None


def _segment(value: str, what: str) -> str:
    cleaned = _SEGMENT_RE.sub("-", str(value)).strip(".-")
    if not cleaned:
        raise PublishError(f"{what} {value!r} is not usable in a storage key")
    return cleaned


def artifact_key(owner_id: str, slug: str, timestamp_ms: int) -> str:
    """``{owner}/{slug}-qr-{timestamp}.png``"""
    return f"{_segment(owner_id, 'owner id')}/{_segment(slug, 'slug')}-qr-{timestamp_ms}.png"


class ArtifactPublisher:
    """Uploads rendered codes and returns their public URLs.

    Every call derives a fresh key from the current time, so republishing
    never overwrites an earlier artifact. Superseded artifacts are left in
    the bucket.
    """

    def __init__(self, store: ObjectStore, clock=time.time):
        self.store = store
        self.clock = clock

    @trace
    def publish(self, raster: bytes, owner_id: str, slug: str) -> str:
        """Store *raster* and return its public URL.

        Raises:
            PublishError: the bytes are empty or the store rejected the upload.
        """
        if not raster:
            raise PublishError("refusing to publish an empty artifact")

        key = artifact_key(owner_id, slug, int(self.clock() * 1000))
        try:
            self.store.upload(key, raster, overwrite=True)
            url = self.store.public_url(key)
        except StorageError as exc:
            raise PublishError(f"upload of {key} failed: {exc}") from exc

        audit("artifact.published", logger=log, key=key, bytes=len(raster), url=url)
        return url
