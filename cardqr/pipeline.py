"""The rendering pipeline: resolve -> render -> [composite] -> [frame] -> publish.

Steps run strictly in order on the calling thread. A run for a given card
holds that card's lock for its whole duration; cards never share state.
"""

import io
import threading
import time
from contextlib import contextmanager
from typing import Callable

from PIL import Image

from cardqr.composite import composite_background
from cardqr.config import get_settings
from cardqr.errors import PipelineTimeout, RegenerationInProgress, RenderError
from cardqr.frame import apply_frame
from cardqr.logging import audit, get_logger, trace
from cardqr.publish import CURRENT_ARTIFACT_FORMAT, ArtifactPublisher, ArtifactRef
from cardqr.render import encode_png, render
from cardqr.style import StyleSpec, resolve

log = get_logger("pipeline")


class _Deadline:
    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires = time.monotonic() + seconds if seconds > 0 else None

    def check(self, step: str) -> None:
        if self.expires is not None and time.monotonic() > self.expires:
            raise PipelineTimeout(f"QR generation exceeded {self.seconds:.0f}s (before {step})")


class QRPipeline:
    """Builds code images and publishes them as artifacts."""

    def __init__(self, publisher: ArtifactPublisher, ecc: str | None = None, timeout: float | None = None):
        settings = get_settings()
        self.publisher = publisher
        self.ecc = (ecc or settings.ecc).upper()
        self.timeout = settings.pipeline_timeout if timeout is None else timeout
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def record_lock(self, record_id: str):
        """Per-card critical section; a concurrent second run fails fast."""
        with self._guard:
            lock = self._locks.setdefault(record_id, threading.Lock())
        if not lock.acquire(blocking=False):
            audit("pipeline.busy", logger=log, record=record_id)
            raise RegenerationInProgress(f"a QR code is already being generated for card {record_id}")
        try:
            yield
        finally:
            lock.release()

    def _build(self, payload: str, style: StyleSpec, deadline: _Deadline) -> bytes:
        raster = render(payload, style, ecc=self.ecc)

        if style.background_logo:
            deadline.check("composite")
            raster = composite_background(
                raster,
                logo_url=style.logo.url,
                size=style.size,
                opacity=style.logo.opacity,
                backdrop_color=style.light_color,
            )

        if style.frame.style != "none":
            deadline.check("frame")
            try:
                framed = apply_frame(Image.open(io.BytesIO(raster)), style.frame, fill_color=style.light_color)
            except (OSError, ValueError) as exc:
                raise RenderError(f"framing failed: {exc}") from exc
            raster = encode_png(framed)
        return raster

    @trace
    def build(self, payload: str, raw_style=None) -> bytes:
        """Final image bytes without publishing (live preview, downloads)."""
        return self._build(payload, resolve(raw_style), _Deadline(self.timeout))

    @trace
    def generate(
        self,
        record_id: str,
        owner_id: str,
        slug: str,
        payload: str,
        raw_style=None,
        cancel: threading.Event | None = None,
        commit: Callable[[ArtifactRef], object] | None = None,
    ) -> tuple[ArtifactRef, bytes] | None:
        """Build and publish a new artifact for one card.

        *commit* is called with the new reference while the card's lock is
        still held, so the record write belongs to the same critical section
        as the upload. Returns the artifact reference and the published
        bytes, or None when *cancel* was set before the commit.
        """
        with self.record_lock(record_id):
            deadline = _Deadline(self.timeout)
            style = resolve(raw_style)
            raster = self._build(payload, style, deadline)

            deadline.check("publish")
            if cancel is not None and cancel.is_set():
                audit("pipeline.cancelled", logger=log, record=record_id, stage="before_publish")
                return None

            url = self.publisher.publish(raster, owner_id, slug)
            artifact = ArtifactRef(url=url, format_version=CURRENT_ARTIFACT_FORMAT, payload=payload)

            if cancel is not None and cancel.is_set():
                audit("pipeline.cancelled", logger=log, record=record_id, stage="before_commit", orphan=url)
                return None
            if commit is not None:
                commit(artifact)

        audit("pipeline.generated", logger=log, record=record_id, url=url,
              background=style.background_logo, framed=style.frame.style != "none")
        return artifact, raster
