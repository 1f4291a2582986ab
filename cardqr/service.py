"""Card-level QR operations: the call site that owns triggers, records and user notices.

Pipeline failures never touch the card's other fields and never clear a
working artifact URL; they come back as a transient notice for the user.
"""

import threading
from dataclasses import dataclass

from cardqr.config import get_settings
from cardqr.errors import CardQRError, PublishError
from cardqr.logging import audit, get_logger, trace
from cardqr.pipeline import QRPipeline
from cardqr.policy import CardState, Trigger, should_regenerate
from cardqr.publish import ArtifactRef
from cardqr.records import CardRecord, JsonRecordStore

log = get_logger("service")

_MESSAGES = {
    "render": "Failed to generate QR code. Please try again.",
    "timeout": "QR code generation took too long. Please try again.",
    "logo": "Could not load the background logo for the QR code.",
    "publish": "Could not save the QR code image. Your previous QR code is unchanged.",
    "no_payload": "Card must have a share URL to generate a QR code.",
    "busy": "A QR code is already being generated for this card.",
}


@dataclass(frozen=True)
class Notice:
    """A transient user-facing message (toast)."""

    level: str
    message: str
    kind: str | None = None


@dataclass(frozen=True)
class Outcome:
    card: CardRecord | None
    regenerated: bool = False
    image: bytes | None = None
    notice: Notice | None = None

    @property
    def ok(self) -> bool:
        return self.notice is None or self.notice.level != "error"


def _notice_for(exc: CardQRError) -> Notice:
    return Notice(level="error", message=_MESSAGES.get(exc.kind, str(exc)), kind=exc.kind)


class CardQRService:
    """Save / publish / regenerate / download / preview for cards."""

    def __init__(self, records: JsonRecordStore, pipeline: QRPipeline, card_base_url: str | None = None):
        self.records = records
        self.pipeline = pipeline
        self.card_base_url = (card_base_url or get_settings().card_base_url).rstrip("/")

    def share_url_for(self, card: CardRecord) -> str:
        return f"{self.card_base_url}/{card.slug}"

    def _commit(self, card_id: str, artifact: ArtifactRef, written: list) -> None:
        """Store the new reference on the card; runs under the card's pipeline lock."""
        try:
            written.append(self.records.update_artifact_url(card_id, artifact))
        except OSError as exc:
            raise PublishError(f"could not record {artifact.url} on card {card_id}: {exc}") from exc

    def _run(self, card: CardRecord, trigger: Trigger, cancel: threading.Event | None) -> Outcome:
        """Ask the policy, run the pipeline, store the new URL. Errors become notices."""
        state = CardState(payload=card.share_url, published=card.is_published, artifact=card.artifact)
        written: list[CardRecord] = []
        try:
            if not should_regenerate(state, trigger):
                return Outcome(card=card)
            result = self.pipeline.generate(
                record_id=card.id,
                owner_id=card.owner_id,
                slug=card.slug,
                payload=card.share_url,
                raw_style=card.qr_style,
                cancel=cancel,
                commit=lambda artifact: self._commit(card.id, artifact, written),
            )
        except CardQRError as exc:
            log.warning("QR %s failed for card %s: %s", trigger.value, card.id, exc)
            audit("service.qr_failed", logger=log, card=card.id, trigger=trigger.value,
                  kind=exc.kind, error=str(exc))
            return Outcome(card=card, notice=_notice_for(exc))

        if result is None:
            # cancelled: leave the card exactly as it was
            return Outcome(card=card)

        _, raster = result
        return Outcome(card=written[-1], regenerated=True, image=raster,
                       notice=Notice(level="success", message="QR code regenerated successfully!"))

    @trace
    def save(self, card_id: str, changes: dict | None = None, cancel: threading.Event | None = None) -> Outcome:
        """Persist editor changes (style, share URL), then apply the save trigger.

        Only ``theme`` and ``share_url`` are editable here; the theme's
        ``qr`` section replaces the stored one wholesale.
        """
        changes = changes or {}
        card = self.records.get(card_id)
        updates = {}
        if "theme" in changes and isinstance(changes["theme"], dict):
            updates["theme"] = {**card.theme, **changes["theme"]}
        if "share_url" in changes:
            updates["share_url"] = changes["share_url"] or None
        if updates:
            card = self.records.update(card_id, **updates)
        return self._run(card, Trigger.SAVE, cancel)

    @trace
    def publish(self, card_id: str, published: bool = True, cancel: threading.Event | None = None) -> Outcome:
        """Change the published flag; going live may build the first code."""
        card = self.records.get(card_id)
        was_published = card.is_published
        updates = {"is_published": published}
        if published and not card.share_url:
            updates["share_url"] = self.share_url_for(card)
        card = self.records.update(card_id, **updates)
        audit("service.publish_state", logger=log, card=card_id, published=published)

        if not published:
            return Outcome(card=card)
        trigger = Trigger.SAVE if was_published else Trigger.PUBLISH
        return self._run(card, trigger, cancel)

    @trace
    def regenerate(self, card_id: str, cancel: threading.Event | None = None) -> Outcome:
        """User asked for a fresh code (the regenerate / download button)."""
        return self._run(self.records.get(card_id), Trigger.EXPLICIT_REQUEST, cancel)

    def download_name(self, card_id: str) -> str:
        return f"{self.records.get(card_id).slug}-qr.png"

    @trace
    def preview(self, payload: str, raw_style=None) -> Outcome:
        """Render without publishing, for the live preview."""
        try:
            image = self.pipeline.build(payload, raw_style)
        except CardQRError as exc:
            log.warning("QR preview failed: %s", exc)
            return Outcome(card=None, notice=_notice_for(exc))
        return Outcome(card=None, image=image)
