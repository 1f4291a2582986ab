"""Minimal card store: the record-update collaborator the pipeline reports to.

A JSON-file-backed store that keeps just the card fields the QR pipeline
reads and writes. Thread-safe. For production, back it with the real card
database.
"""

import copy
import json
import threading
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path

from cardqr.logging import audit, get_logger, trace
from cardqr.publish import ArtifactRef

log = get_logger("records")


@dataclass(frozen=True)
class CardRecord:
    id: str
    owner_id: str
    slug: str
    share_url: str | None = None
    is_published: bool = False
    theme: dict = field(default_factory=dict)
    qr_code_url: str | None = None
    qr_format_version: int | None = None
    qr_payload: str | None = None

    @property
    def qr_style(self) -> dict:
        style = self.theme.get("qr") if isinstance(self.theme, dict) else None
        return style if isinstance(style, dict) else {}

    @property
    def artifact(self) -> ArtifactRef | None:
        if not self.qr_code_url:
            return None
        return ArtifactRef(url=self.qr_code_url, format_version=self.qr_format_version,
                           payload=self.qr_payload)

    @classmethod
    def from_dict(cls, data: dict) -> "CardRecord":
        known = {f for f in cls.__dataclass_fields__}
        values = {k: v for k, v in data.items() if k in known}
        theme = values.get("theme")
        values["theme"] = copy.deepcopy(theme) if isinstance(theme, dict) else {}
        return cls(**values)


class RecordNotFound(KeyError):
    pass


class JsonRecordStore:
    """Cards keyed by id in a single JSON document."""

    def __init__(self, db_path: str = "cards_db.json"):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._data: dict[str, dict] = {"cards": {}}
        if self.db_path.exists():
            with open(self.db_path) as f:
                self._data = json.load(f)
            log.info("Loaded card store from %s (%d cards)", self.db_path, len(self._data["cards"]))

    def _save(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.db_path, "w") as f:
            json.dump(self._data, f, indent=2)

    def get(self, record_id: str) -> CardRecord:
        with self._lock:
            raw = self._data["cards"].get(record_id)
        if raw is None:
            raise RecordNotFound(record_id)
        return CardRecord.from_dict(raw)

    def put(self, record: CardRecord) -> CardRecord:
        with self._lock:
            self._data["cards"][record.id] = asdict(record)
            self._save()
        return record

    def update(self, record_id: str, **changes) -> CardRecord:
        """Read-modify-write of selected fields under the store lock."""
        with self._lock:
            raw = self._data["cards"].get(record_id)
            if raw is None:
                raise RecordNotFound(record_id)
            record = replace(CardRecord.from_dict(raw), **changes)
            self._data["cards"][record_id] = asdict(record)
            try:
                self._save()
            except OSError:
                self._data["cards"][record_id] = raw
                raise
        return record

    @trace
    def update_artifact_url(self, record_id: str, artifact: ArtifactRef) -> CardRecord:
        """Point the card at its newest artifact; nothing else changes."""
        record = self.update(
            record_id,
            qr_code_url=artifact.url,
            qr_format_version=artifact.format_version,
            qr_payload=artifact.payload,
        )
        audit("record.artifact_updated", logger=log, record=record_id, url=artifact.url)
        return record
