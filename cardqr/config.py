"""Environment-driven settings for the cardqr pipeline, store and server."""

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
    """Typed view of the CARDQR_* environment variables."""

    storage: str               # "local" or "s3"
    storage_root: str          # local bucket directory
    public_base_url: str       # prefix for public artifact URLs
    card_base_url: str         # public card pages; share URL = card_base_url/slug
    s3_bucket: str
    s3_endpoint: str
    s3_region: str
    artifact_host_marker: str  # hosting marker for untagged (legacy) artifacts
    ecc: str                   # L / M / Q / H
    fetch_timeout: float       # seconds per logo fetch
    pipeline_timeout: float    # seconds for a whole run, 0 = unbounded
    records_path: str
    log_level: str


def _float(value: str | None, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    ecc = (os.getenv("CARDQR_ECC") or "Q").strip().upper()
    if ecc not in {"L", "M", "Q", "H"}:
        ecc = "Q"
    return Settings(
        storage=(os.getenv("CARDQR_STORAGE") or "local").strip().lower(),
        storage_root=os.getenv("CARDQR_STORAGE_ROOT", "storage/qrcodes"),
        public_base_url=os.getenv("CARDQR_PUBLIC_BASE_URL", "https://cdn.cardqr.app/qrcodes").rstrip("/"),
        card_base_url=os.getenv("CARDQR_CARD_BASE_URL", "https://cardqr.app/c").rstrip("/"),
        s3_bucket=os.getenv("CARDQR_S3_BUCKET", "qrcodes"),
        s3_endpoint=os.getenv("CARDQR_S3_ENDPOINT", ""),
        s3_region=os.getenv("CARDQR_S3_REGION", "us-east-1"),
        artifact_host_marker=os.getenv("CARDQR_HOST_MARKER", "cardqr.app"),
        ecc=ecc,
        fetch_timeout=_float(os.getenv("CARDQR_FETCH_TIMEOUT"), 10.0),
        pipeline_timeout=_float(os.getenv("CARDQR_PIPELINE_TIMEOUT"), 30.0),
        records_path=os.getenv("CARDQR_RECORDS_PATH", "cards_db.json"),
        log_level=(os.getenv("CARDQR_LOG_LEVEL") or "INFO").upper(),
    )
