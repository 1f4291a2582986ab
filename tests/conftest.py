"""Shared fixtures: isolated settings, a temporary bucket and card store, logo files."""

import logging

import pytest
from PIL import Image

from cardqr.config import get_settings
from cardqr.logging import ROOT_LOGGER
from cardqr.pipeline import QRPipeline
from cardqr.publish import ArtifactPublisher
from cardqr.records import CardRecord, JsonRecordStore
from cardqr.service import CardQRService
from cardqr.storage import LocalObjectStore

PAYLOAD = "https://example.com/c/jane-doe"
PUBLIC_BASE = "https://cdn.cardqr.app/qrcodes"
MISSING_LOGO = "/nonexistent/cardqr/logo.png"
FIXED_NOW = 1_700_000_000.0


@pytest.fixture(autouse=True)
def cardqr_env(tmp_path, monkeypatch):
    """Point every setting at the test's tmp dir and drop the settings cache."""
    monkeypatch.setenv("CARDQR_STORAGE", "local")
    monkeypatch.setenv("CARDQR_STORAGE_ROOT", str(tmp_path / "bucket"))
    monkeypatch.setenv("CARDQR_PUBLIC_BASE_URL", PUBLIC_BASE)
    monkeypatch.setenv("CARDQR_CARD_BASE_URL", "https://example.com/c")
    monkeypatch.setenv("CARDQR_HOST_MARKER", "cardqr.app")
    monkeypatch.setenv("CARDQR_ECC", "Q")
    monkeypatch.setenv("CARDQR_FETCH_TIMEOUT", "2")
    monkeypatch.setenv("CARDQR_PIPELINE_TIMEOUT", "0")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    logging.getLogger(ROOT_LOGGER).handlers.clear()


@pytest.fixture()
def wide_logo(tmp_path):
    """2:1 solid red logo."""
    path = tmp_path / "wide_logo.png"
    Image.new("RGBA", (200, 100), (220, 30, 30, 255)).save(path)
    return str(path)


@pytest.fixture()
def square_logo(tmp_path):
    """Square solid blue logo."""
    path = tmp_path / "square_logo.png"
    Image.new("RGBA", (120, 120), (20, 60, 200, 255)).save(path)
    return str(path)


@pytest.fixture()
def bucket(tmp_path):
    return LocalObjectStore(str(tmp_path / "bucket"), PUBLIC_BASE)


@pytest.fixture()
def clock():
    """Deterministic clock that advances one second per call."""
    state = {"now": FIXED_NOW}

    def tick():
        state["now"] += 1.0
        return state["now"]

    return tick


@pytest.fixture()
def publisher(bucket, clock):
    return ArtifactPublisher(bucket, clock=clock)


@pytest.fixture()
def pipeline(publisher):
    return QRPipeline(publisher, ecc="Q", timeout=0)


@pytest.fixture()
def records(tmp_path):
    return JsonRecordStore(str(tmp_path / "cards.json"))


@pytest.fixture()
def service(records, pipeline):
    return CardQRService(records, pipeline)


@pytest.fixture()
def draft_card(records):
    return records.put(CardRecord(
        id="card-1",
        owner_id="user-1",
        slug="jane-doe",
        share_url=PAYLOAD,
        theme={"qr": {"pattern": "dots", "eyeStyle": "extra-rounded",
                      "darkColor": "#111111", "lightColor": "#FFFFFF", "size": 256}},
    ))
