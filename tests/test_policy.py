import pytest

from cardqr.errors import NoPayloadError
from cardqr.policy import CardState, Trigger, is_stale, should_regenerate
from cardqr.publish import CURRENT_ARTIFACT_FORMAT, ArtifactRef

from conftest import PAYLOAD, PUBLIC_BASE

CURRENT = ArtifactRef(url=f"{PUBLIC_BASE}/u/s-qr-1.png", format_version=CURRENT_ARTIFACT_FORMAT, payload=PAYLOAD)
OLD_FORMAT = ArtifactRef(url=f"{PUBLIC_BASE}/u/s-qr-1.png", format_version=CURRENT_ARTIFACT_FORMAT - 1)
LEGACY_HOSTED = ArtifactRef(url="https://api.qrserver.com/v1/create-qr-code/?data=x")
UNTAGGED_CANONICAL = ArtifactRef(url=f"{PUBLIC_BASE}/u/s-qr-1.png")


def test_missing_artifact_is_stale():
    assert is_stale(None, PAYLOAD)
    assert is_stale(ArtifactRef(url=""), PAYLOAD)


def test_current_artifact_is_not_stale():
    assert not is_stale(CURRENT, PAYLOAD)


def test_older_format_is_stale():
    assert is_stale(OLD_FORMAT, PAYLOAD)


def test_untagged_artifact_falls_back_to_host_marker():
    assert is_stale(LEGACY_HOSTED, PAYLOAD)
    assert not is_stale(UNTAGGED_CANONICAL, PAYLOAD)
    assert is_stale(UNTAGGED_CANONICAL, PAYLOAD, host_marker="other.example")


def test_payload_change_makes_artifact_stale():
    assert is_stale(CURRENT, "https://example.com/c/new-slug")


@pytest.mark.parametrize("trigger", [Trigger.SAVE, Trigger.PUBLISH])
@pytest.mark.parametrize("published", [True, False])
def test_no_payload_never_regenerates_implicitly(trigger, published):
    assert not should_regenerate(CardState(payload=None, published=published), trigger)


def test_explicit_request_always_regenerates():
    assert should_regenerate(CardState(payload=PAYLOAD, published=True, artifact=CURRENT), Trigger.EXPLICIT_REQUEST)
    assert should_regenerate(CardState(payload=PAYLOAD, published=False), Trigger.EXPLICIT_REQUEST)


def test_explicit_request_without_payload():
    with pytest.raises(NoPayloadError):
        should_regenerate(CardState(payload=None, published=True), Trigger.EXPLICIT_REQUEST)


def test_publish_builds_missing_or_stale_artifact():
    assert should_regenerate(CardState(payload=PAYLOAD, published=True), Trigger.PUBLISH)
    assert should_regenerate(CardState(payload=PAYLOAD, published=True, artifact=LEGACY_HOSTED), Trigger.PUBLISH)
    assert not should_regenerate(CardState(payload=PAYLOAD, published=True, artifact=CURRENT), Trigger.PUBLISH)


def test_save_on_draft_never_regenerates():
    assert not should_regenerate(CardState(payload=PAYLOAD, published=False), Trigger.SAVE)
    assert not should_regenerate(CardState(payload=PAYLOAD, published=False, artifact=LEGACY_HOSTED), Trigger.SAVE)


def test_save_on_published_card_repairs_stale_artifact():
    assert should_regenerate(CardState(payload=PAYLOAD, published=True), Trigger.SAVE)
    assert should_regenerate(CardState(payload=PAYLOAD, published=True, artifact=OLD_FORMAT), Trigger.SAVE)
    assert not should_regenerate(CardState(payload=PAYLOAD, published=True, artifact=CURRENT), Trigger.SAVE)
