"""When does a card's stored code image need to be rebuilt?"""

from dataclasses import dataclass
from enum import Enum

from cardqr.config import get_settings
from cardqr.errors import NoPayloadError
from cardqr.logging import audit, get_logger
from cardqr.publish import CURRENT_ARTIFACT_FORMAT, ArtifactRef

log = get_logger("policy")


class Trigger(Enum):
    SAVE = "save"
    PUBLISH = "publish"
    EXPLICIT_REQUEST = "explicit"


@dataclass(frozen=True)
class CardState:
    """The slice of a card the policy looks at."""

    payload: str | None
    published: bool
    artifact: ArtifactRef | None = None


def is_stale(artifact: ArtifactRef | None, payload: str | None, host_marker: str | None = None) -> bool:
    """True when there is no usable artifact for *payload*.

    Tagged artifacts compare their format version; untagged ones predate the
    tag and fall back to the hosting marker in their URL.
    """
    if artifact is None or not artifact.url:
        return True
    if artifact.payload is not None and payload is not None and artifact.payload != payload:
        return True
    if artifact.format_version is not None:
        return artifact.format_version < CURRENT_ARTIFACT_FORMAT
    marker = host_marker if host_marker is not None else get_settings().artifact_host_marker
    return marker not in artifact.url


def should_regenerate(current: CardState, trigger: Trigger, host_marker: str | None = None) -> bool:
    """Decide whether *trigger* must produce a new artifact.

    Style-only edits are not a trigger: they are picked up by the next
    publish or explicit request.

    Raises:
        NoPayloadError: an explicit request on a card without a share URL.
    """
    if trigger is Trigger.EXPLICIT_REQUEST:
        if not current.payload:
            raise NoPayloadError("publish the card to get a share URL before generating a QR code")
        decision, reason = True, "explicit"
    elif not current.payload:
        decision, reason = False, "no_payload"
    elif trigger is Trigger.PUBLISH:
        decision = is_stale(current.artifact, current.payload, host_marker)
        reason = "stale" if decision else "current"
    elif not current.published:
        decision, reason = False, "draft"
    else:
        decision = is_stale(current.artifact, current.payload, host_marker)
        reason = "stale" if decision else "current"

    audit("policy.decision", logger=log, trigger=trigger.value, regenerate=decision, reason=reason)
    return decision
