"""Error taxonomy for the QR pipeline.

Style data is never rejected: the resolver coerces bad values instead of
raising, so there is no style validation error here.
"""


class CardQRError(Exception):
    """Base class for every error the pipeline raises on purpose."""

    kind = "error"


class RenderError(CardQRError):
    """QR encoding failed or produced an empty raster. Retryable."""

    kind = "render"


class PipelineTimeout(RenderError):
    """The pipeline ran past its deadline before publishing anything."""

    kind = "timeout"


class LogoLoadError(CardQRError):
    """A logo image could not be fetched or decoded."""

    kind = "logo"

    def __init__(self, url: str, reason: str):
        super().__init__(f"could not load logo {url!r}: {reason}")
        self.url = url
        self.reason = reason


class PublishError(CardQRError):
    """Uploading the artifact to storage failed. The previous URL stays valid."""

    kind = "publish"


class NoPayloadError(CardQRError):
    """The card has no share URL yet, so there is nothing for a code to point at."""

    kind = "no_payload"


class RegenerationInProgress(CardQRError):
    """Another pipeline run for the same card has not finished."""

    kind = "busy"
