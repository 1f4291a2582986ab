"""Logo loading from remote URLs, data URLs or local paths."""

import base64
import binascii
import io
from pathlib import Path

import requests
from PIL import Image, UnidentifiedImageError

from cardqr.config import get_settings
from cardqr.errors import LogoLoadError
from cardqr.logging import audit, get_logger, trace

log = get_logger("assets")

MAX_LOGO_BYTES = 10 * 1024 * 1024


def _read_remote(url: str, timeout: float) -> bytes:
    try:
        resp = requests.get(url, timeout=timeout, headers={"Accept": "image/*"})
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise LogoLoadError(url, str(exc)) from exc
    if len(resp.content) > MAX_LOGO_BYTES:
        raise LogoLoadError(url, f"image larger than {MAX_LOGO_BYTES} bytes")
    return resp.content


def _read_data_url(url: str) -> bytes:
    header, _, payload = url.partition(",")
    if ";base64" not in header:
        raise LogoLoadError(url[:40], "only base64 data URLs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise LogoLoadError(url[:40], "invalid base64 payload") from exc


@trace
def fetch_image(url: str, timeout: float | None = None) -> Image.Image:
    """Load an image and return it decoded as RGBA.

    ``http(s)://`` URLs are fetched, ``data:`` URLs decoded, anything else
    is read as a local file path.

    Raises:
        LogoLoadError: the image could not be fetched or decoded.
    """
    if timeout is None:
        timeout = get_settings().fetch_timeout

    if url.startswith(("http://", "https://")):
        raw = _read_remote(url, timeout)
    elif url.startswith("data:"):
        raw = _read_data_url(url)
    else:
        try:
            raw = Path(url).read_bytes()
        except (OSError, ValueError) as exc:
            raise LogoLoadError(url, str(exc)) from exc

    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise LogoLoadError(url, f"not a decodable image ({exc})") from exc

    if img.width <= 0 or img.height <= 0:
        raise LogoLoadError(url, "image has no pixels")

    audit("logo.loaded", logger=log, url=url[:80], size=f"{img.width}x{img.height}", mode=img.mode)
    return img.convert("RGBA")
