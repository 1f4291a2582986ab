"""Background-logo compositing: a full-bleed watermark logo behind a transparent code layer.

This is the one implementation shared by previews and final artifacts.
"""

import io
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from cardqr.assets import fetch_image
from cardqr.errors import LogoLoadError, RenderError
from cardqr.logging import audit, get_logger, trace
from cardqr.render import encode_png
from cardqr.style import hex_to_rgb

log = get_logger("composite")


@dataclass(frozen=True)
class DrawRect:
    x: float
    y: float
    width: float
    height: float


def cover_rect(logo_width: int, logo_height: int, size: int) -> DrawRect:
    """Rectangle that scales the logo to cover a size x size square.

    Aspect ratio is preserved; the overflowing axis is centred, so its
    offset is zero or negative.
    """
    aspect = logo_width / logo_height
    if aspect > 1:
        width = size * aspect
        return DrawRect(x=(size - width) / 2, y=0.0, width=width, height=float(size))
    height = size / aspect
    return DrawRect(x=0.0, y=(size - height) / 2, width=float(size), height=height)


def _with_opacity(image: Image.Image, opacity: float) -> Image.Image:
    """Scale the alpha channel (canvas globalAlpha equivalent)."""
    if opacity >= 1.0:
        return image
    alpha = image.getchannel("A").point(lambda a: round(a * opacity))
    faded = image.copy()
    faded.putalpha(alpha)
    return faded


def _decode_code_layer(code_bytes: bytes) -> Image.Image:
    try:
        layer = Image.open(io.BytesIO(code_bytes))
        layer.load()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise RenderError(f"code layer is not a decodable image ({exc})") from exc
    return layer.convert("RGBA")


@trace
def composite_background(
    code_bytes: bytes,
    logo_url: str,
    size: int,
    opacity: float,
    backdrop_color: str,
) -> bytes:
    """Blend a cover-fit logo beneath the rendered code on an opaque canvas.

    1. Opaque ``size`` x ``size`` canvas filled with *backdrop_color*.
    2. Logo scaled to cover the canvas, drawn at *opacity*.
    3. Transparent-background code layer drawn on top at (0, 0), unscaled.

    Raises:
        LogoLoadError: the logo could not be loaded. There is no silent
            fallback; the caller explicitly asked for a background logo.
        RenderError: the code layer could not be decoded or is the wrong size.
    """
    canvas = Image.new("RGBA", (size, size), hex_to_rgb(backdrop_color) + (255,))

    logo = fetch_image(logo_url)
    rect = cover_rect(logo.width, logo.height, size)
    scaled = logo.resize((max(size, round(rect.width)), max(size, round(rect.height))), Image.LANCZOS)
    # crop the centred overflow; the canvas only holds the visible window
    sx = min(round(-rect.x), scaled.width - size)
    sy = min(round(-rect.y), scaled.height - size)
    canvas.alpha_composite(_with_opacity(scaled, opacity), dest=(0, 0),
                           source=(sx, sy, sx + size, sy + size))

    code = _decode_code_layer(code_bytes)
    if code.size != (size, size):
        raise RenderError(f"code layer is {code.size[0]}x{code.size[1]}, expected {size}x{size}")
    canvas.alpha_composite(code)

    audit("background.composited", logger=log,
          logo=logo_url[:80], logo_px=f"{logo.width}x{logo.height}",
          draw_rect=f"{rect.x:.0f},{rect.y:.0f},{rect.width:.0f}x{rect.height:.0f}",
          opacity=opacity, size=size)
    return encode_png(canvas.convert("RGB"))
