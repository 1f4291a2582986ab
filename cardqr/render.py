"""Styled QR rendering: dot patterns, finder eyes, solid or gradient paint, inline logo.

Every dark element (data dots, eye rings, eye centres) is drawn into one
coverage mask first; the mask is then filled with a single paint layer, so a
gradient runs continuously across the whole symbol instead of being
restarted per element.
"""

import io
import math
from dataclasses import dataclass

import numpy as np
from PIL import Image, ImageDraw

from cardqr.assets import fetch_image
from cardqr.config import get_settings
from cardqr.errors import LogoLoadError, RenderError
from cardqr.generator import ECC_RECOVERY, FINDER_SIZE, ModuleMatrix, build_matrix
from cardqr.logging import audit, get_logger, trace
from cardqr.style import GradientSpec, StyleSpec, corner_types, hex_to_rgb

log = get_logger("render")

QUIET_MODULES = 4           # quiet zone on every side, in modules
LOGO_IMAGE_SIZE = 0.4       # max logo span relative to the symbol
LINEAR_ROTATION_DEG = 45.0


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Layout:
    """Pixel placement of the module grid inside the square output."""

    size: int
    count: int
    dot: int
    offset: int

    def cell(self, row: int, col: int) -> tuple[int, int]:
        """Top-left pixel of module (row, col)."""
        return self.offset + col * self.dot, self.offset + row * self.dot

    def center(self, row: int, col: int) -> tuple[int, int]:
        x, y = self.cell(row, col)
        return x + self.dot // 2, y + self.dot // 2


def compute_layout(count: int, size: int) -> Layout:
    """Largest whole-pixel module size that keeps the quiet zone, symbol centred."""
    dot = size // (count + 2 * QUIET_MODULES)
    if dot < 1:
        raise RenderError(f"{size}px is too small for a {count}x{count} symbol")
    offset = (size - count * dot) // 2
    return Layout(size=size, count=count, dot=dot, offset=offset)


@dataclass(frozen=True)
class LogoArea:
    """Centred block of modules reserved for an inline logo."""

    first_row: int
    first_col: int
    rows: int
    cols: int

    def contains(self, row: int, col: int) -> bool:
        return (self.first_row <= row < self.first_row + self.rows
                and self.first_col <= col < self.first_col + self.cols)


def _odd_ceil(value: float) -> int:
    return max(1, 1 + 2 * math.ceil((value - 1) / 2))


def reserve_logo_area(
    count: int,
    logo_size: tuple[int, int],
    ecc: str,
    image_size: float = LOGO_IMAGE_SIZE,
) -> LogoArea | None:
    """Size the hidden-module block for a logo of the given aspect ratio.

    The number of hidden modules is capped at ``image_size`` times the ECC
    recovery fraction of all modules, and each side at ``image_size`` of the
    symbol (never reaching the finder columns). Block sides are odd so the
    block stays centred on the grid. Returns None when nothing fits.
    """
    w, h = logo_size
    if w <= 0 or h <= 0:
        return None
    k = h / w
    max_hidden = int(image_size * ECC_RECOVERY[ecc] * count * count)
    max_axis = min(count - 2 * FINDER_SIZE, int(count * image_size))
    if max_hidden <= 0 or max_axis <= 0:
        return None

    cols = min(int(math.sqrt(max_hidden / k)), max_axis)
    if cols % 2 == 0:
        cols -= 1
    while cols >= 1:
        rows = _odd_ceil(cols * k)
        if rows <= max_axis and rows * cols <= max_hidden:
            return LogoArea(
                first_row=(count - rows) // 2,
                first_col=(count - cols) // 2,
                rows=rows,
                cols=cols,
            )
        cols -= 2
    return None


# ---------------------------------------------------------------------------
# Paint
# ---------------------------------------------------------------------------

def gradient_paint(size: int, gradient: GradientSpec) -> Image.Image:
    """Full-canvas RGBA paint layer for a two-stop gradient.

    Linear gradients run at a fixed 45 degrees through the canvas centre;
    radial gradients run from the centre to the corners.
    """
    c1 = np.array(hex_to_rgb(gradient.color1), dtype=np.float64)
    c2 = np.array(hex_to_rgb(gradient.color2), dtype=np.float64)

    ys, xs = np.mgrid[0:size, 0:size].astype(np.float64) + 0.5
    half = size / 2.0
    if gradient.type == "radial":
        t = np.hypot(xs - half, ys - half) / (half * math.sqrt(2))
    else:
        theta = math.radians(LINEAR_ROTATION_DEG)
        cos_t, sin_t = math.cos(theta), math.sin(theta)
        extent = half * (abs(cos_t) + abs(sin_t))
        t = ((xs - half) * cos_t + (ys - half) * sin_t + extent) / (2 * extent)
    t = np.clip(t, 0.0, 1.0)[..., None]

    rgb = np.rint(c1 * (1.0 - t) + c2 * t).astype(np.uint8)
    alpha = np.full((size, size, 1), 255, dtype=np.uint8)
    return Image.fromarray(np.concatenate([rgb, alpha], axis=2))


def _paint_layer(style: StyleSpec) -> Image.Image:
    if style.gradient.enabled:
        return gradient_paint(style.size, style.gradient)
    return Image.new("RGBA", (style.size, style.size), hex_to_rgb(style.dark_color) + (255,))


# ---------------------------------------------------------------------------
# Coverage mask: data dots
# ---------------------------------------------------------------------------

def _pattern_radii(pattern: str, dot: int, exposed: tuple[bool, bool, bool, bool]) -> tuple[int, ...]:
    """Corner radii (tl, tr, br, bl) for one module.

    A corner is *exposed* when neither orthogonal neighbour touching it is
    dark, so rounding it never opens a gap inside a connected run.
    """
    tl, tr, br, bl = exposed
    if pattern == "rounded":
        r = dot // 3
        return tuple(r if e else 0 for e in exposed)
    if pattern == "extra-rounded":
        r = dot // 2
        return tuple(r if e else 0 for e in exposed)
    if pattern == "classy":
        r = dot // 2
        return (r if tl else 0, 0, r if br else 0, 0)
    if pattern == "classy-rounded":
        big, small = dot // 2, dot // 4
        return (big if tl else 0, small if tr else 0, big if br else 0, small if bl else 0)
    return (0, 0, 0, 0)


def _draw_cell(draw: ImageDraw.ImageDraw, x: int, y: int, dot: int, radii: tuple[int, ...]) -> None:
    """Fill one module square, then cut each rounded corner back to a quarter disc."""
    x1, y1 = x + dot - 1, y + dot - 1
    draw.rectangle([x, y, x1, y1], fill=255)
    tl, tr, br, bl = radii
    if tl > 0:
        draw.rectangle([x, y, x + tl - 1, y + tl - 1], fill=0)
        draw.pieslice([x, y, x + 2 * tl, y + 2 * tl], 180, 270, fill=255)
    if tr > 0:
        draw.rectangle([x1 - tr + 1, y, x1, y + tr - 1], fill=0)
        draw.pieslice([x1 - 2 * tr, y, x1, y + 2 * tr], 270, 360, fill=255)
    if br > 0:
        draw.rectangle([x1 - br + 1, y1 - br + 1, x1, y1], fill=0)
        draw.pieslice([x1 - 2 * br, y1 - 2 * br, x1, y1], 0, 90, fill=255)
    if bl > 0:
        draw.rectangle([x, y1 - bl + 1, x + bl - 1, y1], fill=0)
        draw.pieslice([x, y1 - 2 * bl, x + 2 * bl, y1], 90, 180, fill=255)


def _draw_dots(
    draw: ImageDraw.ImageDraw,
    matrix: ModuleMatrix,
    layout: Layout,
    pattern: str,
    logo_area: LogoArea | None,
) -> int:
    """Draw every dark module outside the finders and the logo block."""

    def visible(r: int, c: int) -> bool:
        if not matrix.is_dark(r, c) or matrix.in_finder(r, c):
            return False
        return logo_area is None or not logo_area.contains(r, c)

    dot = layout.dot
    drawn = 0
    for r in range(matrix.count):
        for c in range(matrix.count):
            if not visible(r, c):
                continue
            x, y = layout.cell(r, c)
            if pattern == "dots":
                draw.ellipse([x, y, x + dot - 1, y + dot - 1], fill=255)
            else:
                up, down = visible(r - 1, c), visible(r + 1, c)
                left, right = visible(r, c - 1), visible(r, c + 1)
                exposed = (
                    not up and not left,
                    not up and not right,
                    not down and not right,
                    not down and not left,
                )
                _draw_cell(draw, x, y, dot, _pattern_radii(pattern, dot, exposed))
            drawn += 1
    return drawn


# ---------------------------------------------------------------------------
# Coverage mask: finder eyes
# ---------------------------------------------------------------------------

def _draw_eyes(draw: ImageDraw.ImageDraw, matrix: ModuleMatrix, layout: Layout, eye_style: str) -> None:
    """Draw the three finder eyes: a 7x7 ring and a 3x3 centre, shaped independently."""
    ring, centre = corner_types(eye_style)
    d = layout.dot
    span = FINDER_SIZE * d

    for row, col in matrix.finder_origins():
        x0, y0 = layout.cell(row, col)
        x1, y1 = x0 + span - 1, y0 + span - 1
        outer = [x0, y0, x1, y1]
        inner = [x0 + d, y0 + d, x1 - d, y1 - d]

        if ring == "dot":
            draw.ellipse(outer, fill=255)
            draw.ellipse(inner, fill=0)
        elif ring == "extra-rounded":
            draw.rounded_rectangle(outer, radius=int(2.5 * d), fill=255)
            draw.rounded_rectangle(inner, radius=int(1.5 * d), fill=0)
        else:
            draw.rectangle(outer, fill=255)
            draw.rectangle(inner, fill=0)

        core = [x0 + 2 * d, y0 + 2 * d, x1 - 2 * d, y1 - 2 * d]
        if centre == "dot":
            draw.ellipse(core, fill=255)
        else:
            draw.rectangle(core, fill=255)


# ---------------------------------------------------------------------------
# Inline logo
# ---------------------------------------------------------------------------

def _paste_logo(canvas: Image.Image, logo: Image.Image, layout: Layout, area: LogoArea) -> tuple[int, int]:
    """Fit the logo inside the reserved block (minus a margin) and composite it."""
    bx, by = layout.cell(area.first_row, area.first_col)
    bw, bh = area.cols * layout.dot, area.rows * layout.dot
    margin = max(1, layout.dot // 2)
    avail_w, avail_h = max(1, bw - 2 * margin), max(1, bh - 2 * margin)

    scale = min(avail_w / logo.width, avail_h / logo.height)
    new_w = max(1, int(logo.width * scale))
    new_h = max(1, int(logo.height * scale))
    resized = logo.resize((new_w, new_h), Image.LANCZOS)

    canvas.alpha_composite(resized, dest=(bx + (bw - new_w) // 2, by + (bh - new_h) // 2))
    return new_w, new_h


def _load_inline_logo(url: str) -> Image.Image | None:
    """Inline logos are optional: a failed load degrades to a plain code."""
    try:
        return fetch_image(url)
    except LogoLoadError as exc:
        log.warning("Inline logo skipped: %s", exc)
        audit("logo.inline_skipped", logger=log, url=url[:80], reason=exc.reason)
        return None


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

@trace
def render_image(payload: str, style: StyleSpec, ecc: str | None = None) -> Image.Image:
    """Render *payload* as a styled RGBA image of ``style.size`` square pixels.

    The background is ``style.light_color``, or fully transparent when the
    style asks for a background logo (the compositor supplies the backdrop
    and no inline logo is embedded).

    Raises:
        RenderError: encoding failed or nothing was drawn.
    """
    ecc = (ecc or get_settings().ecc).upper()
    matrix = build_matrix(payload, ecc=ecc)
    layout = compute_layout(matrix.count, style.size)

    logo_img = None
    logo_area = None
    if style.inline_logo:
        logo_img = _load_inline_logo(style.logo.url)
        if logo_img is not None:
            logo_area = reserve_logo_area(matrix.count, logo_img.size, ecc)
            if logo_area is None:
                log.warning("No room for an inline logo on a %dx%d symbol", matrix.count, matrix.count)

    mask = Image.new("L", (style.size, style.size), 0)
    draw = ImageDraw.Draw(mask)
    drawn = _draw_dots(draw, matrix, layout, style.pattern, logo_area)
    _draw_eyes(draw, matrix, layout, style.eye_style)

    if mask.getbbox() is None:
        raise RenderError("rendered symbol is empty")

    if style.background_logo:
        backdrop = Image.new("RGBA", (style.size, style.size), (0, 0, 0, 0))
    else:
        backdrop = Image.new("RGBA", (style.size, style.size), hex_to_rgb(style.light_color) + (255,))
    image = Image.composite(_paint_layer(style), backdrop, mask)

    logo_px = None
    if logo_img is not None and logo_area is not None:
        logo_px = _paste_logo(image, logo_img, layout, logo_area)

    audit("qr.rendered", logger=log,
          data=payload[:80], size=style.size, modules=matrix.count, dot_px=layout.dot,
          pattern=style.pattern, eye=style.eye_style,
          gradient=style.gradient.type if style.gradient.enabled else "off",
          background="transparent" if style.background_logo else style.light_color,
          dots=drawn, logo=f"{logo_px[0]}x{logo_px[1]}" if logo_px else None)
    return image


def encode_png(image: Image.Image) -> bytes:
    """Encode an image as PNG bytes; an empty result is a RenderError."""
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    data = buf.getvalue()
    if not data:
        raise RenderError("PNG encoder returned no data")
    return data


@trace
def render(payload: str, style: StyleSpec, ecc: str | None = None) -> bytes:
    """Render *payload* with *style* and return PNG bytes."""
    return encode_png(render_image(payload, style, ecc=ecc))
