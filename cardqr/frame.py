"""Cosmetic frame around a finished code image."""

from PIL import Image, ImageDraw, ImageFilter

from cardqr.logging import audit, get_logger, trace
from cardqr.style import FrameSpec, hex_to_rgb

log = get_logger("frame")

SHADOW_BLUR = 8
SHADOW_OFFSET = 6
SHADOW_ALPHA = 90


@trace
def apply_frame(image: Image.Image, frame: FrameSpec, fill_color: str = "#FFFFFF") -> Image.Image:
    """Surround *image* with padding and a border; returns a larger image.

    The code itself is pasted unscaled, so scannability is untouched. A
    ``none`` frame returns the input image as-is.
    """
    if frame.style == "none":
        return image

    code = image.convert("RGBA")
    inset = frame.padding + frame.width
    shadow_pad = SHADOW_BLUR * 2 + SHADOW_OFFSET if frame.shadow else 0
    box = code.width + 2 * inset
    total = box + 2 * shadow_pad
    radius = frame.radius if frame.style == "rounded" else 0

    canvas = Image.new("RGBA", (total, total), (0, 0, 0, 0))

    if frame.shadow:
        shadow = Image.new("L", (total, total), 0)
        ImageDraw.Draw(shadow).rounded_rectangle(
            [shadow_pad + SHADOW_OFFSET, shadow_pad + SHADOW_OFFSET,
             shadow_pad + SHADOW_OFFSET + box - 1, shadow_pad + SHADOW_OFFSET + box - 1],
            radius=radius, fill=SHADOW_ALPHA,
        )
        shadow = shadow.filter(ImageFilter.GaussianBlur(SHADOW_BLUR))
        black = Image.new("RGBA", (total, total), (0, 0, 0, 255))
        black.putalpha(shadow)
        canvas.alpha_composite(black)

    draw = ImageDraw.Draw(canvas)
    outer = [shadow_pad, shadow_pad, shadow_pad + box - 1, shadow_pad + box - 1]
    draw.rounded_rectangle(outer, radius=radius, fill=hex_to_rgb(frame.color) + (255,))
    if frame.width > 0:
        inner = [outer[0] + frame.width, outer[1] + frame.width,
                 outer[2] - frame.width, outer[3] - frame.width]
        draw.rounded_rectangle(inner, radius=max(0, radius - frame.width),
                               fill=hex_to_rgb(fill_color) + (255,))

    canvas.alpha_composite(code, dest=(shadow_pad + inset, shadow_pad + inset))
    audit("frame.applied", logger=log, style=frame.style, size=f"{total}x{total}",
          border=frame.width, padding=frame.padding, shadow=frame.shadow)
    return canvas
