import io

import pytest
from PIL import Image

from cardqr.composite import DrawRect, composite_background, cover_rect
from cardqr.errors import LogoLoadError, RenderError
from cardqr.render import render
from cardqr.style import resolve
from cardqr.verify import decodes_to

from conftest import MISSING_LOGO, PAYLOAD


def _code_layer(logo_url, size=512):
    style = resolve({"size": size, "logo": {"url": logo_url, "position": "background"}})
    return render(PAYLOAD, style)


def test_cover_rect_wide_logo():
    assert cover_rect(200, 100, 512) == DrawRect(x=-256.0, y=0.0, width=1024.0, height=512.0)


def test_cover_rect_tall_logo():
    assert cover_rect(100, 200, 512) == DrawRect(x=0.0, y=-256.0, width=512.0, height=1024.0)


def test_cover_rect_square_logo():
    assert cover_rect(300, 300, 512) == DrawRect(x=0.0, y=0.0, width=512.0, height=512.0)


def test_background_composite_is_opaque_and_scans(wide_logo):
    data = composite_background(_code_layer(wide_logo), wide_logo, 512, 0.3, "#FFFFFF")
    img = Image.open(io.BytesIO(data))
    assert img.size == (512, 512)
    assert img.mode == "RGB"
    assert decodes_to(data, PAYLOAD)


def test_background_composite_differs_from_code_layer(wide_logo):
    code = _code_layer(wide_logo)
    data = composite_background(code, wide_logo, 512, 0.3, "#FFFFFF")
    assert data != code


def test_logo_opacity_blends_with_backdrop(wide_logo):
    code = _code_layer(wide_logo)
    full = Image.open(io.BytesIO(composite_background(code, wide_logo, 512, 1.0, "#FFFFFF")))
    faint = Image.open(io.BytesIO(composite_background(code, wide_logo, 512, 0.3, "#FFFFFF")))
    none = Image.open(io.BytesIO(composite_background(code, wide_logo, 512, 0.0, "#FFFFFF")))

    # (5, 5) sits in the quiet zone, so only backdrop and logo show there
    assert all(abs(a - b) <= 1 for a, b in zip(full.getpixel((5, 5)), (220, 30, 30)))
    assert none.getpixel((5, 5)) == (255, 255, 255)
    r, g, b = faint.getpixel((5, 5))
    assert r > 230 and 150 < g < 230 and 150 < b < 230


def test_missing_background_logo_is_fatal(wide_logo):
    with pytest.raises(LogoLoadError) as excinfo:
        composite_background(_code_layer(wide_logo), MISSING_LOGO, 512, 0.3, "#FFFFFF")
    assert excinfo.value.url == MISSING_LOGO


def test_corrupt_code_layer(wide_logo):
    with pytest.raises(RenderError):
        composite_background(b"not a png", wide_logo, 512, 0.3, "#FFFFFF")


def test_code_layer_size_mismatch(wide_logo):
    with pytest.raises(RenderError):
        composite_background(_code_layer(wide_logo, size=256), wide_logo, 512, 0.3, "#FFFFFF")
