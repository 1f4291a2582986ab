import io

import numpy as np
import pytest
from PIL import Image

from cardqr.errors import RenderError
from cardqr.generator import FINDER_SIZE, build_matrix
from cardqr.render import (
    LogoArea,
    compute_layout,
    gradient_paint,
    render,
    render_image,
    reserve_logo_area,
)
from cardqr.style import PATTERNS, resolve
from cardqr.verify import decodes_to

from conftest import MISSING_LOGO, PAYLOAD


def _finder_boxes(style):
    matrix = build_matrix(PAYLOAD, "Q")
    layout = compute_layout(matrix.count, style.size)
    span = FINDER_SIZE * layout.dot
    boxes = []
    for row, col in matrix.finder_origins():
        x, y = layout.cell(row, col)
        boxes.append((x, y, x + span, y + span))
    return boxes


def test_layout_keeps_quiet_zone():
    layout = compute_layout(29, 512)
    assert layout.dot == 13
    assert layout.offset == 67
    assert layout.offset >= 4 * layout.dot


def test_layout_too_small():
    with pytest.raises(RenderError):
        compute_layout(177, 64)


def test_logo_area_square_logo():
    assert reserve_logo_area(29, (100, 100), "Q") == LogoArea(first_row=10, first_col=10, rows=9, cols=9)


def test_logo_area_wide_logo():
    area = reserve_logo_area(29, (200, 100), "Q")
    assert (area.rows, area.cols) == (7, 11)
    assert area.first_row == 11 and area.first_col == 9


def test_logo_area_respects_recovery_budget():
    for ecc in ("L", "M", "Q", "H"):
        area = reserve_logo_area(33, (300, 120), ecc)
        if area is None:
            continue
        assert area.rows % 2 == 1 and area.cols % 2 == 1
        assert area.rows * area.cols <= 0.4 * {"L": 0.07, "M": 0.15, "Q": 0.25, "H": 0.30}[ecc] * 33 * 33


def test_render_is_opaque_png_of_requested_size():
    data = render(PAYLOAD, resolve({"size": 400}))
    img = Image.open(io.BytesIO(data))
    assert img.size == (400, 400)
    assert img.getchannel("A").getextrema() == (255, 255)
    assert decodes_to(data, PAYLOAD)


@pytest.mark.parametrize("pattern", PATTERNS)
def test_every_pattern_scans(pattern):
    data = render(PAYLOAD, resolve({"pattern": pattern, "eyeStyle": "extra-rounded"}))
    assert decodes_to(data, PAYLOAD)


@pytest.mark.parametrize("eye", ["square", "dot", "leaf"])
def test_eye_styles_scan_with_dots(eye):
    data = render(PAYLOAD, resolve({"pattern": "dots", "eyeStyle": eye}))
    assert decodes_to(data, PAYLOAD)


def test_eye_style_only_changes_finders():
    square = resolve({"pattern": "square", "eyeStyle": "square"})
    round_ = resolve({"pattern": "square", "eyeStyle": "dot"})
    a = np.array(render_image(PAYLOAD, square))
    b = np.array(render_image(PAYLOAD, round_))

    for x0, y0, x1, y1 in _finder_boxes(square):
        # square ring fills its corner, a round ring does not
        assert tuple(a[y0, x0][:3]) == (0, 0, 0)
        assert tuple(b[y0, x0][:3]) == (255, 255, 255)
        a[y0:y1, x0:x1] = 0
        b[y0:y1, x0:x1] = 0
    assert np.array_equal(a, b)


def test_pattern_does_not_change_finders():
    square = resolve({"pattern": "square", "eyeStyle": "dot"})
    dots = resolve({"pattern": "dots", "eyeStyle": "dot"})
    a = np.array(render_image(PAYLOAD, square))
    b = np.array(render_image(PAYLOAD, dots))
    for x0, y0, x1, y1 in _finder_boxes(square):
        assert np.array_equal(a[y0:y1, x0:x1], b[y0:y1, x0:x1])


@pytest.mark.parametrize("kind", ["linear", "radial"])
def test_gradient_is_one_continuous_paint(kind):
    style = resolve({
        "pattern": "square",
        "gradient": {"enabled": True, "type": kind, "color1": "#FF0000", "color2": "#0000FF"},
    })
    image = render_image(PAYLOAD, style)
    paint = gradient_paint(style.size, style.gradient)

    matrix = build_matrix(PAYLOAD, "Q")
    layout = compute_layout(matrix.count, style.size)
    probes = [layout.center(3, 3), layout.center(3, matrix.count - 4), layout.center(matrix.count - 4, 3)]
    probes += [
        layout.center(r, c)
        for r in range(matrix.count)
        for c in range(matrix.count)
        if matrix.is_dark(r, c) and not matrix.in_finder(r, c)
    ][::7]

    for xy in probes:
        assert image.getpixel(xy) == paint.getpixel(xy)
        r, g, b, _ = image.getpixel(xy)
        assert g == 0
        assert abs(r + b - 255) <= 1


def test_linear_gradient_runs_corner_to_corner():
    style = resolve({"gradient": {"enabled": True, "type": "linear", "color1": "#FF0000", "color2": "#0000FF"}})
    paint = gradient_paint(256, style.gradient)
    tl = paint.getpixel((0, 0))
    br = paint.getpixel((255, 255))
    assert tl[0] > 250 and tl[2] < 5
    assert br[2] > 250 and br[0] < 5


def test_gradient_code_scans():
    style = resolve({"pattern": "rounded", "eyeStyle": "extra-rounded",
                     "gradient": {"enabled": True, "type": "linear", "color1": "#1E3A8A", "color2": "#7C3AED"}})
    assert decodes_to(render(PAYLOAD, style), PAYLOAD)


def test_background_mode_renders_transparent_code_layer(wide_logo):
    style = resolve({"darkColor": "#222222",
                     "logo": {"url": wide_logo, "position": "background"}})
    arr = np.array(render_image(PAYLOAD, style))
    alpha = arr[..., 3]
    assert alpha.min() == 0
    assert alpha.max() == 255
    # only dark paint, no logo pixels and no light backdrop
    covered = arr[alpha > 0][:, :3]
    assert (covered == (0x22, 0x22, 0x22)).all()


def test_inline_logo_sits_in_the_centre(square_logo):
    style = resolve({"logo": {"url": square_logo, "position": "inline"}})
    image = render_image(PAYLOAD, style, ecc="H")
    centre = style.size // 2
    assert image.getpixel((centre, centre)) == (20, 60, 200, 255)


def test_inline_logo_code_scans(square_logo):
    style = resolve({"pattern": "rounded", "logo": {"url": square_logo}})
    assert decodes_to(render(PAYLOAD, style, ecc="H"), PAYLOAD)


def test_unreachable_inline_logo_degrades_to_plain_code():
    plain = np.array(render_image(PAYLOAD, resolve({"pattern": "classy"})))
    missing = np.array(render_image(PAYLOAD, resolve({"pattern": "classy", "logoUrl": MISSING_LOGO})))
    assert np.array_equal(plain, missing)


def test_payload_too_long():
    with pytest.raises(RenderError):
        render("https://example.com/" + "x" * 5000, resolve(None))


def test_empty_payload():
    with pytest.raises(RenderError):
        render("", resolve(None))
