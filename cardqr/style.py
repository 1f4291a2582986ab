"""Style resolution: normalise persisted QR style JSON into a complete StyleSpec.

Style objects live inside a card's theme JSON and may have been written by
any past version of the editor: camelCase or snake_case keys, flat legacy
gradient/logo keys, old enum spellings, strings where numbers belong.
``resolve`` is the single place where all of that is coerced. It never
raises and ``resolve(resolve(x)) == resolve(x)``.
"""

import re
from dataclasses import asdict, dataclass, field

PATTERNS = ("square", "rounded", "extra-rounded", "dots", "classy", "classy-rounded")
EYE_STYLES = ("square", "extra-rounded", "dot", "leaf", "diamond", "star", "heart", "shield")
GRADIENT_TYPES = ("linear", "radial")
LOGO_POSITIONS = ("inline", "background")
FRAME_STYLES = ("none", "solid", "rounded")

DEFAULT_SIZE = 512
MIN_SIZE = 64
MAX_SIZE = 2048
DEFAULT_OPACITY = 0.3
DEFAULT_DARK = "#000000"
DEFAULT_LIGHT = "#FFFFFF"
DEFAULT_GRADIENT_END = "#4F46E5"

_PATTERN_ALIASES = {"squares": "square", "dot": "dots", "circle": "dots", "circles": "dots"}
_EYE_ALIASES = {"rounded": "extra-rounded", "dots": "dot", "circle": "dot", "standard": "square"}
_POSITION_ALIASES = {"center": "inline", "centre": "inline", "overlay": "inline", "behind": "background"}

# Eye style -> (ring shape, centre shape). Rings support square/extra-rounded/dot,
# centres support square/dot.
_EYE_CORNERS = {
    "square": ("square", "square"),
    "extra-rounded": ("extra-rounded", "dot"),
    "dot": ("dot", "dot"),
    "leaf": ("extra-rounded", "dot"),
    "diamond": ("square", "square"),
    "star": ("dot", "dot"),
    "heart": ("extra-rounded", "dot"),
    "shield": ("square", "square"),
}

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


@dataclass(frozen=True)
class GradientSpec:
    enabled: bool = False
    type: str = "linear"
    color1: str = DEFAULT_DARK
    color2: str = DEFAULT_GRADIENT_END


@dataclass(frozen=True)
class LogoSpec:
    url: str
    position: str = "inline"
    opacity: float = DEFAULT_OPACITY


@dataclass(frozen=True)
class FrameSpec:
    style: str = "none"
    color: str = DEFAULT_DARK
    width: int = 8
    radius: int = 24
    padding: int = 16
    shadow: bool = False


@dataclass(frozen=True)
class StyleSpec:
    """Fully resolved rendering configuration for one QR code."""

    pattern: str = "square"
    eye_style: str = "square"
    dark_color: str = DEFAULT_DARK
    light_color: str = DEFAULT_LIGHT
    gradient: GradientSpec = field(default_factory=GradientSpec)
    logo: LogoSpec | None = None
    size: int = DEFAULT_SIZE
    frame: FrameSpec = field(default_factory=FrameSpec)

    @property
    def background_logo(self) -> bool:
        return self.logo is not None and self.logo.position == "background"

    @property
    def inline_logo(self) -> bool:
        return self.logo is not None and self.logo.position == "inline"

    def to_dict(self) -> dict:
        """Canonical persisted shape (camelCase, nested gradient/logo/frame)."""
        d = asdict(self)
        return {
            "pattern": d["pattern"],
            "eyeStyle": d["eye_style"],
            "darkColor": d["dark_color"],
            "lightColor": d["light_color"],
            "gradient": d["gradient"],
            "logo": d["logo"],
            "size": d["size"],
            "frame": d["frame"],
        }


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def _pick(raw: dict, *keys, default=None):
    """First present, non-None value among *keys*."""
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _enum(value, allowed: tuple, aliases: dict, default: str) -> str:
    if not isinstance(value, str):
        return default
    v = value.strip().lower().replace("_", "-").replace(" ", "-")
    v = aliases.get(v, v)
    return v if v in allowed else default


def _color(value, default: str) -> str:
    if not isinstance(value, str):
        return default
    m = _HEX_RE.match(value.strip())
    if not m:
        return default
    digits = m.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return "#" + digits.upper()


def _number(value, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        n = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if n != n or n in (float("inf"), float("-inf")):
        return default
    return n


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _bool(value, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return default


def _section(raw: dict, key: str) -> dict:
    value = raw.get(key)
    return value if isinstance(value, dict) else {}


def _resolve_gradient(raw: dict, dark: str) -> GradientSpec:
    g = _section(raw, "gradient")
    enabled = _bool(_pick(g, "enabled", default=_pick(raw, "useGradient", "use_gradient", default=False)))
    if not enabled:
        return GradientSpec()
    return GradientSpec(
        enabled=True,
        type=_enum(_pick(g, "type", default=_pick(raw, "gradientType", "gradient_type")),
                   GRADIENT_TYPES, {}, "linear"),
        color1=_color(_pick(g, "color1", default=_pick(raw, "gradientColor1", "gradient_color1")), dark),
        color2=_color(_pick(g, "color2", default=_pick(raw, "gradientColor2", "gradient_color2")),
                      DEFAULT_GRADIENT_END),
    )


def _resolve_logo(raw: dict) -> LogoSpec | None:
    lg = _section(raw, "logo")
    url = _pick(lg, "url", default=_pick(raw, "logoUrl", "logo_url"))
    if not isinstance(url, str) or not url.strip():
        return None
    position = _enum(_pick(lg, "position", default=_pick(raw, "logoPosition", "logo_position")),
                     LOGO_POSITIONS, _POSITION_ALIASES, "inline")
    opacity = _number(_pick(lg, "opacity", default=_pick(raw, "logoOpacity", "logo_opacity")), DEFAULT_OPACITY)
    return LogoSpec(url=url.strip(), position=position, opacity=_clamp(opacity, 0.0, 1.0))


def _resolve_frame(raw: dict, dark: str) -> FrameSpec:
    fr = _section(raw, "frame")
    style = _enum(fr.get("style"), FRAME_STYLES, {"square": "solid", "border": "solid"}, "none")
    if style == "none":
        return FrameSpec()
    return FrameSpec(
        style=style,
        color=_color(fr.get("color"), dark),
        width=int(_clamp(_number(fr.get("width"), 8), 0, 64)),
        radius=int(_clamp(_number(fr.get("radius", fr.get("cornerRadius")), 24), 0, 256)),
        padding=int(_clamp(_number(fr.get("padding"), 16), 0, 256)),
        shadow=_bool(fr.get("shadow")),
    )


def resolve(raw_style=None) -> StyleSpec:
    """Normalise a loosely-typed style configuration into a StyleSpec.

    Accepts None, a dict of any vintage, or an already resolved StyleSpec.
    Never raises; every field gets a deterministic default.
    """
    if isinstance(raw_style, StyleSpec):
        raw_style = raw_style.to_dict()
    raw = raw_style if isinstance(raw_style, dict) else {}

    dark = _color(_pick(raw, "darkColor", "dark_color"), DEFAULT_DARK)
    size = _number(_pick(raw, "size"), DEFAULT_SIZE)

    return StyleSpec(
        pattern=_enum(_pick(raw, "pattern"), PATTERNS, _PATTERN_ALIASES, "square"),
        eye_style=_enum(_pick(raw, "eyeStyle", "eye_style"), EYE_STYLES, _EYE_ALIASES, "square"),
        dark_color=dark,
        light_color=_color(_pick(raw, "lightColor", "light_color"), DEFAULT_LIGHT),
        gradient=_resolve_gradient(raw, dark),
        logo=_resolve_logo(raw),
        size=int(_clamp(round(size), MIN_SIZE, MAX_SIZE)),
        frame=_resolve_frame(raw, dark),
    )


def corner_types(eye_style: str) -> tuple[str, str]:
    """(ring shape, centre shape) used to draw the finder eyes."""
    return _EYE_CORNERS.get(eye_style, ("square", "square"))


def hex_to_rgb(color: str) -> tuple[int, int, int]:
    """Parse '#RRGGBB' (as produced by resolve) into an RGB tuple."""
    s = color.lstrip("#")
    return tuple(int(s[i : i + 2], 16) for i in (0, 2, 4))


# ---------------------------------------------------------------------------
# Built-in presets
# ---------------------------------------------------------------------------

PRESETS = {
    "professional": {
        "darkColor": "#1A1A1A", "lightColor": "#FFFFFF",
        "pattern": "square", "eyeStyle": "square",
        "gradient": {"enabled": False},
    },
    "modern": {
        "darkColor": "#3B82F6", "lightColor": "#FFFFFF",
        "pattern": "extra-rounded", "eyeStyle": "extra-rounded",
        "gradient": {"enabled": True, "type": "linear", "color1": "#3B82F6", "color2": "#8B5CF6"},
    },
    "elegant": {
        "darkColor": "#D4AF37", "lightColor": "#FFF8E7",
        "pattern": "classy", "eyeStyle": "leaf",
        "gradient": {"enabled": True, "type": "radial", "color1": "#D4AF37", "color2": "#B8860B"},
    },
    "minimal": {
        "darkColor": "#374151", "lightColor": "#F9FAFB",
        "pattern": "dots", "eyeStyle": "dot",
        "gradient": {"enabled": False},
    },
    "vibrant": {
        "darkColor": "#EC4899", "lightColor": "#FFFFFF",
        "pattern": "rounded", "eyeStyle": "extra-rounded",
        "gradient": {"enabled": True, "type": "linear", "color1": "#EC4899", "color2": "#F97316"},
    },
    "nature": {
        "darkColor": "#059669", "lightColor": "#ECFDF5",
        "pattern": "classy-rounded", "eyeStyle": "leaf",
        "gradient": {"enabled": True, "type": "radial", "color1": "#059669", "color2": "#10B981"},
    },
}


def apply_preset(raw_style, name: str) -> StyleSpec:
    """Overlay a built-in preset on a style, keeping its logo, size and frame."""
    preset = PRESETS[name.strip().lower()]
    current = resolve(raw_style).to_dict()
    return resolve({**current, **preset})
