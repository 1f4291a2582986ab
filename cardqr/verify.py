"""Scan verification: decode a rendered code with ZBar and OpenCV."""

import io
import time
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image
from pyzbar.pyzbar import decode as pyzbar_decode

from cardqr.logging import audit, get_logger, trace

log = get_logger("verify")


@dataclass
class ScanResult:
    """Result of a single scan attempt."""
    success: bool
    decoded_data: str | None = None
    decode_time_ms: float = 0.0
    decoder: str = ""
    error: str | None = None


def _flatten(image: Image.Image) -> Image.Image:
    """Composite any transparency onto white; decoders read alpha-less RGB."""
    if image.mode in ("RGBA", "LA", "P"):
        rgba = image.convert("RGBA")
        white = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        return Image.alpha_composite(white, rgba).convert("RGB")
    return image.convert("RGB")


def load(source: bytes | Image.Image) -> Image.Image:
    if isinstance(source, (bytes, bytearray)):
        return Image.open(io.BytesIO(source))
    return source


def _scan(decoder: str, fn, image: Image.Image) -> ScanResult:
    start = time.perf_counter()
    try:
        data = fn(image)
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        audit("scan.error", logger=log, decoder=decoder, error=str(e), time_ms=round(elapsed, 1))
        return ScanResult(success=False, decode_time_ms=elapsed, decoder=decoder, error=str(e))

    elapsed = (time.perf_counter() - start) * 1000
    if data:
        audit("scan.verified", logger=log, decoder=decoder, success=True, time_ms=round(elapsed, 1), data=data[:80])
        return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed, decoder=decoder)
    audit("scan.verified", logger=log, decoder=decoder, success=False, time_ms=round(elapsed, 1))
    return ScanResult(success=False, decode_time_ms=elapsed, decoder=decoder, error="No QR code detected")


def _zbar(image: Image.Image) -> str | None:
    results = pyzbar_decode(image)
    return results[0].data.decode("utf-8", errors="replace") if results else None


def _opencv(image: Image.Image) -> str | None:
    gray = cv2.cvtColor(np.array(image), cv2.COLOR_RGB2GRAY)
    data, _, _ = cv2.QRCodeDetector().detectAndDecode(gray)
    return data or None


@trace
def scan_pyzbar(image: Image.Image) -> ScanResult:
    """Scan a QR code using pyzbar (wraps ZBar)."""
    return _scan("pyzbar/zbar", _zbar, _flatten(image))


@trace
def scan_opencv(image: Image.Image) -> ScanResult:
    """Scan a QR code using OpenCV's built-in QR detector."""
    return _scan("opencv", _opencv, _flatten(image))


@trace
def verify(source: bytes | Image.Image, expected_data: str | None = None) -> list[ScanResult]:
    """Run all available decoders on an image (PIL image or encoded bytes).

    Args:
        source: The code image.
        expected_data: If provided, a decode that doesn't match counts as a failure.

    Returns:
        List of ScanResults, one per decoder.
    """
    image = load(source)
    results = []
    for scanner in [scan_pyzbar, scan_opencv]:
        result = scanner(image)
        if result.success and expected_data is not None and result.decoded_data != expected_data:
            result.success = False
            result.error = f"Data mismatch: got '{result.decoded_data}', expected '{expected_data}'"
        results.append(result)
    return results


def decodes_to(source: bytes | Image.Image, expected_data: str) -> bool:
    """True when at least one decoder reads exactly *expected_data*."""
    return any(r.success for r in verify(source, expected_data=expected_data))
