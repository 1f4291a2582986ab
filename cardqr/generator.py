"""QR module matrix: encode a payload and expose its grid and fixed regions."""

from dataclasses import dataclass
from enum import Enum

import qrcode
import qrcode.constants
from qrcode.exceptions import DataOverflowError

from cardqr.errors import RenderError
from cardqr.logging import audit, get_logger, trace

log = get_logger("generator")


class ECCLevel(Enum):
    L = qrcode.constants.ERROR_CORRECT_L  # 7%
    M = qrcode.constants.ERROR_CORRECT_M  # 15%
    Q = qrcode.constants.ERROR_CORRECT_Q  # 25%
    H = qrcode.constants.ERROR_CORRECT_H  # 30%


ECC_NAMES = {"L": ECCLevel.L, "M": ECCLevel.M, "Q": ECCLevel.Q, "H": ECCLevel.H}

# Fraction of codewords each level can restore; bounds the modules a logo may hide.
ECC_RECOVERY = {"L": 0.07, "M": 0.15, "Q": 0.25, "H": 0.30}

FINDER_SIZE = 7


@dataclass(frozen=True)
class ModuleMatrix:
    """Dark/light grid of an encoded symbol, without quiet zone."""

    version: int
    ecc: str
    modules: tuple[tuple[bool, ...], ...]

    @property
    def count(self) -> int:
        return len(self.modules)

    def is_dark(self, row: int, col: int) -> bool:
        if 0 <= row < self.count and 0 <= col < self.count:
            return self.modules[row][col]
        return False

    def finder_origins(self) -> list[tuple[int, int]]:
        """Top-left (row, col) of the three finder patterns: TL, TR, BL."""
        n = self.count
        return [(0, 0), (0, n - FINDER_SIZE), (n - FINDER_SIZE, 0)]

    def in_finder(self, row: int, col: int) -> bool:
        for fr, fc in self.finder_origins():
            if fr <= row < fr + FINDER_SIZE and fc <= col < fc + FINDER_SIZE:
                return True
        return False


@trace
def build_matrix(payload: str, ecc: str = "Q", version: int | None = None) -> ModuleMatrix:
    """Encode *payload* and return its module grid.

    Raises:
        RenderError: the payload does not fit any version at this ECC level.
    """
    level = ECC_NAMES.get(ecc.upper())
    if level is None:
        raise RenderError(f"unknown error-correction level {ecc!r}")
    if not payload:
        raise RenderError("empty payload")

    qr = qrcode.QRCode(
        version=version,
        error_correction=level.value,
        box_size=1,
        border=0,
    )
    qr.add_data(payload)
    try:
        qr.make(fit=(version is None))
    except (DataOverflowError, ValueError) as exc:
        raise RenderError(f"payload of {len(payload)} chars does not fit a QR symbol at ECC {ecc}") from exc

    matrix = ModuleMatrix(
        version=qr.version,
        ecc=ecc.upper(),
        modules=tuple(tuple(bool(m) for m in row) for row in qr.modules),
    )
    audit("qr.encoded", logger=log,
          data=payload[:80], version=matrix.version,
          size=f"{matrix.count}x{matrix.count}", ecc=matrix.ecc)
    return matrix
