"""QR matrix encoding at error-correction level H."""

from dataclasses import dataclass

import qrcode
import qrcode.constants
from qrcode.exceptions import DataOverflowError

from qrbot.errors import EmptyPayload, EncodingOverflow
from qrbot.logging import audit, get_logger, trace

log = get_logger("encoder")

MAX_PAYLOAD_CHARS = 2048

# Level H restores up to ~30% damaged codewords; the renderer relies on it
# to blank the logo disc.
ERROR_CORRECTION = qrcode.constants.ERROR_CORRECT_H


@dataclass(frozen=True)
class QRMatrix:
    """Immutable module grid, ``True`` = dark."""

    version: int
    modules: tuple[tuple[bool, ...], ...]

    @property
    def size(self) -> int:
        return len(self.modules)

    def __getitem__(self, pos: tuple[int, int]) -> bool:
        r, c = pos
        return self.modules[r][c]

    def dark_count(self) -> int:
        return sum(sum(row) for row in self.modules)


@trace
def encode(payload: str, version: int | None = None) -> QRMatrix:
    """Encode *payload* into a QR matrix.

    Args:
        payload: UTF-8 text, at most ``MAX_PAYLOAD_CHARS`` characters.
        version: Force a QR version 1-40; ``None`` picks the smallest fit.

    Raises:
        EmptyPayload: blank payload.
        EncodingOverflow: payload too long, or no version holds it at level H.
    """
    if not payload or not payload.strip():
        raise EmptyPayload()
    if len(payload) > MAX_PAYLOAD_CHARS:
        raise EncodingOverflow(len(payload), MAX_PAYLOAD_CHARS)

    qr = qrcode.QRCode(
        version=version,
        error_correction=ERROR_CORRECTION,
        box_size=1,
        border=0,
    )
    qr.add_data(payload)
    try:
        qr.make(fit=(version is None))
    except DataOverflowError as e:
        raise EncodingOverflow(len(payload)) from e

    modules = tuple(tuple(bool(m) for m in row) for row in qr.get_matrix())
    matrix = QRMatrix(version=qr.version, modules=modules)

    audit("qr.encoded", logger=log,
          data=payload[:80], version=matrix.version,
          size=f"{matrix.size}x{matrix.size}", ecc="H")
    return matrix
