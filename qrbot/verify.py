"""Scan verification of rendered QR images with ZBar and OpenCV."""

import io
import time
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image
from pyzbar.pyzbar import ZBarSymbol
from pyzbar.pyzbar import decode as pyzbar_decode

from qrbot.logging import audit, get_logger, trace

log = get_logger("verify")


@dataclass
class ScanResult:
    success: bool
    decoded_data: str | None = None
    decode_time_ms: float = 0.0
    decoder: str = ""
    error: str | None = None


def _as_image(image: "Image.Image | bytes") -> Image.Image:
    if isinstance(image, (bytes, bytearray)):
        image = Image.open(io.BytesIO(image))
    return image.convert("RGB")


def _result(decoder: str, start: float, data: str | None = None, error: str | None = None) -> ScanResult:
    elapsed = (time.perf_counter() - start) * 1000
    ok = data is not None
    audit("scan.verified", logger=log, decoder=decoder, success=ok,
          time_ms=round(elapsed, 1), data=(data or "")[:80], error=error)
    return ScanResult(success=ok, decoded_data=data, decode_time_ms=elapsed,
                      decoder=decoder, error=error)


def scan_pyzbar(image: Image.Image) -> ScanResult:
    """Decode with ZBar."""
    start = time.perf_counter()
    try:
        symbols = pyzbar_decode(image, symbols=[ZBarSymbol.QRCODE])
    except Exception as e:
        return _result("pyzbar/zbar", start, error=str(e))
    if not symbols:
        return _result("pyzbar/zbar", start, error="No QR code detected")
    return _result("pyzbar/zbar", start, data=symbols[0].data.decode("utf-8", errors="replace"))


def scan_opencv(image: Image.Image) -> ScanResult:
    """Decode with OpenCV's QRCodeDetector."""
    start = time.perf_counter()
    try:
        gray = cv2.cvtColor(np.array(image), cv2.COLOR_RGB2GRAY)
        data, _points, _ = cv2.QRCodeDetector().detectAndDecode(gray)
    except cv2.error as e:
        return _result("opencv", start, error=str(e))
    if not data:
        return _result("opencv", start, error="No QR code detected")
    return _result("opencv", start, data=data)


@trace
def verify(image: "Image.Image | bytes", expected_data: str | None = None) -> list[ScanResult]:
    """Run every decoder on *image*; mismatches with *expected_data* count as failures."""
    img = _as_image(image)
    results = []
    for scanner in (scan_pyzbar, scan_opencv):
        result = scanner(img)
        if result.success and expected_data is not None and result.decoded_data != expected_data:
            result.success = False
            result.error = f"Data mismatch: got {result.decoded_data!r}, expected {expected_data!r}"
        results.append(result)
    return results
