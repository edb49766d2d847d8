"""Logo decoding and normalization to a square RGBA tile."""

import io

from PIL import Image, UnidentifiedImageError

from qrbot.errors import LogoDecodeFailure
from qrbot.logging import audit, get_logger

log = get_logger("logo")

# Refuse absurd pixel counts before decoding (Pillow warns at ~89M).
MAX_LOGO_PIXELS = 40_000_000


def is_svg(data: bytes) -> bool:
    head = data[:1024].lstrip().lower()
    return head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head)


def _rasterize_svg(data: bytes, size: int) -> Image.Image:
    try:
        import cairosvg
    except (ImportError, OSError) as e:
        raise LogoDecodeFailure("SVG logos need the 'svg' extra (cairosvg)") from e

    try:
        png = cairosvg.svg2png(bytestring=data, output_width=size, output_height=size)
        img = Image.open(io.BytesIO(png))
        img.load()
    except Exception as e:
        raise LogoDecodeFailure(f"Could not rasterize SVG logo: {e}") from e
    return img.convert("RGBA")


def _decode_raster(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        w, h = img.size
        if w * h > MAX_LOGO_PIXELS:
            raise LogoDecodeFailure(f"Logo too large ({w}x{h})")
        img.load()
    except LogoDecodeFailure:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise LogoDecodeFailure(f"Could not decode logo: {e}") from e
    if img.width == 0 or img.height == 0:
        raise LogoDecodeFailure("Logo has zero size")
    return img.convert("RGBA")


def _fit_square(img: Image.Image, size: int) -> Image.Image:
    """Scale so the longer side equals *size*, centred on a transparent square."""
    if img.size == (size, size):
        return img
    w, h = img.size
    if w >= h:
        new_w, new_h = size, max(1, round(h * size / w))
    else:
        new_w, new_h = max(1, round(w * size / h)), size
    resized = img.resize((new_w, new_h), Image.LANCZOS)
    tile = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    tile.paste(resized, ((size - new_w) // 2, (size - new_h) // 2))
    return tile


def normalize_logo(data: bytes, size: int) -> Image.Image:
    """Decode logo bytes into an RGBA ``size x size`` tile.

    Raster images keep their aspect ratio; SVG is rendered at the target
    resolution.

    Raises:
        LogoDecodeFailure: empty, unreadable, oversized or corrupt input.
    """
    if not data:
        raise LogoDecodeFailure("Logo is empty")

    if is_svg(data):
        img = _rasterize_svg(data, size)
        kind = "svg"
    else:
        img = _decode_raster(data)
        kind = "raster"

    source_size = img.size
    tile = _fit_square(img, size)
    audit("logo.normalized", logger=log,
          kind=kind, source=f"{source_size[0]}x{source_size[1]}", size=size)
    return tile
