"""QR renderer: logo disc carving, module shapes, crisp rasterization, PNG output.

Pipeline for one request:
    1. Resolve tier geometry (canvas, margin, logo size, logo padding)
    2. Lay out the N x N grid over the content area, snapping cell edges to
       whole pixels so cells tile exactly for any N
    3. Clear every module whose cell centre falls inside the logo disc
    4. Draw dark modules as squares (optionally rounded) or circles
    5. Composite the normalized logo, if any, at the canvas centre
    6. Encode as lossless PNG without metadata
"""

import io
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from PIL import Image, ImageDraw

from qrbot.encoder import QRMatrix, encode
from qrbot.errors import LogoDecodeFailure
from qrbot.logging import audit, get_logger, trace
from qrbot.logo import normalize_logo
from qrbot.tiers import QualityTier, TierGeometry, geometry_for

log = get_logger("renderer")

# Empirical: keeps enough dark modules around the disc rim for level-H
# recovery. Tunable.
EXCLUSION_SHRINK = 0.85

# Circle modules are inscribed at this fraction of the cell.
CIRCLE_SCALE = 0.90

FOREGROUND = (0, 0, 0)
BACKGROUND = (255, 255, 255)

# Fixed so identical requests produce identical bytes.
PNG_COMPRESS_LEVEL = 6


class ModuleShape(Enum):
    SQUARE = "square"
    CIRCLE = "circle"


@dataclass(frozen=True)
class RenderSettings:
    shape: ModuleShape = ModuleShape.SQUARE
    corner_radius: float = 0.0  # fraction of the cell, square modules only

    def __post_init__(self):
        if not isinstance(self.shape, ModuleShape):
            try:
                object.__setattr__(self, "shape", ModuleShape(str(self.shape).lower()))
            except ValueError:
                raise ValueError(f"Unknown module shape {self.shape!r}") from None
        if not 0.0 <= self.corner_radius < 1.0:
            raise ValueError(f"corner_radius must be in [0, 1), got {self.corner_radius}")


@dataclass(frozen=True)
class RenderRequest:
    payload: str
    quality: QualityTier = QualityTier.STANDARD
    settings: RenderSettings = field(default_factory=RenderSettings)
    logo: bytes | None = None

    def __post_init__(self):
        object.__setattr__(self, "quality", QualityTier.parse(self.quality))


@dataclass
class RenderResult:
    png: bytes
    size: int
    version: int
    modules: int
    cleared_modules: int
    logo_applied: bool = False
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

def cell_edges(geometry: TierGeometry, n: int) -> np.ndarray:
    """Pixel edges of the n cells along one axis (length n + 1)."""
    cell = geometry.content_size / n
    return geometry.margin + np.rint(np.arange(n + 1) * cell).astype(int)


def exclusion_radius(geometry: TierGeometry) -> float:
    return geometry.logo_reservation / 2 * EXCLUSION_SHRINK


def exclusion_mask(geometry: TierGeometry, n: int) -> np.ndarray:
    """Boolean n x n grid, ``True`` where the cell centre lies inside the logo disc."""
    cell = geometry.content_size / n
    centres = geometry.margin + (np.arange(n) + 0.5) * cell
    middle = geometry.margin + geometry.content_size / 2
    d = centres - middle
    dist_sq = d[:, None] ** 2 + d[None, :] ** 2
    return dist_sq < exclusion_radius(geometry) ** 2


# ---------------------------------------------------------------------------
# Drawing
# ---------------------------------------------------------------------------

def _draw_module(draw: ImageDraw.ImageDraw, x0: int, y0: int, x1: int, y1: int,
                 settings: RenderSettings) -> None:
    """Draw one dark module in the half-open box [x0, x1) x [y0, y1)."""
    w, h = x1 - x0, y1 - y0
    if settings.shape is ModuleShape.CIRCLE:
        cx, cy = (x0 + x1) / 2, (y0 + y1) / 2
        r = min(w, h) * CIRCLE_SCALE / 2
        left, top = round(cx - r), round(cy - r)
        right, bottom = max(left, round(cx + r) - 1), max(top, round(cy + r) - 1)
        draw.ellipse([left, top, right, bottom], fill=FOREGROUND)
        return

    radius = int(min(settings.corner_radius * min(w, h), (min(w, h) - 1) / 2))
    if radius >= 1:
        draw.rounded_rectangle([x0, y0, x1 - 1, y1 - 1], radius=radius, fill=FOREGROUND)
    else:
        draw.rectangle([x0, y0, x1 - 1, y1 - 1], fill=FOREGROUND)


def rasterize(matrix: QRMatrix, geometry: TierGeometry, settings: RenderSettings) -> tuple[Image.Image, int]:
    """Draw the carved matrix at canvas resolution.

    Returns the image and the number of dark modules cleared by the disc.
    """
    n = matrix.size
    dark = np.array(matrix.modules, dtype=bool)
    carved = exclusion_mask(geometry, n)
    visible = dark & ~carved

    img = Image.new("RGB", (geometry.canvas_size, geometry.canvas_size), BACKGROUND)
    draw = ImageDraw.Draw(img)
    edges = cell_edges(geometry, n)

    for r, c in zip(*np.nonzero(visible)):
        _draw_module(draw, int(edges[c]), int(edges[r]), int(edges[c + 1]), int(edges[r + 1]), settings)

    return img, int((dark & carved).sum())


def composite_logo(img: Image.Image, tile: Image.Image) -> Image.Image:
    """Alpha-composite *tile* at the centre of *img* (in place)."""
    offset = ((img.width - tile.width) // 2, (img.height - tile.height) // 2)
    img.paste(tile, offset, tile)
    return img


def to_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG", optimize=False, compress_level=PNG_COMPRESS_LEVEL)
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

@trace
def render_matrix(
    matrix: QRMatrix,
    quality: QualityTier,
    settings: RenderSettings | None = None,
    logo: bytes | None = None,
) -> RenderResult:
    """Render a QR matrix at the given tier.

    An unreadable logo is logged and skipped; the logo-free image is
    returned with a warning instead of failing the request.
    """
    settings = settings or RenderSettings()
    quality = QualityTier.parse(quality)
    geometry = geometry_for(quality)

    img, cleared = rasterize(matrix, geometry, settings)

    warnings: list[str] = []
    logo_applied = False
    if logo is not None:
        try:
            tile = normalize_logo(logo, geometry.logo_size)
        except LogoDecodeFailure as e:
            log.warning("Logo skipped, rendering without it: %s", e)
            warnings.append(f"logo skipped: {e}")
        else:
            composite_logo(img, tile)
            logo_applied = True

    png = to_png(img)
    audit("qr.rendered", logger=log,
          quality=quality.value, shape=settings.shape.value,
          version=matrix.version, canvas=geometry.canvas_size,
          cleared=cleared, logo=logo_applied, bytes=len(png))
    return RenderResult(
        png=png,
        size=geometry.canvas_size,
        version=matrix.version,
        modules=matrix.size,
        cleared_modules=cleared,
        logo_applied=logo_applied,
        warnings=warnings,
    )


class Renderer:
    """Stateless facade: payload in, PNG bytes out."""

    def render(
        self,
        payload: str,
        quality: QualityTier = QualityTier.STANDARD,
        settings: RenderSettings | None = None,
        logo: bytes | None = None,
    ) -> bytes:
        return self.render_request(RenderRequest(payload, quality, settings or RenderSettings(), logo)).png

    def render_request(self, request: RenderRequest) -> RenderResult:
        matrix = encode(request.payload)
        return render_matrix(matrix, request.quality, request.settings, request.logo)
