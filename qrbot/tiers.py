"""Quality tiers, their canvas geometry and the purchasable packs."""

from dataclasses import dataclass
from enum import Enum

from qrbot.errors import InvalidQualityLogoCombination


class QualityTier(Enum):
    STANDARD = "standard"
    HIGH = "high"
    ULTRA = "ultra"

    @classmethod
    def parse(cls, value: "str | QualityTier") -> "QualityTier":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown quality tier {value!r} (expected one of: {names})") from None


PAID_TIERS = (QualityTier.HIGH, QualityTier.ULTRA)


@dataclass(frozen=True)
class TierGeometry:
    """Pixel layout of one tier. All values in pixels."""

    canvas_size: int
    margin: int
    logo_size: int
    logo_padding: int

    def __post_init__(self):
        if min(self.canvas_size, self.logo_size) <= 0 or min(self.margin, self.logo_padding) < 0:
            raise InvalidQualityLogoCombination(f"Non-positive dimension in {self}")
        if self.logo_reservation >= self.content_size:
            raise InvalidQualityLogoCombination(
                f"Logo reservation {self.logo_reservation}px does not fit "
                f"content area {self.content_size}px"
            )

    @property
    def content_size(self) -> int:
        return self.canvas_size - 2 * self.margin

    @property
    def logo_reservation(self) -> int:
        """Diameter reserved for the logo, padding included."""
        return self.logo_size + 2 * self.logo_padding


TIER_GEOMETRY: dict[QualityTier, TierGeometry] = {
    QualityTier.STANDARD: TierGeometry(canvas_size=400, margin=32, logo_size=80, logo_padding=8),
    QualityTier.HIGH: TierGeometry(canvas_size=800, margin=64, logo_size=160, logo_padding=16),
    QualityTier.ULTRA: TierGeometry(canvas_size=1600, margin=128, logo_size=320, logo_padding=32),
}


def validate_tiers(table: dict[QualityTier, TierGeometry] = TIER_GEOMETRY) -> None:
    """Check the table covers every tier and grows monotonically.

    The per-tier fit invariant is enforced by ``TierGeometry`` itself.
    """
    missing = [t.value for t in QualityTier if t not in table]
    if missing:
        raise InvalidQualityLogoCombination(f"No geometry for tiers: {', '.join(missing)}")
    ordered = [table[t] for t in QualityTier]
    for field_name in ("canvas_size", "margin", "logo_size", "logo_padding"):
        values = [getattr(g, field_name) for g in ordered]
        if any(b <= a for a, b in zip(values, values[1:])):
            raise InvalidQualityLogoCombination(f"{field_name} must increase across tiers: {values}")


def geometry_for(tier: QualityTier) -> TierGeometry:
    return TIER_GEOMETRY[QualityTier.parse(tier)]


validate_tiers()


# ---------------------------------------------------------------------------
# Purchasable packs (prices in Telegram Stars)
# ---------------------------------------------------------------------------

CURRENCY = "XTR"


@dataclass(frozen=True)
class Product:
    tier: QualityTier
    quantity: int
    price: int
    title: str

    @property
    def payload(self) -> str:
        """Invoice payload echoed back by the payment provider."""
        return f"{self.tier.value}:{self.quantity}"


PRODUCTS: tuple[Product, ...] = (
    Product(QualityTier.HIGH, 1, 10, "1 High quality QR"),
    Product(QualityTier.HIGH, 5, 40, "5 High quality QRs"),
    Product(QualityTier.ULTRA, 1, 25, "1 Ultra quality QR"),
    Product(QualityTier.ULTRA, 5, 100, "5 Ultra quality QRs"),
)


def product_from_payload(payload: str) -> Product:
    """Look up the pack an invoice payload was issued for."""
    for product in PRODUCTS:
        if product.payload == payload:
            return product
    raise ValueError(f"Unknown product payload {payload!r}")
