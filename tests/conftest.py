import io
import logging

import pytest
from PIL import Image, ImageDraw

from qrbot.ledger import Ledger


@pytest.fixture
def ledger(tmp_path):
    with Ledger(f"sqlite:///{tmp_path / 'ledger.db'}") as ledger:
        yield ledger


@pytest.fixture
def zbar():
    """pyzbar's decode, skipping when the ZBar shared library is missing."""
    pyzbar = pytest.importorskip("pyzbar.pyzbar", exc_type=ImportError)
    return pyzbar.decode


def png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def open_png(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


@pytest.fixture
def round_logo() -> bytes:
    """Opaque red disc on a transparent background."""
    img = Image.new("RGBA", (256, 256), (0, 0, 0, 0))
    ImageDraw.Draw(img).ellipse([0, 0, 255, 255], fill=(220, 30, 30, 255))
    return png_bytes(img)


@pytest.fixture
def wide_logo() -> bytes:
    return png_bytes(Image.new("RGB", (300, 100), (0, 90, 200)))


@pytest.fixture(autouse=True)
def _reset_qrbot_handlers():
    """CLI runs attach console handlers bound to the captured stderr."""
    yield
    root = logging.getLogger("qrbot")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)
