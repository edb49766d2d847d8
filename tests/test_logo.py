import io

import pytest
from PIL import Image

from qrbot.errors import LogoDecodeFailure
from qrbot.logo import is_svg, normalize_logo

from conftest import png_bytes

SVG = (
    b'<?xml version="1.0"?>\n'
    b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10">'
    b'<circle cx="5" cy="5" r="5" fill="#00f"/></svg>'
)


class TestNormalizeLogo:

    def test_square_output(self, round_logo):
        tile = normalize_logo(round_logo, 80)
        assert tile.size == (80, 80)
        assert tile.mode == "RGBA"

    def test_wide_logo_keeps_aspect_with_transparent_bands(self, wide_logo):
        tile = normalize_logo(wide_logo, 90)
        assert tile.size == (90, 90)
        assert tile.getpixel((45, 0))[3] == 0
        assert tile.getpixel((45, 89))[3] == 0
        assert tile.getpixel((45, 45)) == (0, 90, 200, 255)

    def test_exact_size_passes_through(self):
        img = Image.new("RGBA", (64, 64), (1, 2, 3, 255))
        assert normalize_logo(png_bytes(img), 64).getpixel((0, 0)) == (1, 2, 3, 255)

    def test_palette_and_grayscale_inputs(self):
        for mode in ("P", "L", "LA", "CMYK"):
            img = Image.new(mode, (20, 20))
            data = png_bytes(img) if mode != "CMYK" else _jpeg(img)
            assert normalize_logo(data, 40).size == (40, 40)

    @pytest.mark.parametrize("data", [b"", b"garbage", b"\x89PNG\r\n\x1a\n\x00\x00"])
    def test_undecodable(self, data):
        with pytest.raises(LogoDecodeFailure):
            normalize_logo(data, 80)

    def test_truncated_png(self, round_logo):
        with pytest.raises(LogoDecodeFailure):
            normalize_logo(round_logo[: len(round_logo) // 2], 80)

    def test_svg_rasterized_at_target_size(self):
        try:
            import cairosvg  # noqa: F401
        except (ImportError, OSError):
            with pytest.raises(LogoDecodeFailure):
                normalize_logo(SVG, 80)
            return
        tile = normalize_logo(SVG, 80)
        assert tile.size == (80, 80)
        assert tile.getpixel((40, 40))[2] > 200


class TestIsSvg:

    def test_detects_svg(self):
        assert is_svg(SVG)
        assert is_svg(b"  <svg></svg>")

    def test_rejects_other_xml_and_png(self, round_logo):
        assert not is_svg(b"<?xml version='1.0'?><html/>")
        assert not is_svg(round_logo)


def _jpeg(img):
    buf = io.BytesIO()
    img.save(buf, format="JPEG")
    return buf.getvalue()
