import numpy as np
import pytest

from qrbot.encoder import encode
from qrbot.renderer import (
    EXCLUSION_SHRINK,
    ModuleShape,
    Renderer,
    RenderRequest,
    RenderSettings,
    cell_edges,
    exclusion_mask,
    exclusion_radius,
    render_matrix,
)
from qrbot.tiers import QualityTier, geometry_for

from conftest import open_png

URL = "https://example.com"


def _decoded(zbar, png: bytes) -> list[str]:
    return [s.data.decode("utf-8") for s in zbar(open_png(png).convert("L"))]


class TestGeometry:

    @pytest.mark.parametrize("n", [21, 25, 29, 57, 177, 24])
    def test_cells_tile_content_area(self, n):
        g = geometry_for(QualityTier.STANDARD)
        edges = cell_edges(g, n)
        assert len(edges) == n + 1
        assert edges[0] == g.margin
        assert edges[-1] == g.canvas_size - g.margin
        assert np.all(np.diff(edges) >= 1)

    def test_exclusion_radius_uses_shrink(self):
        g = geometry_for(QualityTier.HIGH)
        assert exclusion_radius(g) == pytest.approx((160 + 32) / 2 * EXCLUSION_SHRINK)

    def test_exclusion_mask_is_centred_disc(self):
        g = geometry_for(QualityTier.STANDARD)
        mask = exclusion_mask(g, 29)
        assert mask[14, 14]
        assert not mask[0, 0] and not mask[28, 28] and not mask[0, 14]
        assert np.array_equal(mask, mask.T)
        assert np.array_equal(mask, mask[::-1, ::-1])

    def test_even_matrix_side_supported(self):
        mask = exclusion_mask(geometry_for(QualityTier.ULTRA), 30)
        assert mask[14, 14] and mask[15, 15]
        assert np.array_equal(mask, mask[::-1, ::-1])

    def test_disc_is_same_fraction_across_tiers(self):
        masks = [exclusion_mask(geometry_for(t), 33) for t in QualityTier]
        assert np.array_equal(masks[0], masks[1])
        assert np.array_equal(masks[1], masks[2])


class TestRenderSettings:

    def test_shape_from_string(self):
        assert RenderSettings(shape="circle").shape is ModuleShape.CIRCLE

    def test_unknown_shape(self):
        with pytest.raises(ValueError):
            RenderSettings(shape="hexagon")

    @pytest.mark.parametrize("radius", [-0.1, 1.0, 1.5])
    def test_corner_radius_range(self, radius):
        with pytest.raises(ValueError):
            RenderSettings(corner_radius=radius)


class TestRender:

    def test_output_is_canvas_sized_png(self):
        png = Renderer().render(URL, QualityTier.STANDARD, RenderSettings(ModuleShape.SQUARE))
        assert png.startswith(b"\x89PNG\r\n\x1a\n")
        img = open_png(png)
        assert img.size == (400, 400)
        assert img.mode == "RGB"

    @pytest.mark.parametrize("tier,size", [
        (QualityTier.STANDARD, 400), (QualityTier.HIGH, 800), (QualityTier.ULTRA, 1600),
    ])
    def test_tier_sizes(self, tier, size):
        assert open_png(Renderer().render(URL, tier)).size == (size, size)

    @pytest.mark.parametrize("settings", [
        RenderSettings(),
        RenderSettings(ModuleShape.CIRCLE),
        RenderSettings(ModuleShape.SQUARE, corner_radius=0.4),
    ])
    def test_deterministic(self, settings):
        r = Renderer()
        assert r.render(URL, QualityTier.HIGH, settings) == r.render(URL, QualityTier.HIGH, settings)

    def test_only_black_and_white_pixels(self):
        for settings in (RenderSettings(), RenderSettings(ModuleShape.CIRCLE),
                         RenderSettings(corner_radius=0.5)):
            arr = np.array(open_png(Renderer().render(URL, QualityTier.STANDARD, settings)))
            assert set(np.unique(arr)) <= {0, 255}

    def test_quiet_zone_and_centre_are_light(self):
        arr = np.array(open_png(Renderer().render(URL)))
        assert (arr[:32, :, :] == 255).all()
        assert (arr[:, -32:, :] == 255).all()
        assert (arr[195:205, 195:205] == 255).all()

    def test_top_left_finder_is_dark(self):
        arr = np.array(open_png(Renderer().render(URL)))
        assert (arr[34, 34] == 0).all()

    def test_circle_modules_leave_cell_corners_light(self):
        m = encode(URL)
        g = geometry_for(QualityTier.ULTRA)
        arr = np.array(open_png(render_matrix(m, QualityTier.ULTRA, RenderSettings("circle")).png))
        edges = cell_edges(g, m.size)
        # module (0, 0) is dark; its cell corner pixel stays background
        assert (arr[edges[0], edges[0]] == 255).all()
        cx = (edges[0] + edges[1]) // 2
        assert (arr[cx, cx] == 0).all()

    def test_result_metadata(self):
        m = encode(URL)
        result = render_matrix(m, QualityTier.STANDARD)
        assert result.size == 400
        assert result.version == m.version
        assert result.modules == m.size
        assert result.cleared_modules > 0
        assert not result.logo_applied and result.warnings == []

    def test_request_accepts_tier_name(self):
        req = RenderRequest(URL, quality="ultra")
        assert req.quality is QualityTier.ULTRA


class TestLogo:

    def test_logo_composited_at_centre(self, round_logo):
        result = Renderer().render_request(RenderRequest(URL, QualityTier.STANDARD, logo=round_logo))
        assert result.logo_applied
        r, g, b = open_png(result.png).getpixel((200, 200))
        assert r > 200 and g < 60 and b < 60

    def test_logo_does_not_change_pixels_outside_its_box(self, round_logo):
        plain = np.array(open_png(Renderer().render(URL, QualityTier.HIGH)))
        with_logo = np.array(open_png(Renderer().render(URL, QualityTier.HIGH, logo=round_logo)))
        lo, hi = (800 - 160) // 2, (800 + 160) // 2
        diff = np.argwhere((plain != with_logo).any(axis=2))
        assert diff.size > 0
        assert diff.min() >= lo and diff.max() < hi

    def test_corrupt_logo_falls_back_to_plain_render(self):
        plain = Renderer().render(URL, QualityTier.HIGH)
        result = Renderer().render_request(RenderRequest(URL, QualityTier.HIGH, logo=b"not an image"))
        assert not result.logo_applied
        assert result.warnings and "logo" in result.warnings[0]
        assert result.png == plain

    def test_logo_rendering_is_deterministic(self, round_logo):
        r = Renderer()
        assert r.render(URL, QualityTier.ULTRA, logo=round_logo) == r.render(URL, QualityTier.ULTRA, logo=round_logo)


class TestScannability:

    def test_standard_square_decodes(self, zbar):
        png = Renderer().render(URL, QualityTier.STANDARD, RenderSettings(ModuleShape.SQUARE))
        assert open_png(png).size == (400, 400)
        assert _decoded(zbar, png) == [URL]

    def test_ultra_with_logo_decodes(self, zbar, round_logo):
        png = Renderer().render(URL, QualityTier.ULTRA, RenderSettings(), logo=round_logo)
        assert _decoded(zbar, png) == [URL]

    @pytest.mark.parametrize("settings", [
        RenderSettings(ModuleShape.CIRCLE),
        RenderSettings(ModuleShape.SQUARE, corner_radius=0.3),
    ])
    def test_styled_high_decodes(self, zbar, settings):
        png = Renderer().render(URL, QualityTier.HIGH, settings)
        assert _decoded(zbar, png) == [URL]


class TestOpenCVScannability:

    def test_standard_square_decodes(self):
        cv2 = pytest.importorskip("cv2")
        png = Renderer().render(URL, QualityTier.STANDARD, RenderSettings(ModuleShape.SQUARE))
        data, _points, _ = cv2.QRCodeDetector().detectAndDecode(np.array(open_png(png).convert("L")))
        assert data == URL
