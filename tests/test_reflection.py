"""
Unit tests for the specular highlight analyzer
"""
import numpy as np
import pytest

from processing.geometry import Circle, Point, Rect
from processing.reflection import AnalyzerSettings, analyze, sample_region
from processing.signals import AnalysisMode, Signal

RED_GLINT = (250, 30, 30)
WHITE_GLINT = (255, 255, 255)
IRIS = Circle(Point(50, 50), 10)


def put(img, x, y, color):
    img[y, x] = color
    return img


class TestCalibration:
    """Calibration looks for a near-white glare and sizes a zone around it"""

    def test_white_glare_records_zone(self, dark_image):
        img = put(dark_image(), 47, 52, WHITE_GLINT)

        result = analyze(img, IRIS, AnalysisMode.CALIBRATION, Signal.CALIBRATION_WHITE)

        assert result.matched
        assert result.highlight_point == Point(47, 52)
        # half-width = radius / 4 * 1.5
        assert result.glare_zone == Rect(43.25, 48.25, 50.75, 55.75)

    def test_no_white_glare_fails(self, dark_image):
        img = put(dark_image(), 47, 52, (250, 190, 250))

        result = analyze(img, IRIS, AnalysisMode.CALIBRATION, Signal.CALIBRATION_WHITE)

        assert not result.matched
        assert result.glare_zone is None

    def test_exclusion_is_ignored_while_calibrating(self, dark_image):
        img = put(dark_image(), 47, 52, WHITE_GLINT)
        zone = Rect(40, 40, 60, 60)

        result = analyze(img, IRIS, AnalysisMode.CALIBRATION, Signal.CALIBRATION_WHITE, zone)

        assert result.matched
        assert result.highlight_point == Point(47, 52)


class TestPresenceDetection:
    """Detection needs a color-matched highlight on a dark surround"""

    def test_matching_glint_on_dark_iris(self, dark_image):
        img = put(dark_image(), 53, 48, RED_GLINT)

        result = analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.RED)

        assert result.matched
        assert result.highlight_point == Point(53, 48)
        assert result.dark_ratio == pytest.approx(1.0)

    def test_wrong_color_glint(self, dark_image):
        img = put(dark_image(), 53, 48, (30, 250, 30))

        result = analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.RED)

        assert not result.matched
        assert result.highlight_point is None

    def test_channel_must_dominate_others(self, dark_image):
        # 200 is above the reflection threshold but not 1.2x the green channel
        img = put(dark_image(), 50, 50, (200, 180, 20))

        result = analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.RED)

        assert not result.matched

    def test_uniformly_bright_region_is_rejected(self, dark_image):
        img = dark_image(color=(200, 60, 60))

        result = analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.RED)

        assert not result.matched
        assert result.highlight_point is not None
        assert result.dark_ratio == pytest.approx(0.0)

    def test_white_signal_never_matches_in_detection(self, dark_image):
        img = put(dark_image(), 50, 50, WHITE_GLINT)

        result = analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.CALIBRATION_WHITE)

        assert not result.matched

    def test_ties_keep_first_in_row_major_order(self, dark_image):
        img = dark_image()
        put(img, 45, 55, RED_GLINT)
        put(img, 55, 45, RED_GLINT)

        result = analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.RED)

        assert result.highlight_point == Point(55, 45)

    def test_repeated_calls_are_identical(self, dark_image):
        rng = np.random.RandomState(3)
        img = rng.randint(0, 256, (100, 100, 3)).astype(np.uint8)

        first = analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.BLUE)
        second = analyze(img.copy(), IRIS, AnalysisMode.DETECT_PRESENCE, Signal.BLUE)

        assert first.matched == second.matched
        assert first.highlight_point == second.highlight_point
        assert first.dark_ratio == second.dark_ratio

    def test_rectangular_region(self, dark_image):
        img = put(dark_image(), 50, 50, RED_GLINT)

        result = analyze(img, Rect(40, 40, 60, 60), AnalysisMode.DETECT_PRESENCE, Signal.RED)

        assert result.matched
        assert result.highlight_point == Point(50, 50)

    def test_custom_settings(self, dark_image):
        img = put(dark_image(), 50, 50, (120, 20, 20))
        strict = AnalyzerSettings(reflection_threshold=140)
        loose = AnalyzerSettings(reflection_threshold=100)

        assert not analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.RED, settings=strict).matched
        assert analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.RED, settings=loose).matched


class TestExclusionZone:
    """Pixels inside the calibrated glare zone are invisible to detection"""

    def test_glint_inside_zone_is_ignored(self, dark_image):
        img = put(dark_image(), 45, 45, RED_GLINT)

        result = analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.RED, Rect(40, 40, 50, 50))

        assert not result.matched
        assert result.highlight_point is None

    def test_brighter_glint_inside_zone_is_not_selected(self, dark_image):
        img = dark_image()
        put(img, 45, 45, (255, 30, 30))
        put(img, 55, 55, (200, 30, 30))

        result = analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.RED, Rect(40, 40, 50, 50))

        assert result.matched
        assert result.highlight_point == Point(55, 55)

    def test_zone_pixels_do_not_count_toward_darkness(self, dark_image):
        img = dark_image()
        img[42:52, 42:52] = (230, 230, 230)
        put(img, 56, 50, RED_GLINT)
        zone = Rect(42, 42, 52, 52)

        with_zone = analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.RED, zone)
        without_zone = analyze(img, IRIS, AnalysisMode.DETECT_PRESENCE, Signal.RED)

        assert with_zone.dark_ratio == pytest.approx(1.0)
        assert without_zone.dark_ratio < 1.0
        assert with_zone.highlight_point == without_zone.highlight_point == Point(56, 50)

    def test_sampled_pixels_exclude_zone(self, dark_image):
        samples = sample_region(dark_image(), IRIS, 5, Rect(42, 42, 52, 52))

        inside = (samples.xs >= 42) & (samples.xs < 52) & (samples.ys >= 42) & (samples.ys < 52)
        assert not inside.any()


class TestAbsenceDetection:
    """Absence passes exactly when presence would fail"""

    def test_dark_region_passes(self, dark_image):
        result = analyze(dark_image(), IRIS, AnalysisMode.DETECT_ABSENCE, Signal.BLUE)

        assert result.matched

    def test_reflection_fails(self, dark_image):
        img = put(dark_image(), 50, 50, (20, 20, 250))

        result = analyze(img, IRIS, AnalysisMode.DETECT_ABSENCE, Signal.BLUE)

        assert not result.matched
        assert result.highlight_point == Point(50, 50)


class TestRegionEdgeCases:
    """Degenerate regions never raise"""

    def test_radius_below_floor_is_clamped(self, dark_image):
        img = put(dark_image(), 53, 50, RED_GLINT)

        result = analyze(img, Circle(Point(50, 50), 0.5), AnalysisMode.DETECT_PRESENCE, Signal.RED)

        assert result.matched
        assert result.highlight_point == Point(53, 50)

    def test_zero_radius_does_not_raise(self, dark_image):
        result = analyze(dark_image(), Circle(Point(50, 50), 0), AnalysisMode.CALIBRATION,
                         Signal.CALIBRATION_WHITE)

        assert not result.matched

    @pytest.mark.parametrize("mode", list(AnalysisMode))
    def test_region_outside_image_is_no_match(self, dark_image, mode):
        result = analyze(dark_image(), Circle(Point(-100, -100), 10), mode, Signal.RED)

        assert not result.matched

    def test_non_rgb_image_raises_value_error(self):
        with pytest.raises(ValueError):
            analyze(np.zeros((10, 10), dtype=np.uint8), IRIS, AnalysisMode.DETECT_PRESENCE, Signal.RED)


class TestDiagnostic:
    """The annotated crop is observational only"""

    def test_crop_size_and_verdict_unchanged(self, dark_image):
        img = put(dark_image(200, 200), 103, 98, RED_GLINT)
        region = Circle(Point(100, 100), 10)

        plain = analyze(img, region, AnalysisMode.DETECT_PRESENCE, Signal.RED)
        annotated = analyze(img, region, AnalysisMode.DETECT_PRESENCE, Signal.RED, with_diagnostic=True)

        assert plain.diagnostic is None
        assert annotated.diagnostic.shape == (80, 80, 3)
        assert annotated.matched == plain.matched
        assert annotated.highlight_point == plain.highlight_point
        # source image untouched
        assert tuple(img[100, 110]) == (20, 20, 20)

    def test_pass_circle_is_green(self, dark_image):
        img = put(dark_image(200, 200), 103, 98, RED_GLINT)

        crop = analyze(img, Circle(Point(100, 100), 10), AnalysisMode.DETECT_PRESENCE,
                       Signal.RED, with_diagnostic=True).diagnostic

        green = (crop[:, :, 1] == 255) & (crop[:, :, 0] == 0) & (crop[:, :, 2] == 0)
        assert green.any()

    def test_image_smaller_than_crop(self, dark_image):
        result = analyze(dark_image(60, 60), Circle(Point(30, 30), 10), AnalysisMode.DETECT_PRESENCE,
                         Signal.RED, with_diagnostic=True)

        assert result.diagnostic is None
