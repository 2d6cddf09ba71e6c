"""
Specular Highlight Analyzer

Scores one region of an RGB frame against the stimulus that was on screen.
A live cornea (or hologram foil) reflects the flashed color as a small,
saturated point on an otherwise dark surround; a printed photo or replayed
video either shows no color-matched point or is bright all over.

Two passes over the pixels of the region:
- Pass 1 picks the brightest pixel that qualifies as a highlight for the mode
  (near-white for calibration, dominant in the expected channel otherwise).
- Pass 2 (detection modes only) requires most of the remaining pixels to be
  darker than a fraction of that highlight's brightness.

Pixels are visited in row-major order and ties keep the first maximum, so the
verdict and the highlight point are deterministic for identical input.
"""

import logging
from dataclasses import dataclass, field

import cv2
import numpy as np

from config import (
    WHITE_THRESHOLD, REFLECTION_THRESHOLD, COLOR_DOMINANCE_FACTOR,
    ADAPTIVE_DARKNESS_FACTOR, DARK_RATIO_REQUIRED, GLARE_IGNORE_RADIUS,
    MIN_REGION_RADIUS, DEBUG_CROP_PADDING, DEBUG_CROP_MIN_SIZE,
)
from processing.geometry import Circle, Point, Rect, Region
from processing.signals import AnalysisMode, Signal

logger = logging.getLogger("uvicorn.error")

PASS_COLOR = (0, 255, 0)
FAIL_COLOR = (255, 0, 0)
EXCLUSION_COLOR = (255, 0, 255)
GLARE_COLOR = (0, 255, 255)


@dataclass
class AnalyzerSettings:
    white_threshold: int = field(default_factory=lambda: WHITE_THRESHOLD)
    reflection_threshold: int = field(default_factory=lambda: REFLECTION_THRESHOLD)
    dominance_factor: float = field(default_factory=lambda: COLOR_DOMINANCE_FACTOR)
    darkness_factor: float = field(default_factory=lambda: ADAPTIVE_DARKNESS_FACTOR)
    dark_ratio_required: float = field(default_factory=lambda: DARK_RATIO_REQUIRED)
    glare_expansion: float = field(default_factory=lambda: GLARE_IGNORE_RADIUS)
    min_radius: float = field(default_factory=lambda: MIN_REGION_RADIUS)


@dataclass
class ReflectionResult:
    matched: bool
    highlight_point: Point | None = None
    glare_zone: Rect | None = None      # set by a successful calibration
    dark_ratio: float | None = None     # set when pass 2 ran
    diagnostic: np.ndarray | None = None


@dataclass
class RegionSamples:
    xs: np.ndarray        # (N,) pixel x coordinates
    ys: np.ndarray        # (N,) pixel y coordinates
    rgb: np.ndarray       # (N, 3) int32
    radius: float         # effective radius after the floor


def clamp_region(region: Region, min_radius: float) -> Region:
    """Apply the radius floor to circular regions."""
    if isinstance(region, Circle):
        radius = region.radius
        if not np.isfinite(radius) or radius < min_radius:
            return Circle(region.center, min_radius)
    return region


def sample_region(
    image: np.ndarray,
    region: Region,
    min_radius: float,
    exclusion: Rect | None = None,
) -> RegionSamples | None:
    """Enumerate the pixels of `region` clipped to the image, minus `exclusion`.

    Returns None when the clipped region has no area.
    """
    if image.ndim != 3 or image.shape[2] < 3:
        raise ValueError(f"expected an RGB image, got shape {image.shape}")
    img_h, img_w = image.shape[:2]
    if img_w == 0 or img_h == 0:
        return None

    region = clamp_region(region, min_radius)
    bounds = region.bounds() if isinstance(region, Circle) else region

    left = min(max(int(bounds.left), 0), img_w - 1)
    top = min(max(int(bounds.top), 0), img_h - 1)
    right = min(max(int(bounds.right), 0), img_w - 1)
    bottom = min(max(int(bounds.bottom), 0), img_h - 1)
    if right - left <= 0 or bottom - top <= 0:
        return None

    ys, xs = np.mgrid[top:bottom, left:right]
    xs = xs.ravel()
    ys = ys.ravel()

    if isinstance(region, Circle):
        cx, cy, r = region.center.x, region.center.y, region.radius
        keep = (xs - cx) ** 2 + (ys - cy) ** 2 <= r * r
        radius = r
    else:
        keep = np.ones(xs.shape, dtype=bool)
        radius = min(region.width, region.height) / 2

    if exclusion is not None:
        keep &= ~exclusion.contains_mask(xs, ys)

    xs = xs[keep]
    ys = ys[keep]
    rgb = image[ys, xs, :3].astype(np.int32)
    return RegionSamples(xs=xs, ys=ys, rgb=rgb, radius=radius)


def highlight_candidates(
    rgb: np.ndarray,
    mode: AnalysisMode,
    signal: Signal,
    settings: AnalyzerSettings,
) -> np.ndarray:
    if mode == AnalysisMode.CALIBRATION:
        return np.all(rgb > settings.white_threshold, axis=1)

    channel = signal.channel
    if channel is None:
        return np.zeros(len(rgb), dtype=bool)

    main = rgb[:, channel]
    others = np.delete(rgb, channel, axis=1)
    dominant = np.all(main[:, None] > others * settings.dominance_factor, axis=1)
    return (main > settings.reflection_threshold) & dominant


def analyze(
    image: np.ndarray,
    region: Region,
    mode: AnalysisMode,
    signal: Signal,
    exclusion: Rect | None = None,
    settings: AnalyzerSettings | None = None,
    with_diagnostic: bool = False,
) -> ReflectionResult:
    """Score one region of an RGB image against the expected signal.

    CALIBRATION looks for a near-white highlight and returns the glare zone to
    store. DETECT_PRESENCE needs a color-matched highlight on a dark surround.
    DETECT_ABSENCE passes exactly when DETECT_PRESENCE would not.
    `exclusion` is ignored in calibration mode.
    """
    settings = settings or AnalyzerSettings()
    region = clamp_region(region, settings.min_radius)
    skip = exclusion if mode != AnalysisMode.CALIBRATION else None

    samples = sample_region(image, region, settings.min_radius, skip)
    if samples is None:
        # Nothing to look at is never a pass, whatever the mode.
        return ReflectionResult(matched=False)
    if len(samples.rgb) == 0:
        return _finish(image, region, mode, False, with_diagnostic,
                       exclusion=skip)

    brightness = samples.rgb.max(axis=1)
    candidates = highlight_candidates(samples.rgb, mode, signal, settings)

    if not candidates.any():
        return _finish(image, region, mode, False, with_diagnostic,
                       exclusion=skip)

    best = int(np.argmax(np.where(candidates, brightness, -1)))
    max_brightness = int(brightness[best])
    point = Point(float(samples.xs[best]), float(samples.ys[best]))

    if mode == AnalysisMode.CALIBRATION:
        half_width = samples.radius / 4 * settings.glare_expansion
        zone = Rect.around(point, half_width)
        return _finish(image, region, mode, True, with_diagnostic,
                       point=point, glare_zone=zone)

    dark_threshold = max_brightness * settings.darkness_factor
    surround = np.ones(len(brightness), dtype=bool)
    surround[best] = False
    total = int(surround.sum())
    dark = int(np.count_nonzero(brightness[surround] < dark_threshold))
    dark_ratio = dark / total if total > 0 else 1.0
    detected = dark_ratio >= settings.dark_ratio_required

    logger.debug(
        f"[Reflection] {mode.value} {signal.value}: highlight=({point.x:.0f},{point.y:.0f}) "
        f"max={max_brightness}, dark_ratio={dark_ratio:.3f}, detected={detected}"
    )

    return _finish(image, region, mode, detected, with_diagnostic,
                   point=point, dark_ratio=dark_ratio, exclusion=skip)


def _finish(
    image, region, mode, detected, with_diagnostic,
    point=None, glare_zone=None, dark_ratio=None, exclusion=None,
) -> ReflectionResult:
    matched = (not detected) if mode == AnalysisMode.DETECT_ABSENCE else detected
    diagnostic = None
    if with_diagnostic:
        diagnostic = render_diagnostic(image, region, matched, exclusion, glare_zone)
    return ReflectionResult(
        matched=matched,
        highlight_point=point,
        glare_zone=glare_zone,
        dark_ratio=dark_ratio,
        diagnostic=diagnostic,
    )


def render_diagnostic(
    image: np.ndarray,
    region: Region,
    matched: bool,
    exclusion: Rect | None = None,
    glare_zone: Rect | None = None,
) -> np.ndarray | None:
    """Crop a square around the region and draw the search area and zones.

    Returns None when the image is smaller than the crop.
    """
    img_h, img_w = image.shape[:2]
    if isinstance(region, Circle):
        center, radius = region.center, region.radius
    else:
        center, radius = region.center, max(region.width, region.height) / 2

    crop_size = max(int(radius * 2 * DEBUG_CROP_PADDING), DEBUG_CROP_MIN_SIZE)
    crop_left = min(max(int(center.x - crop_size / 2), 0), img_w - crop_size)
    crop_top = min(max(int(center.y - crop_size / 2), 0), img_h - crop_size)
    if crop_left < 0 or crop_top < 0:
        return None

    crop = np.ascontiguousarray(
        image[crop_top:crop_top + crop_size, crop_left:crop_left + crop_size, :3]
    ).copy()

    def shift(rect: Rect):
        return (
            (int(round(rect.left - crop_left)), int(round(rect.top - crop_top))),
            (int(round(rect.right - crop_left)), int(round(rect.bottom - crop_top))),
        )

    if exclusion is not None:
        p1, p2 = shift(exclusion)
        cv2.rectangle(crop, p1, p2, EXCLUSION_COLOR, 1)
    if glare_zone is not None:
        p1, p2 = shift(glare_zone)
        cv2.rectangle(crop, p1, p2, GLARE_COLOR, 1)

    color = PASS_COLOR if matched else FAIL_COLOR
    if isinstance(region, Circle):
        cv2.circle(
            crop,
            (int(round(center.x - crop_left)), int(round(center.y - crop_top))),
            int(round(radius)), color, 2,
        )
    else:
        p1, p2 = shift(region)
        cv2.rectangle(crop, p1, p2, color, 2)
    return crop
