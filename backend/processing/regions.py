import math

import numpy as np

from config import MIN_REGION_RADIUS, GUIDE_BOX_FRACTION
from processing.geometry import Circle, Point, Rect


def iris_region(
    points: list[tuple[float, float]],
    img_w: int,
    img_h: int,
    min_radius: float = MIN_REGION_RADIUS,
) -> Circle:
    """Circle around one iris ring: centroid of the points, mean distance to it.

    `points` are normalized to [0, 1] and scaled by the image size here.
    """
    if not points:
        raise ValueError("iris ring has no landmark points")
    if img_w <= 0 or img_h <= 0:
        raise ValueError(f"invalid image size {img_w}x{img_h}")

    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2) * (img_w, img_h)
    cx, cy = pts.mean(axis=0)
    radius = float(np.mean(np.hypot(pts[:, 0] - cx, pts[:, 1] - cy)))
    return Circle(Point(float(cx), float(cy)), max(radius, min_radius))


def document_regions(box: Rect) -> list[Circle]:
    """Six zones inside the document box: top row then bottom row, left to right.

    Radius is a sixth of the box height and every center is inset by one
    radius so the circles stay inside the box.
    """
    if box.width <= 0 or box.height <= 0:
        raise ValueError(f"document box has no area: {box}")

    radius = box.height / 6
    inset = radius
    cx = box.center.x
    top = box.top + inset
    bottom = box.bottom - inset
    left = box.left + inset
    right = box.right - inset

    centers = [
        Point(left, top), Point(cx, top), Point(right, top),
        Point(left, bottom), Point(cx, bottom), Point(right, bottom),
    ]
    return [Circle(c, radius) for c in centers]


def _round(v: float) -> int:
    return int(math.floor(v + 0.5))


class PreviewMapping:
    """Maps between preview (view) coordinates and source image pixels.

    The preview shows the image scaled to cover the whole view and centered,
    so one image axis is cropped symmetrically:
        scale  = max(preview_w / image_w, preview_h / image_h)
        offset = (image_size * scale - preview_size) / 2   (preview pixels)
        image  = (preview + offset) / scale
    """

    def __init__(self, image_w: int, image_h: int, preview_w: float, preview_h: float):
        if min(image_w, image_h, preview_w, preview_h) <= 0:
            raise ValueError(
                f"invalid sizes: image {image_w}x{image_h}, preview {preview_w}x{preview_h}"
            )
        self.image_w = image_w
        self.image_h = image_h
        self.scale = max(preview_w / image_w, preview_h / image_h)
        self.offset_x = (image_w * self.scale - preview_w) / 2
        self.offset_y = (image_h * self.scale - preview_h) / 2

    def to_image(self, rect: Rect) -> Rect:
        """Preview rect -> image rect, rounded to whole pixels and clipped."""
        left = _round((rect.left + self.offset_x) / self.scale)
        top = _round((rect.top + self.offset_y) / self.scale)
        right = _round((rect.right + self.offset_x) / self.scale)
        bottom = _round((rect.bottom + self.offset_y) / self.scale)
        return Rect(
            float(min(max(left, 0), self.image_w)),
            float(min(max(top, 0), self.image_h)),
            float(min(max(right, 0), self.image_w)),
            float(min(max(bottom, 0), self.image_h)),
        )

    def to_preview(self, rect: Rect) -> Rect:
        return Rect(
            rect.left * self.scale - self.offset_x,
            rect.top * self.scale - self.offset_y,
            rect.right * self.scale - self.offset_x,
            rect.bottom * self.scale - self.offset_y,
        )


def guide_box(preview_w: float, preview_h: float, fraction: float = GUIDE_BOX_FRACTION) -> Rect:
    """Centered square a document should be framed in, for clients without a detector."""
    size = min(preview_w, preview_h) * fraction
    left = (preview_w - size) / 2
    top = (preview_h - size) / 2
    return Rect(left, top, left + size, top + size)
