"""Geometry value objects and viewport math.

Everything here is pure: no state, no I/O. Screen coordinates are the
viewport's own pixel space (pointer positions, container boxes); natural
coordinates are pixels of the image at its unscaled resolution.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from ...config import VIEWPORT_CONFIG
from ...exceptions import ValidationError


@dataclass(frozen=True, slots=True)
class Point:
    """2D point."""
    x: float
    y: float

    def distance_to(self, other: Point) -> float:
        """Calculate Euclidean distance to another point."""
        return math.hypot(self.x - other.x, self.y - other.y)

    def __add__(self, other: Point) -> Point:
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(self.x - other.x, self.y - other.y)

    def __mul__(self, scalar: float) -> Point:
        return Point(self.x * scalar, self.y * scalar)


ORIGIN = Point(0.0, 0.0)


@dataclass(frozen=True, slots=True)
class Size:
    """Width/height pair."""
    width: float
    height: float

    @property
    def aspect(self) -> float:
        return self.width / self.height

    def as_int(self) -> tuple[int, int]:
        return (int(round(self.width)), int(round(self.height)))


@dataclass(frozen=True, slots=True)
class Rect:
    """Axis-aligned box in screen space."""
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def center(self) -> Point:
        return Point(self.left + self.width / 2, self.top + self.height / 2)

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)

    def contains(self, point: Point) -> bool:
        """Check if point lies inside the box (edges included)."""
        return (
            self.left <= point.x <= self.right and
            self.top <= point.y <= self.bottom
        )


@dataclass(frozen=True, slots=True)
class ZoomResult:
    """Outcome of an anchored zoom step.

    When ``exited`` is True the caller must leave zoom mode; scale is then 1
    and translate is the origin.
    """
    scale: float
    translate: Point
    exited: bool = False


def _require_positive(**values: float) -> None:
    for name, value in values.items():
        if not value > 0:
            raise ValidationError(f"{name} must be positive, got {value}", field=name)


def fit_contain(
    container_w: float,
    container_h: float,
    content_w: float,
    content_h: float
) -> Size:
    """Largest size fitting inside the container with the content's aspect ratio.

    The constrained dimension always equals the container's exactly. When
    the aspect ratios match both dimensions are filled.

    Raises:
        ValidationError: If any dimension is not positive
    """
    _require_positive(
        container_w=container_w,
        container_h=container_h,
        content_w=content_w,
        content_h=content_h,
    )
    container_aspect = container_w / container_h
    content_aspect = content_w / content_h

    if container_aspect > content_aspect:
        # Container is wider, height is constrained
        return Size(min(container_w, container_h * content_aspect), container_h)
    if container_aspect < content_aspect:
        # Container is taller, width is constrained
        return Size(container_w, min(container_h, container_w / content_aspect))
    return Size(container_w, container_h)


def centered_rect(container: Rect, size: Size) -> Rect:
    """Place ``size`` centred inside ``container``."""
    return Rect(
        container.left + (container.width - size.width) / 2,
        container.top + (container.height - size.height) / 2,
        size.width,
        size.height,
    )


def screen_to_natural(
    point: Point,
    display_rect: Rect,
    natural_w: float,
    natural_h: float
) -> Point:
    """Map a viewport coordinate to the image's natural pixel space.

    ``display_rect`` must be the image's on-screen box after every zoom and
    pan transform, so the mapping targets exactly what the user sees.
    """
    _require_positive(display_width=display_rect.width, display_height=display_rect.height)
    scale_x = natural_w / display_rect.width
    scale_y = natural_h / display_rect.height
    return Point(
        (point.x - display_rect.left) * scale_x,
        (point.y - display_rect.top) * scale_y,
    )


def natural_to_screen(
    point: Point,
    display_rect: Rect,
    natural_w: float,
    natural_h: float
) -> Point:
    """Inverse of :func:`screen_to_natural`."""
    _require_positive(natural_w=natural_w, natural_h=natural_h)
    return Point(
        display_rect.left + point.x * display_rect.width / natural_w,
        display_rect.top + point.y * display_rect.height / natural_h,
    )


def clamp_scale(scale: float, max_zoom: float = VIEWPORT_CONFIG.max_zoom) -> float:
    """Clamp a zoom factor into ``[1, max_zoom]``."""
    return min(max(1.0, scale), max_zoom)


def zoom_anchored(
    old_scale: float,
    new_scale: float,
    translate: Point,
    anchor: Point,
    max_zoom: float = VIEWPORT_CONFIG.max_zoom
) -> ZoomResult:
    """Rescale so the content under ``anchor`` stays visually fixed.

    ``anchor`` and ``translate`` are both relative to the transform origin.
    ``translate' = anchor - (anchor - translate) * (new / old)``.
    A clamped scale of 1 means zoom mode is over: translate snaps to origin.
    """
    _require_positive(old_scale=old_scale)
    scale = clamp_scale(new_scale, max_zoom)
    if scale <= 1.0:
        return ZoomResult(scale=1.0, translate=ORIGIN, exited=True)

    ratio = scale / old_scale
    return ZoomResult(scale=scale, translate=anchor - (anchor - translate) * ratio)


def transformed_rect(base: Rect, origin: Point, scale: float, translate: Point) -> Rect:
    """On-screen box of content laid out at ``base`` after translate+scale.

    Mirrors a ``translate(t) scale(s)`` transform whose origin is ``origin``:
    a content point ``q`` lands at ``origin + t + s * (q - origin)``.
    """
    top_left = origin + translate + (Point(base.left, base.top) - origin) * scale
    return Rect(top_left.x, top_left.y, base.width * scale, base.height * scale)
