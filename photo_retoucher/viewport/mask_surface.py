"""Drawable mask raster kept in lockstep with the displayed image."""

from __future__ import annotations

import io
import logging

import cv2
import numpy as np
import numpy.typing as npt
from PIL import Image

from ..config import MASK_CONFIG
from ..domain.value_objects.geometry import (
    Point,
    Rect,
    centered_rect,
    fit_contain,
    screen_to_natural,
)
from ..exceptions import GeometrySyncError, InvalidStateError

logger = logging.getLogger(__name__)

# Type aliases
RGBAArray = npt.NDArray[np.uint8]  # HxWx4

# Sub-pixel precision for cv2 drawing (coordinates scaled by 2**SHIFT)
_SHIFT = 4
_SCALE = 1 << _SHIFT


def _fixed(point: Point) -> tuple[int, int]:
    return (int(round(point.x * _SCALE)), int(round(point.y * _SCALE)))


class MaskSurface:
    """RGBA raster at the image's natural resolution.

    The raster holds only drawn strokes on a transparent background. Its
    on-screen box (``display_rect``) tracks the rendered image so pointer
    positions map to the pixels the user actually targeted.
    """

    def __init__(self, stroke_color: tuple[int, int, int, int] = MASK_CONFIG.stroke_color):
        self._stroke_color = stroke_color
        self._raster: RGBAArray | None = None
        self._natural_size: tuple[int, int] | None = None
        self._display_rect: Rect | None = None
        self._has_content = False
        self._last_point: Point | None = None
        self._line_width = 0.0

    @property
    def natural_size(self) -> tuple[int, int] | None:
        return self._natural_size

    @property
    def display_rect(self) -> Rect | None:
        return self._display_rect

    @property
    def has_content(self) -> bool:
        return self._has_content

    @property
    def is_drawing(self) -> bool:
        return self._last_point is not None

    @property
    def line_width(self) -> float:
        """Width of the active (or last) stroke in image pixels."""
        return self._line_width

    def resize(self, natural_w: int, natural_h: int, container_rect: Rect) -> None:
        """Sync raster resolution and on-screen box.

        The raster is reallocated only when the natural resolution changes,
        which discards any drawn content.
        """
        natural_w, natural_h = int(natural_w), int(natural_h)
        if self._natural_size != (natural_w, natural_h):
            if self._has_content:
                logger.debug("Mask resolution changed, discarding drawn content")
            self._raster = np.zeros((natural_h, natural_w, 4), dtype=np.uint8)
            self._natural_size = (natural_w, natural_h)
            self._has_content = False
            self._last_point = None

        render = fit_contain(container_rect.width, container_rect.height, natural_w, natural_h)
        self._display_rect = centered_rect(container_rect, render)

    def to_natural(self, client_point: Point) -> Point:
        """Map a viewport coordinate onto the raster."""
        if self._natural_size is None or self._display_rect is None:
            raise InvalidStateError("Mask surface has not been sized")
        w, h = self._natural_size
        return screen_to_natural(client_point, self._display_rect, w, h)

    def begin_stroke(self, client_point: Point, brush_percent: float) -> None:
        """Start a round-capped stroke at ``client_point``.

        Width scales with the image so a given brush size feels the same at
        any resolution.
        """
        start = self.to_natural(client_point)
        natural_w = self._natural_size[0]
        self._line_width = max(
            MASK_CONFIG.min_brush_width,
            natural_w / MASK_CONFIG.brush_reference_width * brush_percent,
        )
        self._last_point = start
        cv2.circle(
            self._raster,
            _fixed(start),
            int(round(self._line_width / 2 * _SCALE)),
            self._stroke_color,
            thickness=-1,
            lineType=cv2.LINE_AA,
            shift=_SHIFT,
        )

    def continue_stroke(self, client_point: Point) -> None:
        """Extend the active stroke. No-op when no stroke is active."""
        if self._last_point is None:
            return
        point = self.to_natural(client_point)
        # cv2 thick lines are drawn with round ends, giving round joins too
        cv2.line(
            self._raster,
            _fixed(self._last_point),
            _fixed(point),
            self._stroke_color,
            thickness=max(1, int(round(self._line_width))),
            lineType=cv2.LINE_AA,
            shift=_SHIFT,
        )
        self._last_point = point

    def end_stroke(self) -> None:
        """Close the active stroke."""
        if self._last_point is None:
            return
        self._last_point = None
        self._has_content = True

    def clear(self) -> None:
        """Erase all strokes."""
        if self._raster is not None:
            self._raster[:] = 0
        self._last_point = None
        self._has_content = False

    def release(self) -> None:
        """Drop the raster entirely (mask mode left)."""
        self._raster = None
        self._natural_size = None
        self._display_rect = None
        self._last_point = None
        self._has_content = False

    def alpha(self) -> npt.NDArray[np.uint8]:
        """Copy of the alpha channel (non-zero where strokes were drawn)."""
        if self._raster is None:
            raise InvalidStateError("Mask surface has not been sized")
        return self._raster[:, :, 3].copy()

    def serialize(self) -> bytes:
        """Export the raster as a lossless RGBA PNG.

        Raises:
            GeometrySyncError: If the raster no longer matches its natural size
        """
        if self._raster is None or self._natural_size is None:
            raise InvalidStateError("Mask surface has not been sized")
        h, w = self._raster.shape[:2]
        if (w, h) != self._natural_size:
            raise GeometrySyncError(
                "Mask raster does not match the image resolution",
                expected=self._natural_size,
                actual=(w, h),
            )
        buf = io.BytesIO()
        Image.fromarray(self._raster).save(buf, format="PNG")
        return buf.getvalue()
