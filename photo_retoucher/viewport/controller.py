"""Viewport controller - zoom, pan, compare slider and mask drawing.

Headless state machine behind the single-image view. A renderer feeds it
container geometry and pointer events and reads back a :class:`ViewportFrame`
describing what to draw where.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ..config import MASK_CONFIG, VIEWPORT_CONFIG, ViewportConfig
from ..domain.entities.asset import ImageAsset
from ..domain.value_objects.geometry import (
    ORIGIN,
    Point,
    Rect,
    centered_rect,
    fit_contain,
    transformed_rect,
    zoom_anchored,
)
from ..exceptions import GeometrySyncError, InvalidStateError, ValidationError
from .mask_surface import MaskSurface

logger = logging.getLogger(__name__)


class ViewportMode(str, Enum):
    """Mutually exclusive interaction modes."""
    NORMAL = "normal"
    COMPARING = "comparing"
    ZOOMED = "zoomed"
    MASKING = "masking"


class Interaction(str, Enum):
    """What the current pointer gesture drives."""
    NONE = "none"
    PAN = "pan"
    SLIDER = "slider"
    DRAW = "draw"


@dataclass(frozen=True, slots=True)
class ViewportTransform:
    """Zoom/pan transform applied around the container centre."""
    scale: float = 1.0
    translate_x: float = 0.0
    translate_y: float = 0.0

    @property
    def translate(self) -> Point:
        return Point(self.translate_x, self.translate_y)

    @property
    def is_identity(self) -> bool:
        return self.scale == 1.0 and self.translate_x == 0.0 and self.translate_y == 0.0

    @classmethod
    def from_point(cls, scale: float, translate: Point) -> ViewportTransform:
        return cls(scale, translate.x, translate.y)


IDENTITY = ViewportTransform()


@dataclass(frozen=True, slots=True)
class ViewportFrame:
    """Everything a renderer needs to draw the current view.

    ``base`` is drawn fully inside ``base_rect``. In compare mode ``overlay``
    (the untouched source) is drawn inside ``overlay_rect`` and hard-clipped
    to the region left of ``clip_x``.
    """
    asset_id: str | None
    mode: ViewportMode
    transform: ViewportTransform
    slider_position: float
    base: bytes | None = None
    base_rect: Rect | None = None
    overlay: bytes | None = None
    overlay_rect: Rect | None = None
    clip_x: float | None = None
    mask_rect: Rect | None = None
    has_mask: bool = False


class ViewportController:
    """Owns view state for the currently displayed asset.

    The mask surface belongs to whichever asset is on screen; switching
    assets clears it before anything else can happen.
    """

    def __init__(
        self,
        config: ViewportConfig = VIEWPORT_CONFIG,
        mask_surface: MaskSurface | None = None
    ):
        self._config = config
        self._mask = mask_surface or MaskSurface()
        self._asset: ImageAsset | None = None
        self._result_size: tuple[int, int] | None = None
        self._container: Rect | None = None
        self._mode = ViewportMode.NORMAL
        self._transform = IDENTITY
        self._slider = config.default_slider
        self._brush_size = MASK_CONFIG.default_brush_size
        self._interaction = Interaction.NONE
        self._drag_origin: Point | None = None
        self._drag_translate: Point = ORIGIN

    # ---- read access ----

    @property
    def mode(self) -> ViewportMode:
        return self._mode

    @property
    def transform(self) -> ViewportTransform:
        return self._transform

    @property
    def slider_position(self) -> float:
        return self._slider

    @property
    def brush_size(self) -> int:
        return self._brush_size

    @property
    def interaction(self) -> Interaction:
        return self._interaction

    @property
    def has_mask(self) -> bool:
        return self._mask.has_content

    @property
    def mask(self) -> MaskSurface:
        return self._mask

    @property
    def asset_id(self) -> str | None:
        return self._asset.id if self._asset else None

    @property
    def container(self) -> Rect | None:
        return self._container

    # ---- asset ownership ----

    def show_asset(self, asset: ImageAsset | None) -> None:
        """Display a different asset (or nothing).

        Clears the mask and resets the transform synchronously. Re-showing
        the same id only refreshes the snapshot.
        """
        if asset is not None and self._asset is not None and asset.id == self._asset.id:
            self.update_asset(asset)
            return

        self._end_interaction()
        self._mask.clear()
        self._asset = asset
        self._result_size = asset.result.probe_size() if asset and asset.is_completed else None
        self._reset_transform()
        if self._mode is ViewportMode.ZOOMED:
            self._mode = ViewportMode.NORMAL

        if asset is None:
            self._mask.release()
        elif self._mode is ViewportMode.MASKING:
            self._sync_mask()
        logger.debug(f"Viewport now showing {asset.id if asset else None}")

    def update_asset(self, asset: ImageAsset) -> None:
        """Refresh the snapshot of the displayed asset after a transition."""
        if self._asset is None or asset.id != self._asset.id:
            return
        had_result = self._asset.result
        self._asset = asset
        if asset.result is not had_result:
            self._result_size = asset.result.probe_size() if asset.is_completed else None
            if self._interaction is Interaction.SLIDER and not asset.is_completed:
                self._end_interaction()

    # ---- geometry ----

    def resize_container(self, rect: Rect) -> None:
        """Container box changed; re-sync display geometry and mask."""
        if rect.width <= 0 or rect.height <= 0:
            raise ValidationError("Container must have a positive size", field="container")
        self._container = rect
        if self._mode is ViewportMode.MASKING and self._asset is not None:
            self._sync_mask()

    def _shown_size(self) -> tuple[int, int] | None:
        """Natural size of the image drawn as the base layer."""
        if self._asset is None:
            return None
        if self._mode is not ViewportMode.MASKING and self._result_size is not None:
            return self._result_size
        return self._asset.natural_size

    def _fit_rect(self, size: tuple[int, int] | None) -> Rect | None:
        if size is None or self._container is None:
            return None
        return centered_rect(self._container, fit_contain(
            self._container.width, self._container.height, size[0], size[1]
        ))

    def image_rect(self) -> Rect | None:
        """Untransformed on-screen box of the base image."""
        return self._fit_rect(self._shown_size())

    def display_rect(self) -> Rect | None:
        """On-screen box of the base image with zoom and pan applied."""
        base = self.image_rect()
        if base is None:
            return None
        if self._transform.is_identity:
            return base
        return transformed_rect(
            base, self._container.center, self._transform.scale, self._transform.translate
        )

    def _sync_mask(self) -> None:
        if self._container is None or self._asset is None:
            return
        w, h = self._asset.natural_size
        self._mask.resize(w, h, self._container)

    # ---- mode transitions ----

    def set_compare(self, enabled: bool) -> None:
        """Enter or leave before/after comparison.

        Entering forces masking and zoom off.
        """
        if enabled:
            if self._mode is ViewportMode.COMPARING:
                return
            self._leave_current_mode()
            self._mode = ViewportMode.COMPARING
        elif self._mode is ViewportMode.COMPARING:
            self._end_interaction()
            self._mode = ViewportMode.NORMAL

    def set_masking(self, enabled: bool) -> None:
        """Enter or leave mask drawing.

        Entering forces comparison and zoom off and starts with an empty
        overlay; leaving discards the overlay.
        """
        if enabled:
            if self._mode is ViewportMode.MASKING:
                return
            self._leave_current_mode()
            self._mode = ViewportMode.MASKING
            self._mask.clear()
            self._sync_mask()
        elif self._mode is ViewportMode.MASKING:
            self._end_interaction()
            self._mask.release()
            self._mode = ViewportMode.NORMAL

    def toggle_zoom(self, anchor: Point | None = None) -> None:
        """Enter zoom at the fixed zoomed-in scale, or leave it.

        ``anchor`` is the gesture origin in screen space; defaults to the
        container centre.
        """
        if self._mode is ViewportMode.ZOOMED:
            self._exit_zoom()
            return
        if self._mode is ViewportMode.MASKING:
            raise InvalidStateError("Zoom is not available while masking")
        self._enter_zoom(anchor)

    def wheel(self, delta_y: float, point: Point) -> None:
        """Scroll gesture: zooms toward the pointer."""
        if delta_y == 0 or self._container is None:
            return
        if self._mode is ViewportMode.NORMAL:
            if delta_y < 0:
                self._enter_zoom(point)
            return
        if self._mode is not ViewportMode.ZOOMED:
            return

        step = self._config.zoom_step if delta_y < 0 else -self._config.zoom_step
        result = zoom_anchored(
            self._transform.scale,
            self._transform.scale + step,
            self._transform.translate,
            point - self._container.center,
            self._config.max_zoom,
        )
        if result.exited:
            self._exit_zoom()
            return
        self._transform = ViewportTransform.from_point(result.scale, result.translate)

    def _enter_zoom(self, anchor: Point | None) -> None:
        if self._container is None:
            raise InvalidStateError("Viewport has no container size yet")
        self._leave_current_mode()
        origin = self._container.center
        anchor_rel = (anchor - origin) if anchor is not None else ORIGIN
        result = zoom_anchored(1.0, self._config.zoomed_in_scale, ORIGIN, anchor_rel, self._config.max_zoom)
        self._mode = ViewportMode.ZOOMED
        self._transform = ViewportTransform.from_point(result.scale, result.translate)
        if result.exited:
            self._exit_zoom()

    def _exit_zoom(self) -> None:
        self._end_interaction()
        self._reset_transform()
        self._mode = ViewportMode.NORMAL

    def _leave_current_mode(self) -> None:
        """Turn off whatever exclusive mode is active."""
        self._end_interaction()
        if self._mode is ViewportMode.ZOOMED:
            self._reset_transform()
        elif self._mode is ViewportMode.MASKING:
            self._mask.release()
        self._mode = ViewportMode.NORMAL

    def _reset_transform(self) -> None:
        self._transform = IDENTITY

    # ---- pointer routing ----

    def pointer_down(self, point: Point) -> Interaction:
        """Start a gesture. Routes to at most one interaction."""
        self._end_interaction()
        rect = self.display_rect()
        if rect is None or not rect.contains(point):
            return Interaction.NONE

        if self._mode is ViewportMode.ZOOMED and self._transform.scale > 1.0:
            self._interaction = Interaction.PAN
            self._drag_origin = point
            self._drag_translate = self._transform.translate
        elif self._mode is ViewportMode.COMPARING and self._asset is not None and self._asset.is_completed:
            self._interaction = Interaction.SLIDER
            self._move_slider(point)
        elif self._mode is ViewportMode.MASKING:
            self._interaction = Interaction.DRAW
            self._mask.begin_stroke(point, self._brush_size)
        return self._interaction

    def pointer_move(self, point: Point) -> None:
        if self._interaction is Interaction.PAN:
            delta = point - self._drag_origin
            translate = self._drag_translate + delta
            self._transform = ViewportTransform.from_point(self._transform.scale, translate)
        elif self._interaction is Interaction.SLIDER:
            self._move_slider(point)
        elif self._interaction is Interaction.DRAW:
            self._mask.continue_stroke(point)

    def pointer_up(self) -> None:
        self._end_interaction()

    def _end_interaction(self) -> None:
        if self._interaction is Interaction.DRAW:
            self._mask.end_stroke()
        self._interaction = Interaction.NONE
        self._drag_origin = None

    def _move_slider(self, point: Point) -> None:
        rect = self.display_rect()
        if rect is None:
            return
        x = min(max(point.x - rect.left, 0.0), rect.width)
        self._slider = x / rect.width * 100.0

    def set_slider_position(self, value: float) -> None:
        self._slider = min(max(float(value), 0.0), 100.0)

    # ---- mask ----

    def set_brush_size(self, value: int) -> None:
        if not MASK_CONFIG.min_brush_size <= value <= MASK_CONFIG.max_brush_size:
            raise ValidationError(
                f"Brush size must be between {MASK_CONFIG.min_brush_size} "
                f"and {MASK_CONFIG.max_brush_size}",
                field="brush_size",
            )
        self._brush_size = int(value)

    def cancel_mask(self) -> None:
        """Discard drawn strokes without leaving mask mode."""
        self._end_interaction()
        self._mask.clear()

    def export_mask(self) -> bytes | None:
        """Serialize the overlay for submission.

        The strokes stay on the overlay; call ``cancel_mask`` once the
        submission has been accepted. Returns None when nothing was drawn.

        Raises:
            GeometrySyncError: If the overlay no longer matches the displayed
                asset; the overlay is discarded
        """
        if self._mode is not ViewportMode.MASKING or self._asset is None:
            return None
        self._end_interaction()
        if not self._mask.has_content:
            return None
        if self._mask.natural_size != tuple(self._asset.natural_size):
            expected = tuple(self._asset.natural_size)
            actual = self._mask.natural_size
            self._mask.clear()
            raise GeometrySyncError(
                "Mask overlay is out of sync with the displayed image",
                expected=expected,
                actual=actual,
            )
        return self._mask.serialize()

    # ---- render model ----

    def frame(self) -> ViewportFrame:
        """Describe the current view for the renderer."""
        asset = self._asset
        if asset is None:
            return ViewportFrame(None, self._mode, self._transform, self._slider)

        base_rect = self.display_rect()
        if self._mode is ViewportMode.MASKING:
            return ViewportFrame(
                asset.id, self._mode, self._transform, self._slider,
                base=asset.source.data,
                base_rect=base_rect,
                mask_rect=self._mask.display_rect,
                has_mask=self._mask.has_content,
            )

        if self._mode is ViewportMode.COMPARING and asset.is_completed:
            return ViewportFrame(
                asset.id, self._mode, self._transform, self._slider,
                base=asset.result.data,
                base_rect=base_rect,
                overlay=asset.source.data,
                overlay_rect=self._fit_rect(asset.natural_size),
                clip_x=base_rect.left + base_rect.width * self._slider / 100.0 if base_rect else None,
            )

        return ViewportFrame(
            asset.id, self._mode, self._transform, self._slider,
            base=asset.display_bytes,
            base_rect=base_rect,
        )
