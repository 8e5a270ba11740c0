"""Editing session - the boundary a UI or CLI drives."""

from __future__ import annotations

import asyncio
import io
import logging
import random
from pathlib import Path
from typing import Callable, Iterable

import pydantic
from PIL import Image, UnidentifiedImageError

from ...config import SUPPORTED_IMAGE_EXTENSIONS
from ...domain.entities.asset import ImageAsset, ImageSource
from ...domain.value_objects.config import EngineConfig
from ...domain.value_objects.options import ProcessingOptions, ProjectSettings
from ...exceptions import GeometrySyncError, InvalidStateError, ValidationError
from ...viewport.controller import ViewportController
from ..ports.event_publisher import EventPublisher, ProcessingEvent, SimpleEventPublisher
from ..ports.image_service import ImageEditService
from .asset_registry import AssetRegistry
from .orchestrator import BatchResult, ProcessingOrchestrator, Sleep

logger = logging.getLogger(__name__)

EXPORT_SUFFIX = "-processed"


def collect_image_files(path: Path | str) -> list[Path]:
    """Return the supported image files at ``path`` (a file or a folder).

    Folder contents are sorted by name; sub-folders are not searched.

    Raises:
        ValidationError: If the path does not exist or holds no images
    """
    path = Path(path)
    if not path.exists():
        raise ValidationError(f"Input path does not exist: {path}", field="input")

    if path.is_file():
        files = [path] if path.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS else []
    else:
        files = sorted(
            p for p in path.iterdir()
            if p.is_file() and p.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS
        )

    if not files:
        raise ValidationError(f"No supported images found at {path}", field="input")
    return files


def _mask_size(mask: bytes) -> tuple[int, int]:
    try:
        with Image.open(io.BytesIO(mask)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError(f"Mask is not a readable image: {e}", field="mask") from e


class EditingSession:
    """One editing session: assets, settings, dispatch and the viewport.

    All three collaborators share one event publisher, so registry changes
    reach the viewport without the caller relaying them.
    """

    def __init__(
        self,
        service: ImageEditService,
        config: EngineConfig | None = None,
        settings: ProjectSettings | None = None,
        viewport: ViewportController | None = None,
        event_publisher: EventPublisher | None = None,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None
    ):
        self._events = event_publisher or SimpleEventPublisher()
        self._registry = AssetRegistry(self._events)
        self._orchestrator = ProcessingOrchestrator.from_config(
            self._registry,
            service,
            config or EngineConfig(),
            sleep=sleep,
            event_publisher=self._events,
            rng=rng,
        )
        self._viewport = viewport or ViewportController()
        self._settings = settings or ProjectSettings()
        self._events.subscribe(self._on_event)

    # ---- read access ----

    @property
    def registry(self) -> AssetRegistry:
        return self._registry

    @property
    def orchestrator(self) -> ProcessingOrchestrator:
        return self._orchestrator

    @property
    def viewport(self) -> ViewportController:
        return self._viewport

    @property
    def assets(self) -> list[ImageAsset]:
        return list(self._registry)

    @property
    def selected(self) -> ImageAsset | None:
        return self._registry.selected

    @property
    def settings(self) -> ProjectSettings:
        return self._settings

    @property
    def is_processing(self) -> bool:
        """True while a batch is running (masked edits do not count)."""
        return self._orchestrator.in_progress

    def subscribe(self, callback: Callable[[ProcessingEvent], None]) -> None:
        self._events.subscribe(callback)

    # ---- settings ----

    def update_options(self, **changes) -> ProcessingOptions:
        """Swap in a new options snapshot with ``changes`` applied.

        Requests already dispatched keep the snapshot they were built with.

        Raises:
            ValidationError: If the resulting options are invalid
        """
        data = self._settings.options.model_dump()
        data.update(changes)
        try:
            options = ProcessingOptions(**data)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid processing options: {e}", field="options") from e
        self._settings = self._settings.model_copy(update={"options": options})
        return options

    def update_settings(
        self,
        project_context: str | None = None,
        extra_prompt: str | None = None
    ) -> ProjectSettings:
        changes = {}
        if project_context is not None:
            changes["project_context"] = project_context
        if extra_prompt is not None:
            changes["extra_prompt"] = extra_prompt
        self._settings = self._settings.model_copy(update=changes)
        return self._settings

    # ---- assets ----

    def add_assets(self, sources: Iterable[ImageSource]) -> list[str]:
        """Register new photos; the first of them becomes the displayed one."""
        ids = self._registry.add(sources)
        if ids:
            self._viewport.show_asset(self._registry.selected)
        return ids

    def add_files(self, paths: Iterable[Path | str]) -> list[str]:
        return self.add_assets(ImageSource.from_file(p) for p in paths)

    def delete_asset(self, asset_id: str) -> None:
        """Remove an asset; the viewport falls back to the new selection."""
        displayed = self._viewport.asset_id == asset_id
        self._registry.remove(asset_id)
        if displayed:
            self._viewport.show_asset(self._registry.selected)

    def select_asset(self, asset_id: str) -> ImageAsset:
        """Display ``asset_id``; any mask drawn on the previous asset is dropped."""
        asset = self._registry.select(asset_id)
        self._viewport.show_asset(asset)
        return asset

    # ---- processing ----

    async def start_batch(self) -> BatchResult:
        """Process every pending or failed asset with the current settings."""
        return await self._orchestrator.run_batch(self._settings)

    async def submit_masked_edit(
        self,
        asset_id: str,
        mask: bytes,
        replacement_text: str | None = None
    ) -> ImageAsset | None:
        """Inpaint (no text) or replace (with text) the masked region.

        Raises:
            GeometrySyncError: If the mask size differs from the asset's
                natural size; the mask is discarded
            InvalidStateError: If the asset already has a request in flight
        """
        return await self._submit_mask(asset_id, mask, replacement_text)

    async def submit_current_mask(self, replacement_text: str | None = None) -> ImageAsset | None:
        """Submit whatever is drawn on the displayed asset.

        The strokes are cleared once the request is accepted; a refused
        submission leaves them in place.

        Raises:
            InvalidStateError: If nothing is displayed, nothing was drawn or
                the asset already has a request in flight
        """
        asset_id = self._viewport.asset_id
        if asset_id is None:
            raise InvalidStateError("No image is displayed")
        mask = self._viewport.export_mask()
        if mask is None:
            raise InvalidStateError("Draw over the area to edit first")

        def clear_strokes() -> None:
            if self._viewport.asset_id == asset_id:
                self._viewport.cancel_mask()

        return await self._submit_mask(asset_id, mask, replacement_text, clear_strokes)

    async def _submit_mask(
        self,
        asset_id: str,
        mask: bytes,
        replacement_text: str | None,
        on_accepted: Callable[[], None] | None = None
    ) -> ImageAsset | None:
        asset = self._registry.get(asset_id)
        size = _mask_size(mask)
        if size != tuple(asset.natural_size):
            if self._viewport.asset_id == asset_id:
                self._viewport.cancel_mask()
            raise GeometrySyncError(
                f"Mask size {size} does not match {asset.name} {tuple(asset.natural_size)}",
                expected=tuple(asset.natural_size),
                actual=size,
            )
        text = replacement_text.strip() if replacement_text else None
        return await self._orchestrator.submit_masked_edit(
            asset_id, mask, text or None, self._settings, on_accepted=on_accepted
        )

    def cancel(self) -> None:
        self._orchestrator.cancel()

    # ---- export ----

    def export_results(self, output_dir: Path | str) -> list[Path]:
        """Write every completed result as ``<stem>-processed.<ext>``.

        Returns:
            Paths written, in display order
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        written: list[Path] = []
        used: set[str] = set()
        for asset in self._registry.completed():
            stem = f"{asset.source.stem}{EXPORT_SUFFIX}"
            name = f"{stem}{asset.result.extension}"
            counter = 2
            while name in used:
                name = f"{stem}_{counter}{asset.result.extension}"
                counter += 1
            used.add(name)

            path = output_dir / name
            path.write_bytes(asset.result.data)
            written.append(path)
            logger.info(f"Saved {path}")
        return written

    # ---- events ----

    def _on_event(self, event: ProcessingEvent) -> None:
        asset_id = event.asset_id
        if asset_id is None or asset_id != self._viewport.asset_id:
            return
        if asset_id in self._registry:
            self._viewport.update_asset(self._registry.get(asset_id))
