"""Asset registry - the single source of truth for imported photos."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Callable, Iterable, Iterator

from ...domain.entities.asset import AssetStatus, ImageAsset, ImageSource, ResultImage
from ...exceptions import AssetNotFoundError, InvalidTransitionError
from ..ports.event_publisher import EventPublisher, ProcessingEvent, SimpleEventPublisher

logger = logging.getLogger(__name__)


class AssetRegistry:
    """Ordered, id-keyed collection of assets with enforced transitions.

    Every mutation replaces the stored asset with a new immutable snapshot
    in a single step, so concurrent tasks on the event loop never see a
    partially applied change. Insertion order is preserved for display and
    is independent of completion order.
    """

    def __init__(self, event_publisher: EventPublisher | None = None):
        self._assets: dict[str, ImageAsset] = {}
        self._selected_id: str | None = None
        self._events = event_publisher or SimpleEventPublisher()

    # ---- read access ----

    def __len__(self) -> int:
        return len(self._assets)

    def __iter__(self) -> Iterator[ImageAsset]:
        return iter(list(self._assets.values()))

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._assets

    def get(self, asset_id: str) -> ImageAsset:
        """Return the current snapshot of an asset.

        Raises:
            AssetNotFoundError: If the id is not registered
        """
        try:
            return self._assets[asset_id]
        except KeyError:
            raise AssetNotFoundError(asset_id) from None

    def ids(self) -> list[str]:
        return list(self._assets)

    def with_status(self, *statuses: AssetStatus) -> list[ImageAsset]:
        return [a for a in self._assets.values() if a.status in statuses]

    def candidates(self) -> list[ImageAsset]:
        """Assets a batch should (re-)dispatch: pending or failed."""
        return [a for a in self._assets.values() if a.is_candidate]

    def completed(self) -> list[ImageAsset]:
        return self.with_status(AssetStatus.COMPLETED)

    # ---- selection ----

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def selected(self) -> ImageAsset | None:
        """The selected asset, falling back to the first one.

        The selection id is a weak reference and may point at a removed
        asset.
        """
        asset = self._assets.get(self._selected_id) if self._selected_id else None
        if asset is not None:
            return asset
        return next(iter(self._assets.values()), None)

    def select(self, asset_id: str) -> ImageAsset:
        asset = self.get(asset_id)
        self._selected_id = asset_id
        self._publish("asset_selected", f"Selected {asset.name}", asset_id)
        return asset

    # ---- mutations ----

    def add(self, sources: Iterable[ImageSource]) -> list[str]:
        """Register one pending asset per source.

        Selection moves to the first new asset.

        Returns:
            Ids of the new assets, in input order
        """
        new_ids: list[str] = []
        for source in sources:
            asset_id = uuid.uuid4().hex
            self._assets[asset_id] = ImageAsset(
                id=asset_id,
                source=source,
                natural_size=source.probe_size(),
                preview=source.make_preview(),
            )
            new_ids.append(asset_id)
            logger.debug(f"Registered {source.name} as {asset_id}")

        if new_ids:
            self._selected_id = new_ids[0]
            self._publish("assets_added", f"Added {len(new_ids)} image(s)", new_ids[0])
        return new_ids

    def remove(self, asset_id: str) -> None:
        """Delete an asset; selection falls back if it was selected."""
        asset = self.get(asset_id)
        del self._assets[asset_id]
        if self._selected_id == asset_id:
            self._selected_id = next(iter(self._assets), None)
        logger.info(f"Removed {asset.name}")
        self._publish("asset_removed", f"Removed {asset.name}", asset_id)

    def transition(
        self,
        asset_id: str,
        status: AssetStatus,
        result: ResultImage | None = None,
        error_message: str | None = None
    ) -> ImageAsset:
        """Move an asset to ``status`` keeping payload invariants.

        ``completed`` requires a result, ``error`` requires a message; any
        other status carries neither. Entering ``processing`` drops the
        previous error and result.

        Raises:
            AssetNotFoundError: If the id is not registered
            InvalidTransitionError: If the payload does not fit the status
        """
        asset = self.get(asset_id)
        status = AssetStatus(status)

        if status is AssetStatus.COMPLETED:
            if result is None:
                raise InvalidTransitionError(
                    "Completing an asset requires a result", asset_id, status.value
                )
            if error_message is not None:
                raise InvalidTransitionError(
                    "A completed asset cannot carry an error", asset_id, status.value
                )
        elif status is AssetStatus.ERROR:
            if not error_message:
                raise InvalidTransitionError(
                    "Failing an asset requires an error message", asset_id, status.value
                )
            if result is not None:
                raise InvalidTransitionError(
                    "A failed asset cannot carry a result", asset_id, status.value
                )
        elif result is not None or error_message is not None:
            raise InvalidTransitionError(
                f"Status '{status.value}' carries no result or error", asset_id, status.value
            )

        updated = replace(asset, status=status, result=result, error_message=error_message)
        self._assets[asset_id] = updated
        self._publish(f"asset_{status.value}", error_message or f"{asset.name}: {status.value}", asset_id)
        return updated

    # ---- events ----

    def subscribe(self, callback: Callable[[ProcessingEvent], None]) -> None:
        self._events.subscribe(callback)

    def _publish(self, stage: str, message: str, asset_id: str | None) -> None:
        self._events.publish(ProcessingEvent(stage=stage, message=message, asset_id=asset_id))
