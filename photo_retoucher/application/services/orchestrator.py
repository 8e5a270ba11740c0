"""Processing orchestrator - concurrent, retried edit requests per asset."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from ...config import RETRY_CONFIG
from ...domain.entities.asset import AssetStatus, ImageAsset, ResultImage
from ...domain.value_objects.config import EngineConfig
from ...domain.value_objects.options import ProjectSettings
from ...exceptions import (
    AssetNotFoundError,
    CredentialError,
    InvalidStateError,
    RetoucherError,
    TerminalServiceError,
    TransientServiceError,
)
from ..ports.event_publisher import EventPublisher, ProcessingEvent, SimpleEventPublisher
from ..ports.image_service import EditRequest, ImageEditService
from .asset_registry import AssetRegistry
from .request_builder import RequestBuilder

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

CANCELLED_MESSAGE = "Cancelled"


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for transient service failures."""
    max_retries: int = RETRY_CONFIG.max_retries
    base_delay_s: float = RETRY_CONFIG.base_delay_s
    max_jitter_s: float = RETRY_CONFIG.max_jitter_s

    def delay(self, attempt: int, rng: random.Random | None = None) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (0-based)."""
        jitter = (rng or random).uniform(0, self.max_jitter_s)
        return 2 ** (attempt + 1) * self.base_delay_s + jitter

    @classmethod
    def from_config(cls, config: EngineConfig) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            base_delay_s=config.base_delay_s,
            max_jitter_s=config.max_jitter_s,
        )


@dataclass
class BatchResult:
    """Result of one batch run."""
    total: int
    successful: int
    failed: int
    attempts: int
    processing_time_ms: float
    results: list[tuple[str, AssetStatus]] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        if self.total == 0:
            return 0.0
        return self.successful / self.total

    @classmethod
    def empty(cls) -> BatchResult:
        return cls(total=0, successful=0, failed=0, attempts=0, processing_time_ms=0.0)


@dataclass
class _Round:
    """Requests dispatched together share credential and cancel state."""
    credential_error: CredentialError | None = None
    cancelled: bool = False
    attempts: dict[str, int] = field(default_factory=dict)
    settled: set[str] = field(default_factory=set)


def describe_error(error: BaseException) -> str:
    """Human-readable message stored on a failed asset."""
    if isinstance(error, RetoucherError):
        return error.message
    text = str(error).strip()
    return text or f"Unexpected {type(error).__name__}"


class ProcessingOrchestrator:
    """Dispatch edit requests for assets and write outcomes back.

    Each asset runs its own attempt sequence; one asset failing never
    affects its siblings. A batch returns only after every request it
    dispatched has settled.
    """

    def __init__(
        self,
        registry: AssetRegistry,
        service: ImageEditService,
        request_builder: RequestBuilder | None = None,
        retry_policy: RetryPolicy | None = None,
        max_concurrency: int | None = None,
        attempt_timeout_s: float | None = None,
        sleep: Sleep = asyncio.sleep,
        event_publisher: EventPublisher | None = None,
        rng: random.Random | None = None
    ):
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._registry = registry
        self._service = service
        self._builder = request_builder or RequestBuilder()
        self._retry = retry_policy or RetryPolicy()
        self._max_concurrency = max_concurrency
        self._attempt_timeout_s = attempt_timeout_s
        self._sleep = sleep
        self._events = event_publisher or SimpleEventPublisher()
        self._rng = rng
        self._active_batches = 0
        self._rounds: list[_Round] = []

    @classmethod
    def from_config(
        cls,
        registry: AssetRegistry,
        service: ImageEditService,
        config: EngineConfig,
        **kwargs
    ) -> ProcessingOrchestrator:
        return cls(
            registry,
            service,
            retry_policy=RetryPolicy.from_config(config),
            max_concurrency=config.max_concurrency,
            attempt_timeout_s=config.attempt_timeout_s,
            **kwargs
        )

    @property
    def in_progress(self) -> bool:
        """True while any batch has requests that have not settled."""
        return self._active_batches > 0

    def cancel(self) -> None:
        """Stop every running round cooperatively.

        Attempts already in flight finish; nothing new starts and pending
        retries are abandoned. Affected assets end in ``error`` and stay
        re-triggerable.
        """
        for rnd in self._rounds:
            rnd.cancelled = True
        if self._rounds:
            logger.info("Cancellation requested")

    async def run_batch(self, settings: ProjectSettings) -> BatchResult:
        """Process every pending or failed asset concurrently.

        Completed and in-flight assets are never re-dispatched. Per-asset
        failures end up on the asset; this method does not raise for them.
        """
        candidates = self._registry.candidates()
        if not candidates:
            logger.info("No pending images to process")
            return BatchResult.empty()

        start_time = time.monotonic()
        rnd = _Round()
        semaphore = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency else None
        self._rounds.append(rnd)
        self._active_batches += 1

        self._events.publish(ProcessingEvent(
            stage="batch_start",
            message=f"Starting batch of {len(candidates)} image(s)",
            progress=0.0
        ))
        logger.info(f"Dispatching {len(candidates)} image(s)")

        try:
            jobs = []
            for asset in candidates:
                self._registry.transition(asset.id, AssetStatus.PROCESSING)
                jobs.append(self._process(asset, settings, rnd, semaphore))
            outcomes = await asyncio.gather(*jobs)
        except asyncio.CancelledError:
            # Jobs cancelled before they started never reach their own handler
            for asset in candidates:
                if asset.id not in rnd.settled:
                    self._record_failure(asset.id, TerminalServiceError(CANCELLED_MESSAGE))
            raise
        finally:
            self._active_batches -= 1
            self._rounds.remove(rnd)

        results = [
            (asset.id, AssetStatus.COMPLETED if ok else AssetStatus.ERROR)
            for asset, ok in zip(candidates, outcomes)
        ]
        successful = sum(1 for ok in outcomes if ok)
        attempts = sum(rnd.attempts.values())
        elapsed = (time.monotonic() - start_time) * 1000

        self._events.publish(ProcessingEvent(
            stage="batch_complete",
            message=f"Batch complete: {successful}/{len(candidates)} succeeded",
            progress=1.0
        ))
        logger.info(f"Batch complete: {successful}/{len(candidates)} succeeded")

        return BatchResult(
            total=len(candidates),
            successful=successful,
            failed=len(candidates) - successful,
            attempts=attempts,
            processing_time_ms=elapsed,
            results=results,
        )

    async def submit_masked_edit(
        self,
        asset_id: str,
        mask: bytes,
        replacement_text: str | None,
        settings: ProjectSettings,
        on_accepted: Callable[[], None] | None = None
    ) -> ImageAsset | None:
        """Inpaint/replace the masked region of one asset.

        Runs outside any batch and leaves ``in_progress`` untouched.
        ``on_accepted`` is called once the asset has entered ``processing``.

        Returns:
            The asset after the edit settled, or None if it was deleted
            meanwhile

        Raises:
            AssetNotFoundError: If the asset does not exist
            InvalidStateError: If the asset already has a request in flight
        """
        asset = self._registry.get(asset_id)
        if asset.status is AssetStatus.PROCESSING:
            raise InvalidStateError(f"{asset.name} is already being processed")

        self._registry.transition(asset_id, AssetStatus.PROCESSING)
        if on_accepted is not None:
            on_accepted()
        rnd = _Round()
        self._rounds.append(rnd)
        try:
            await self._process(
                asset, settings, rnd, None, mask=mask, replacement_text=replacement_text
            )
        finally:
            self._rounds.remove(rnd)

        if asset_id in self._registry:
            return self._registry.get(asset_id)
        return None

    async def _process(
        self,
        asset: ImageAsset,
        settings: ProjectSettings,
        rnd: _Round,
        semaphore: asyncio.Semaphore | None,
        mask: bytes | None = None,
        replacement_text: str | None = None
    ) -> bool:
        """Run one asset's attempt sequence and record the outcome."""
        asset_id = asset.id
        rnd.attempts[asset_id] = 0
        try:
            return await self._settle(asset, settings, rnd, semaphore, mask, replacement_text)
        except asyncio.CancelledError:
            self._record_failure(asset_id, TerminalServiceError(CANCELLED_MESSAGE))
            raise
        finally:
            rnd.settled.add(asset_id)

    async def _settle(
        self,
        asset: ImageAsset,
        settings: ProjectSettings,
        rnd: _Round,
        semaphore: asyncio.Semaphore | None,
        mask: bytes | None,
        replacement_text: str | None
    ) -> bool:
        asset_id = asset.id
        try:
            request = self._builder.build(
                asset, settings, mask=mask, replacement_text=replacement_text
            )
            result = await self._run_attempts(asset_id, request, rnd, semaphore)
        except CredentialError as e:
            if rnd.credential_error is None:
                rnd.credential_error = e
                logger.error(f"Credential problem, failing remaining work: {e.message}")
            return self._record_failure(asset_id, e)
        except Exception as e:
            return self._record_failure(asset_id, e)

        try:
            self._registry.transition(asset_id, AssetStatus.COMPLETED, result=result)
        except AssetNotFoundError:
            logger.info(f"Asset {asset_id} was removed while processing; result dropped")
            return False
        return True

    async def _run_attempts(
        self,
        asset_id: str,
        request: EditRequest,
        rnd: _Round,
        semaphore: asyncio.Semaphore | None
    ) -> ResultImage:
        """Attempt the request, retrying transient failures with backoff."""
        attempt = 0
        while True:
            self._check_round(rnd)
            try:
                async with semaphore or nullcontext():
                    self._check_round(rnd)
                    rnd.attempts[asset_id] += 1
                    return await self._attempt(request)
            except TransientServiceError as e:
                if attempt >= self._retry.max_retries:
                    raise TerminalServiceError(
                        f"Service still unavailable after {attempt + 1} attempts: {e.message}",
                        status_code=e.status_code,
                    ) from e
                delay = self._retry.delay(attempt, self._rng)
                logger.warning(
                    f"Transient failure for {asset_id} ({e.message}); "
                    f"retry {attempt + 1}/{self._retry.max_retries} in {delay:.1f}s"
                )
                self._events.publish(ProcessingEvent(
                    stage="asset_retry",
                    message=f"Retrying in {delay:.1f}s: {e.message}",
                    asset_id=asset_id,
                ))
                await self._sleep(delay)
                attempt += 1

    async def _attempt(self, request: EditRequest) -> ResultImage:
        if self._attempt_timeout_s is None:
            return await self._service.edit(request)
        try:
            return await asyncio.wait_for(self._service.edit(request), self._attempt_timeout_s)
        except asyncio.TimeoutError:
            raise TransientServiceError(
                f"Request timed out after {self._attempt_timeout_s:.0f}s"
            ) from None

    @staticmethod
    def _check_round(rnd: _Round) -> None:
        if rnd.cancelled:
            raise TerminalServiceError(CANCELLED_MESSAGE)
        if rnd.credential_error is not None:
            raise rnd.credential_error

    def _record_failure(self, asset_id: str, error: Exception) -> bool:
        message = describe_error(error)
        if isinstance(error, RetoucherError):
            logger.error(f"Processing failed for {asset_id}: {message}")
        else:
            logger.exception(f"Unexpected error processing {asset_id}")
        try:
            self._registry.transition(asset_id, AssetStatus.ERROR, error_message=message)
        except AssetNotFoundError:
            logger.info(f"Asset {asset_id} was removed while processing")
        return False
