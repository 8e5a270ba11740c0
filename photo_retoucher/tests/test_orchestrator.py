"""Tests for the processing orchestrator."""

import asyncio
import random

import pytest

from ..application.ports.event_publisher import SimpleEventPublisher
from ..application.services.asset_registry import AssetRegistry
from ..application.services.orchestrator import (
    CANCELLED_MESSAGE,
    BatchResult,
    ProcessingOrchestrator,
    RetryPolicy,
)
from ..domain.entities.asset import AssetStatus, ResultImage
from ..domain.value_objects.config import EngineConfig
from ..domain.value_objects.options import ProjectSettings
from ..exceptions import (
    CredentialError,
    EmptyResponseError,
    InvalidStateError,
    TerminalServiceError,
    TransientServiceError,
)
from .fakes import FakeImageService, FakeSleep, png_source

SETTINGS = ProjectSettings()


def make_orchestrator(names=("a.png", "b.png", "c.png"), script=None, **kwargs):
    registry = AssetRegistry()
    sources = [png_source(n) for n in names]
    ids = registry.add(sources)
    by_name = {s.name: s.data for s in sources}
    service = FakeImageService({by_name[k]: v for k, v in (script or {}).items()})
    sleep = FakeSleep()
    orchestrator = ProcessingOrchestrator(
        registry, service, sleep=sleep, rng=random.Random(7), **kwargs
    )
    return orchestrator, registry, service, sleep, ids


class TestRetryPolicy:
    """Test backoff delays."""

    def test_exponential_without_jitter(self):
        policy = RetryPolicy(max_retries=5, base_delay_s=1.0, max_jitter_s=0.0)
        assert [policy.delay(n) for n in range(4)] == [2.0, 4.0, 8.0, 16.0]

    def test_jitter_bounded(self):
        policy = RetryPolicy(base_delay_s=1.0, max_jitter_s=0.5)
        rng = random.Random(1)
        for _ in range(50):
            assert 2.0 <= policy.delay(0, rng) <= 2.5

    def test_from_config(self):
        policy = RetryPolicy.from_config(EngineConfig(max_retries=2, base_delay_s=0.5))
        assert policy.max_retries == 2
        assert policy.base_delay_s == 0.5


class TestRunBatch:
    """Test batch dispatch."""

    def test_all_succeed(self):
        orchestrator, registry, service, _, ids = make_orchestrator()
        result = asyncio.run(orchestrator.run_batch(SETTINGS))

        assert result.total == 3
        assert result.successful == 3
        assert result.success_rate == 1.0
        assert all(registry.get(i).status is AssetStatus.COMPLETED for i in ids)
        assert len(service.requests) == 3
        assert not orchestrator.in_progress

    def test_empty_batch(self):
        orchestrator, _, service, _, _ = make_orchestrator(names=())
        result = asyncio.run(orchestrator.run_batch(SETTINGS))
        assert result.total == 0
        assert result.success_rate == 0.0
        assert service.requests == []

    def test_partial_failure_is_isolated(self):
        orchestrator, registry, _, _, ids = make_orchestrator(
            script={"b.png": [TerminalServiceError("Bad request", status_code=400)]}
        )
        result = asyncio.run(orchestrator.run_batch(SETTINGS))

        a, b, c = (registry.get(i) for i in ids)
        assert a.status is AssetStatus.COMPLETED
        assert c.status is AssetStatus.COMPLETED
        assert b.status is AssetStatus.ERROR
        assert b.error_message == "Bad request"
        assert b.result is None
        assert result.failed == 1
        assert (ids[1], AssetStatus.ERROR) in result.results

    def test_unexpected_exception_recorded(self):
        orchestrator, registry, _, _, ids = make_orchestrator(
            names=("a.png",), script={"a.png": [RuntimeError("socket closed")]}
        )
        asyncio.run(orchestrator.run_batch(SETTINGS))
        asset = registry.get(ids[0])
        assert asset.status is AssetStatus.ERROR
        assert asset.error_message == "socket closed"

    def test_empty_response_not_retried(self):
        orchestrator, registry, service, sleep, ids = make_orchestrator(
            names=("a.png",), script={"a.png": [EmptyResponseError("The service returned no image")]}
        )
        asyncio.run(orchestrator.run_batch(SETTINGS))
        assert registry.get(ids[0]).status is AssetStatus.ERROR
        assert len(service.requests) == 1
        assert sleep.delays == []

    def test_completed_assets_not_redispatched(self):
        orchestrator, registry, service, _, ids = make_orchestrator(
            script={"b.png": [TerminalServiceError("Bad request")]}
        )
        asyncio.run(orchestrator.run_batch(SETTINGS))
        assert len(service.requests) == 3

        result = asyncio.run(orchestrator.run_batch(SETTINGS))
        assert result.total == 1
        assert len(service.requests) == 4
        assert all(registry.get(i).status is AssetStatus.COMPLETED for i in ids)

    def test_second_clean_batch_dispatches_nothing(self):
        orchestrator, _, service, _, _ = make_orchestrator()
        asyncio.run(orchestrator.run_batch(SETTINGS))
        result = asyncio.run(orchestrator.run_batch(SETTINGS))
        assert result.total == 0
        assert len(service.requests) == 3

    def test_in_progress_during_batch(self):
        orchestrator, _, service, _, _ = make_orchestrator()
        seen = []
        service.on_call = lambda request: seen.append(orchestrator.in_progress)
        asyncio.run(orchestrator.run_batch(SETTINGS))
        assert seen == [True, True, True]
        assert not orchestrator.in_progress

    def test_assets_processing_while_in_flight(self):
        orchestrator, registry, service, _, ids = make_orchestrator()
        statuses = []
        service.on_call = lambda request: statuses.append([registry.get(i).status for i in ids])
        asyncio.run(orchestrator.run_batch(SETTINGS))
        assert statuses[0] == [AssetStatus.PROCESSING] * 3

    def test_requests_carry_settings_snapshot(self):
        settings = ProjectSettings(extra_prompt="keep the red door")
        orchestrator, _, service, _, _ = make_orchestrator(names=("a.png",))
        asyncio.run(orchestrator.run_batch(settings))
        request = service.requests[0]
        assert request.settings is settings
        assert "keep the red door" in request.prompt
        assert request.mask_bytes is None

    def test_lifecycle_events_published_once(self):
        events = SimpleEventPublisher()
        registry = AssetRegistry(events)
        registry.add([png_source("a.png")])
        orchestrator = ProcessingOrchestrator(
            registry, FakeImageService(), sleep=FakeSleep(), event_publisher=events
        )
        stages = []
        events.subscribe(lambda e: stages.append(e.stage))

        asyncio.run(orchestrator.run_batch(SETTINGS))

        assert stages == ["batch_start", "asset_processing", "asset_completed", "batch_complete"]

    def test_asset_removed_while_processing(self):
        orchestrator, registry, service, _, ids = make_orchestrator(names=("a.png", "b.png"))
        service.on_call = lambda request: ids[0] in registry and registry.remove(ids[0])
        result = asyncio.run(orchestrator.run_batch(SETTINGS))

        assert ids[0] not in registry
        assert registry.get(ids[1]).status is AssetStatus.COMPLETED
        assert result.successful == 1


class TestRetries:
    """Test transient failure handling."""

    def test_retry_then_succeed(self):
        busy = TransientServiceError("The model is overloaded", status_code=503)
        orchestrator, registry, service, sleep, ids = make_orchestrator(
            names=("a.png",), script={"a.png": [busy, busy]}
        )
        result = asyncio.run(orchestrator.run_batch(SETTINGS))

        assert registry.get(ids[0]).status is AssetStatus.COMPLETED
        assert result.attempts == 3
        assert len(sleep.delays) == 2
        assert sleep.delays[0] < sleep.delays[1]
        assert 2.0 <= sleep.delays[0] <= 2.5
        assert 4.0 <= sleep.delays[1] <= 4.5

    def test_retries_exhausted(self):
        busy = TransientServiceError("Rate limited", status_code=429)
        orchestrator, registry, service, sleep, ids = make_orchestrator(
            names=("a.png",),
            script={"a.png": [busy] * 10},
            retry_policy=RetryPolicy(max_retries=2),
        )
        asyncio.run(orchestrator.run_batch(SETTINGS))

        asset = registry.get(ids[0])
        assert asset.status is AssetStatus.ERROR
        assert "Rate limited" in asset.error_message
        assert len(service.requests) == 3
        assert len(sleep.delays) == 2

    def test_attempts_counted_per_batch(self):
        busy = TransientServiceError("overloaded")
        orchestrator, registry, _, _, ids = make_orchestrator(
            names=("a.png",),
            script={"a.png": [busy, busy]},
            retry_policy=RetryPolicy(max_retries=1),
        )
        first = asyncio.run(orchestrator.run_batch(SETTINGS))
        assert first.attempts == 2
        assert registry.get(ids[0]).status is AssetStatus.ERROR

        second = asyncio.run(orchestrator.run_batch(SETTINGS))
        assert second.attempts == 1
        assert registry.get(ids[0]).status is AssetStatus.COMPLETED

    def test_attempt_timeout_is_transient(self):
        orchestrator, registry, service, sleep, ids = make_orchestrator(
            names=("a.png",),
            attempt_timeout_s=0.05,
            retry_policy=RetryPolicy(max_retries=1),
        )
        delays = iter([5.0, 0.0])

        def slow_first(request):
            service.delay = next(delays)

        service.on_call = slow_first
        asyncio.run(orchestrator.run_batch(SETTINGS))

        assert registry.get(ids[0]).status is AssetStatus.COMPLETED
        assert len(service.requests) == 2
        assert len(sleep.delays) == 1


class TestCredentialFailure:
    """Test round-wide credential failures."""

    def test_pending_work_fails_fast(self):
        orchestrator, registry, service, sleep, ids = make_orchestrator(
            script={"a.png": [CredentialError("API key not valid", status_code=400)]},
            max_concurrency=1,
        )
        asyncio.run(orchestrator.run_batch(SETTINGS))

        assert len(service.requests) == 1
        for asset_id in ids:
            asset = registry.get(asset_id)
            assert asset.status is AssetStatus.ERROR
            assert asset.error_message == "API key not valid"
        assert sleep.delays == []

    def test_next_batch_tries_again(self):
        orchestrator, registry, service, _, ids = make_orchestrator(
            script={"a.png": [CredentialError("API key not valid")]},
            max_concurrency=1,
        )
        asyncio.run(orchestrator.run_batch(SETTINGS))
        asyncio.run(orchestrator.run_batch(SETTINGS))
        assert all(registry.get(i).status is AssetStatus.COMPLETED for i in ids)


class TestConcurrency:
    """Test the optional in-flight bound."""

    def test_bound_respected(self):
        names = tuple(f"{n}.png" for n in "abcdef")
        orchestrator, _, service, _, _ = make_orchestrator(names=names, max_concurrency=2)
        service.delay = 0.01
        asyncio.run(orchestrator.run_batch(SETTINGS))
        assert service.max_in_flight == 2
        assert len(service.requests) == 6

    def test_unbounded_by_default(self):
        names = tuple(f"{n}.png" for n in "abcd")
        orchestrator, _, service, _, _ = make_orchestrator(names=names)
        service.delay = 0.01
        asyncio.run(orchestrator.run_batch(SETTINGS))
        assert service.max_in_flight == 4

    def test_invalid_bound(self):
        with pytest.raises(ValueError):
            make_orchestrator(max_concurrency=0)


class TestCancel:
    """Test cooperative cancellation."""

    def test_cancel_abandons_remaining_work(self):
        orchestrator, registry, service, _, ids = make_orchestrator(max_concurrency=1)

        def cancel_on_first(request):
            if len(service.requests) == 1:
                orchestrator.cancel()

        service.on_call = cancel_on_first
        result = asyncio.run(orchestrator.run_batch(SETTINGS))

        # The attempt already in flight finishes normally
        assert registry.get(ids[0]).status is AssetStatus.COMPLETED
        for asset_id in ids[1:]:
            asset = registry.get(asset_id)
            assert asset.status is AssetStatus.ERROR
            assert asset.error_message == CANCELLED_MESSAGE
        assert len(service.requests) == 1
        assert result.failed == 2

    def test_cancel_stops_pending_retry(self):
        busy = TransientServiceError("overloaded")
        orchestrator, registry, service, _, ids = make_orchestrator(
            names=("a.png",), script={"a.png": [busy, busy]}
        )
        service.on_call = lambda request: orchestrator.cancel()
        asyncio.run(orchestrator.run_batch(SETTINGS))

        assert registry.get(ids[0]).error_message == CANCELLED_MESSAGE
        assert len(service.requests) == 1

    def test_cancelled_task_leaves_assets_retriggerable(self):
        orchestrator, registry, service, _, ids = make_orchestrator(names=("a.png", "b.png"))
        service.delay = 10

        async def run():
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(orchestrator.run_batch(SETTINGS), 0.05)

        asyncio.run(run())

        for asset_id in ids:
            asset = registry.get(asset_id)
            assert asset.status is AssetStatus.ERROR
            assert asset.error_message == CANCELLED_MESSAGE
        assert not orchestrator.in_progress

        service.delay = 0
        result = asyncio.run(orchestrator.run_batch(SETTINGS))
        assert result.total == 2
        assert result.successful == 2

    def test_task_cancelled_before_dispatch(self):
        orchestrator, registry, service, _, ids = make_orchestrator(names=("a.png", "b.png"))

        async def run():
            task = asyncio.ensure_future(orchestrator.run_batch(SETTINGS))
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())

        assert service.requests == []
        assert [registry.get(i).status for i in ids] == [AssetStatus.ERROR] * 2
        assert registry.candidates() == list(registry)


class TestMaskedEdit:
    """Test single-asset masked edits."""

    def test_masked_request(self):
        orchestrator, registry, service, _, ids = make_orchestrator(names=("a.png",))
        asset = asyncio.run(
            orchestrator.submit_masked_edit(ids[0], b"mask-png", "a potted olive tree", SETTINGS)
        )

        request = service.requests[0]
        assert request.mask_bytes == b"mask-png"
        assert request.replacement_text == "a potted olive tree"
        assert "a potted olive tree" in request.prompt
        assert asset.status is AssetStatus.COMPLETED
        assert not orchestrator.in_progress

    def test_masked_edit_replaces_previous_result(self):
        orchestrator, registry, service, _, ids = make_orchestrator(names=("a.png",))
        asyncio.run(orchestrator.run_batch(SETTINGS))
        service.script[registry.get(ids[0]).source.data] = [ResultImage(data=b"second")]

        asset = asyncio.run(orchestrator.submit_masked_edit(ids[0], b"mask", None, SETTINGS))
        assert asset.result.data == b"second"

    def test_rejects_asset_in_flight(self):
        orchestrator, registry, service, _, ids = make_orchestrator(names=("a.png",))
        registry.transition(ids[0], AssetStatus.PROCESSING)
        accepted = []
        with pytest.raises(InvalidStateError):
            asyncio.run(orchestrator.submit_masked_edit(
                ids[0], b"mask", None, SETTINGS, on_accepted=lambda: accepted.append(True)
            ))
        assert service.requests == []
        assert accepted == []

    def test_on_accepted_runs_after_processing_transition(self):
        orchestrator, registry, service, _, ids = make_orchestrator(names=("a.png",))
        seen = []
        asyncio.run(orchestrator.submit_masked_edit(
            ids[0], b"mask", None, SETTINGS,
            on_accepted=lambda: seen.append(registry.get(ids[0]).status)
        ))
        assert seen == [AssetStatus.PROCESSING]
        assert len(service.requests) == 1

    def test_failure_lands_on_asset(self):
        orchestrator, registry, _, _, ids = make_orchestrator(
            names=("a.png",), script={"a.png": [TerminalServiceError("Refused")]}
        )
        asset = asyncio.run(orchestrator.submit_masked_edit(ids[0], b"mask", None, SETTINGS))
        assert asset.status is AssetStatus.ERROR
        assert asset.error_message == "Refused"


class TestBatchResult:
    """Test batch summary."""

    def test_success_rate(self):
        result = BatchResult(total=4, successful=3, failed=1, attempts=5, processing_time_ms=1.0)
        assert result.success_rate == 0.75
