"""Unit tests for TaskExecutor (mock store, no DB)."""

from __future__ import annotations

import threading
from unittest.mock import AsyncMock, MagicMock

import pytest

from fleetcron.core.registry.functions import FunctionRegistry
from fleetcron.core.scheduler.executor import TaskExecutor
from fleetcron.core.store.errors import StoreErrorCode, StoreOperationError
from fleetcron.core.types.status import HistoryStatus

from tests.unit._fakes import FakeClock, make_claimed, make_identity


def _make_store(*, released: bool = True) -> MagicMock:
    store = MagicMock()
    store.append_history_async = AsyncMock(return_value=1500)
    store.release_async = AsyncMock(return_value=released)
    return store


def _make_executor(
    registry: FunctionRegistry, store: MagicMock, clock: FakeClock | None = None,
) -> TaskExecutor:
    return TaskExecutor(store, registry, make_identity(), clock or FakeClock())


@pytest.mark.unit
class TestExecute:
    @pytest.mark.asyncio
    async def test_success_records_completed_and_releases(self) -> None:
        clock = FakeClock()
        calls: list[str] = []

        async def process_data() -> None:
            calls.append('ran')
            clock.advance(seconds=1.5)

        registry = FunctionRegistry({'processData': process_data})
        store = _make_store()
        claimed = make_claimed()

        outcome = await _make_executor(registry, store, clock).execute(claimed)

        assert calls == ['ran']
        assert outcome.status is HistoryStatus.COMPLETED
        assert outcome.error is None
        assert outcome.history_written is True
        assert outcome.released is True
        assert outcome.duration_ms == 1500
        store.append_history_async.assert_awaited_once_with(
            claimed,
            completed_at=clock.current,
            status=HistoryStatus.COMPLETED,
            error=None,
        )
        store.release_async.assert_awaited_once_with(claimed, now=clock.current)

    @pytest.mark.asyncio
    async def test_function_error_recorded_as_failed(self) -> None:
        async def manage_backups() -> None:
            raise RuntimeError('disk full')

        registry = FunctionRegistry({'manageBackups': manage_backups})
        store = _make_store()
        claimed = make_claimed(function_name='manageBackups')

        outcome = await _make_executor(registry, store).execute(claimed)

        assert outcome.status is HistoryStatus.FAILED
        assert outcome.error == 'disk full'
        kwargs = store.append_history_async.await_args.kwargs
        assert kwargs['status'] is HistoryStatus.FAILED
        assert kwargs['error'] == 'disk full'
        store.release_async.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_empty_error_message_uses_class_name(self) -> None:
        async def fails_silently() -> None:
            raise ValueError()

        registry = FunctionRegistry({'fn': fails_silently})
        outcome = await _make_executor(registry, _make_store()).execute(
            make_claimed(function_name='fn'),
        )
        assert outcome.error == 'ValueError'

    @pytest.mark.asyncio
    async def test_unknown_function_is_a_failure(self) -> None:
        store = _make_store()
        outcome = await _make_executor(FunctionRegistry(), store).execute(
            make_claimed(function_name='vanished'),
        )

        assert outcome.status is HistoryStatus.FAILED
        assert outcome.error == "task function 'vanished' not found"
        store.append_history_async.assert_awaited_once()
        store.release_async.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sync_function_runs_in_worker_thread(self) -> None:
        thread_names: list[str] = []

        def clean_cache() -> None:
            thread_names.append(threading.current_thread().name)

        registry = FunctionRegistry({'cleanCache': clean_cache})
        outcome = await _make_executor(registry, _make_store()).execute(
            make_claimed(function_name='cleanCache'),
        )

        assert outcome.status is HistoryStatus.COMPLETED
        assert thread_names and thread_names[0] != threading.main_thread().name

    @pytest.mark.asyncio
    async def test_history_failure_still_releases(self) -> None:
        async def ok() -> None:
            pass

        store = _make_store()
        store.append_history_async.side_effect = StoreOperationError(
            code=StoreErrorCode.HISTORY_WRITE_FAILED, message='down', retryable=True,
        )
        outcome = await _make_executor(FunctionRegistry({'fn': ok}), store).execute(
            make_claimed(function_name='fn'),
        )

        assert outcome.history_written is False
        assert outcome.released is True
        store.release_async.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_release_failure_is_reported_not_raised(self) -> None:
        async def ok() -> None:
            pass

        store = _make_store()
        store.release_async.side_effect = StoreOperationError(
            code=StoreErrorCode.RELEASE_FAILED, message='down', retryable=True,
        )
        outcome = await _make_executor(FunctionRegistry({'fn': ok}), store).execute(
            make_claimed(function_name='fn'),
        )

        assert outcome.history_written is True
        assert outcome.released is False

    @pytest.mark.asyncio
    async def test_claim_lost_reports_not_released(self) -> None:
        async def ok() -> None:
            pass

        store = _make_store(released=False)
        outcome = await _make_executor(FunctionRegistry({'fn': ok}), store).execute(
            make_claimed(function_name='fn'),
        )
        assert outcome.released is False
        assert outcome.status is HistoryStatus.COMPLETED
