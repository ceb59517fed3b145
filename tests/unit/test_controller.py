"""Tests for LabelInheritanceController outcome handling."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from node_label_inheritor.controller.controller import LabelInheritanceController
from node_label_inheritor.controller.queue import WorkQueue
from node_label_inheritor.errors import MalformedDirectiveError, ReconcileError, WriteConflictError
from node_label_inheritor.models.objects import ObjectKey, ReconcileResult

_KEY = ObjectKey("default", "web-0")


def _make_reconciler(**kwargs: object) -> MagicMock:
    reconciler = MagicMock()
    reconciler.reconcile = AsyncMock(**kwargs)
    return reconciler


def _make_queue() -> MagicMock:
    queue = MagicMock(spec=WorkQueue)
    queue.num_requeues.return_value = 0
    return queue


class TestProcessOutcomes:
    async def test_success_forgets_key(self) -> None:
        queue = _make_queue()
        controller = LabelInheritanceController(_make_reconciler(return_value=ReconcileResult()), queue)

        await controller.process(_KEY)

        queue.forget.assert_called_once_with(_KEY)
        queue.add_rate_limited.assert_not_called()

    async def test_passes_timeout(self) -> None:
        reconciler = _make_reconciler(return_value=ReconcileResult())
        controller = LabelInheritanceController(reconciler, _make_queue(), reconcile_timeout=7.5)

        await controller.process(_KEY)

        reconciler.reconcile.assert_awaited_once_with(_KEY, timeout=7.5)

    async def test_reconcile_error_rate_limits(self) -> None:
        queue = _make_queue()
        reconciler = _make_reconciler(side_effect=WriteConflictError(str(_KEY)))
        controller = LabelInheritanceController(reconciler, queue)

        await controller.process(_KEY)

        queue.add_rate_limited.assert_called_once_with(_KEY)
        queue.forget.assert_not_called()

    async def test_malformed_directive_rate_limits(self) -> None:
        queue = _make_queue()
        controller = LabelInheritanceController(_make_reconciler(side_effect=MalformedDirectiveError(",")), queue)

        await controller.process(_KEY)

        queue.add_rate_limited.assert_called_once_with(_KEY)

    async def test_non_retryable_error_forgets_key(self) -> None:
        class _PermanentError(ReconcileError):
            retryable = False

        queue = _make_queue()
        controller = LabelInheritanceController(_make_reconciler(side_effect=_PermanentError("gone")), queue)

        await controller.process(_KEY)

        queue.forget.assert_called_once_with(_KEY)
        queue.add_rate_limited.assert_not_called()

    async def test_unexpected_error_contained(self) -> None:
        queue = _make_queue()
        controller = LabelInheritanceController(_make_reconciler(side_effect=KeyError("metadata")), queue)

        await controller.process(_KEY)

        queue.add_rate_limited.assert_called_once_with(_KEY)

    async def test_requeue_after(self) -> None:
        queue = _make_queue()
        reconciler = _make_reconciler(return_value=ReconcileResult(requeue_after=30.0))
        controller = LabelInheritanceController(reconciler, queue)

        await controller.process(_KEY)

        queue.forget.assert_called_once_with(_KEY)
        queue.add_after.assert_called_once_with(_KEY, 30.0)

    async def test_requeue(self) -> None:
        queue = _make_queue()
        controller = LabelInheritanceController(_make_reconciler(return_value=ReconcileResult(requeue=True)), queue)

        await controller.process(_KEY)

        queue.add_rate_limited.assert_called_once_with(_KEY)


class TestWorkers:
    def test_rejects_zero_workers(self) -> None:
        with pytest.raises(ValueError):
            LabelInheritanceController(_make_reconciler(), WorkQueue(), workers=0)

    async def test_workers_drain_queue_and_stop(self) -> None:
        seen: list[ObjectKey] = []

        async def _reconcile(key: ObjectKey, timeout: float | None = None) -> ReconcileResult:
            seen.append(key)
            return ReconcileResult()

        reconciler = MagicMock()
        reconciler.reconcile = _reconcile
        queue = WorkQueue()
        controller = LabelInheritanceController(reconciler, queue, workers=3)
        keys = [ObjectKey("default", f"pod-{i}") for i in range(10)]
        for key in keys:
            queue.add(key)

        await controller.start()
        for _ in range(100):
            if len(seen) == len(keys):
                break
            await asyncio.sleep(0.01)
        await controller.stop()

        assert sorted(seen) == sorted(keys)
        assert not controller.running

    async def test_same_key_never_processed_concurrently(self) -> None:
        in_flight: set[ObjectKey] = set()
        overlaps = 0
        calls = 0

        async def _reconcile(key: ObjectKey, timeout: float | None = None) -> ReconcileResult:
            nonlocal overlaps, calls
            calls += 1
            if key in in_flight:
                overlaps += 1
            in_flight.add(key)
            await asyncio.sleep(0.01)
            in_flight.discard(key)
            return ReconcileResult()

        reconciler = MagicMock()
        reconciler.reconcile = _reconcile
        queue = WorkQueue()
        controller = LabelInheritanceController(reconciler, queue, workers=4)
        await controller.start()
        for _ in range(5):
            queue.add(_KEY)
            await asyncio.sleep(0.003)
        await asyncio.sleep(0.1)
        await controller.stop()

        assert overlaps == 0
        assert calls >= 2
