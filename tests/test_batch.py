"""Tests for concurrent batch execution."""

import asyncio
import threading

import pytest

from watsonx_client import BatchUnit, run_batch, run_batch_threaded


def make_units(count: int) -> list[BatchUnit]:
    return [BatchUnit(prompt=f"prompt {i}", id=f"u{i + 1}") for i in range(count)]


class TestRunBatch:
    async def test_isolates_single_failure(self) -> None:
        async def operation(unit: BatchUnit) -> str:
            if unit.id == "u3":
                raise RuntimeError("model overloaded")
            return unit.prompt.upper()

        report = await run_batch(make_units(5), operation)

        assert report.total == 5
        assert report.success_count == 4
        assert report.failure_count == 1
        failed = report.failures[0]
        assert failed.id == "u3"
        assert failed.index == 2
        assert failed.error_kind == "error"
        assert "model overloaded" in failed.error
        assert [item.result for item in report.successes] == ["PROMPT 0", "PROMPT 1", "PROMPT 3", "PROMPT 4"]

    async def test_every_unit_reported_once_in_order(self) -> None:
        async def operation(unit: BatchUnit) -> str:
            # Finish in reverse order.
            await asyncio.sleep(0.01 * (10 - int(unit.id[1:])))
            return unit.id

        report = await run_batch(make_units(6), operation)

        assert [item.index for item in report.results] == list(range(6))
        assert [item.result for item in report.results] == [f"u{i}" for i in range(1, 7)]
        assert report.duration >= 0

    async def test_respects_concurrency_limit(self) -> None:
        in_flight = 0
        peak = 0

        async def operation(unit: BatchUnit) -> None:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1

        report = await run_batch(make_units(10), operation, concurrency_limit=3)

        assert report.success_count == 10
        assert peak <= 3

    async def test_timeout_cancels_unfinished_units(self) -> None:
        async def operation(unit: BatchUnit) -> str:
            if unit.id in ("u2", "u4"):
                await asyncio.sleep(10)
            return "fast"

        report = await run_batch(make_units(4), operation, timeout=0.1)

        assert report.total == 4
        assert report.success_count == 2
        assert {item.id for item in report.failures} == {"u2", "u4"}
        assert all(item.error_kind == "cancelled" for item in report.failures)

    async def test_outer_cancellation_unwinds_every_item(self) -> None:
        unwound = []

        async def operation(unit: BatchUnit) -> str:
            try:
                await asyncio.sleep(10)
            finally:
                unwound.append(unit.id)
            return "late"

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(run_batch(make_units(4), operation), 0.05)

        assert sorted(unwound) == ["u1", "u2", "u3", "u4"]

    async def test_item_duration_excludes_queue_time(self) -> None:
        async def operation(unit: BatchUnit) -> None:
            await asyncio.sleep(0.05)

        report = await run_batch(make_units(3), operation, concurrency_limit=1)

        assert report.success_count == 3
        assert report.duration >= 0.14
        assert all(item.duration < 0.1 for item in report.results)

    async def test_empty_batch(self) -> None:
        async def operation(unit: BatchUnit) -> None:
            return None

        report = await run_batch([], operation)
        assert report.total == 0
        assert report.results == []

    async def test_rejects_non_positive_limit(self) -> None:
        async def operation(unit: BatchUnit) -> None:
            return None

        with pytest.raises(ValueError):
            await run_batch(make_units(1), operation, concurrency_limit=0)


class TestRunBatchThreaded:
    def test_isolates_single_failure(self) -> None:
        def operation(unit: BatchUnit) -> str:
            if unit.id == "u3":
                raise ValueError("bad prompt")
            return unit.prompt

        report = run_batch_threaded(make_units(5), operation, max_workers=2)

        assert (report.total, report.success_count, report.failure_count) == (5, 4, 1)
        assert report.failures[0].id == "u3"
        assert [item.index for item in report.results] == [0, 1, 2, 3, 4]

    def test_timeout_reports_running_and_queued_units(self) -> None:
        release = threading.Event()

        def operation(unit: BatchUnit) -> str:
            if unit.id == "u1":
                release.wait(5)
            return unit.id or ""

        try:
            report = run_batch_threaded(make_units(3), operation, max_workers=1, timeout=0.1)
        finally:
            release.set()

        kinds = {item.id: item.error_kind for item in report.results}
        assert kinds == {"u1": "timeout", "u2": "cancelled", "u3": "cancelled"}
        assert report.failure_count == 3
