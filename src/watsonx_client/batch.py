"""Concurrent execution of independent requests.

Each unit runs as its own task. A failing unit is recorded in its own
:class:`BatchItemOutcome` and never affects its siblings, and every submitted
unit appears exactly once in the returned :class:`BatchReport`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any

from .types import BatchItemOutcome, BatchReport, BatchUnit

logger = logging.getLogger(__name__)

AsyncOperation = Callable[[BatchUnit], Awaitable[Any]]
SyncOperation = Callable[[BatchUnit], Any]


def _success(index: int, unit: BatchUnit, value: Any, started: float) -> BatchItemOutcome:
    return BatchItemOutcome(
        index=index,
        id=unit.id,
        prompt=unit.prompt,
        result=value,
        duration=time.perf_counter() - started,
    )


def _failure(index: int, unit: BatchUnit, error: str, kind: str, started: float | None = None) -> BatchItemOutcome:
    return BatchItemOutcome(
        index=index,
        id=unit.id,
        prompt=unit.prompt,
        error=error,
        error_kind=kind,  # type: ignore[arg-type]
        duration=0.0 if started is None else time.perf_counter() - started,
    )


def _label(index: int, unit: BatchUnit) -> str:
    return unit.id or f"#{index}"


def build_report(outcomes: Iterable[BatchItemOutcome], duration: float) -> BatchReport:
    """Aggregate outcomes into a report."""
    results = sorted(outcomes, key=lambda item: item.index)
    succeeded = sum(1 for item in results if item.ok)
    report = BatchReport(
        results=results,
        total=len(results),
        success_count=succeeded,
        failure_count=len(results) - succeeded,
        duration=duration,
    )
    logger.info(
        "Batch finished: %d total, %d succeeded, %d failed in %.2fs",
        report.total,
        report.success_count,
        report.failure_count,
        report.duration,
    )
    return report


async def _run_unit(
    index: int,
    unit: BatchUnit,
    operation: AsyncOperation,
    semaphore: asyncio.Semaphore | None,
) -> BatchItemOutcome:
    # Duration covers the operation only, not time queued on the semaphore.
    started: float | None = None
    try:
        if semaphore is None:
            started = time.perf_counter()
            value = await operation(unit)
        else:
            async with semaphore:
                started = time.perf_counter()
                value = await operation(unit)
    except asyncio.CancelledError:
        return _failure(index, unit, "Cancelled", "cancelled", started)
    except Exception as e:
        logger.warning("Batch item %s failed: %s", _label(index, unit), e)
        return _failure(index, unit, str(e) or type(e).__name__, "error", started)
    return _success(index, unit, value, started)


async def run_batch(
    units: Iterable[BatchUnit],
    operation: AsyncOperation,
    *,
    concurrency_limit: int | None = None,
    timeout: float | None = None,
) -> BatchReport:
    """Run ``operation`` for every unit concurrently.

    At most ``concurrency_limit`` units are in flight when it is set. Units
    still running after ``timeout`` seconds are cancelled and reported as
    ``cancelled`` failures.

    Pass ``timeout`` to get a report for a batch that is cut short.
    Cancelling the call itself (for example through ``asyncio.wait_for``)
    cancels every item, waits for them to unwind and re-raises
    ``CancelledError`` without a report.
    """
    if concurrency_limit is not None and concurrency_limit < 1:
        raise ValueError("concurrency_limit must be at least 1")
    units = list(units)
    semaphore = asyncio.Semaphore(concurrency_limit) if concurrency_limit else None

    started = time.perf_counter()
    tasks = [asyncio.ensure_future(_run_unit(i, unit, operation, semaphore)) for i, unit in enumerate(units)]
    if not tasks:
        return build_report([], 0.0)

    try:
        _, pending = await asyncio.wait(tasks, timeout=timeout)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    if pending:
        logger.warning("Batch timed out after %ss, cancelling %d item(s)", timeout, len(pending))
        for task in pending:
            task.cancel()
        await asyncio.wait(pending)

    outcomes = []
    for i, (unit, task) in enumerate(zip(units, tasks)):
        if task.cancelled():
            # Cancelled before the coroutine got a chance to start.
            outcomes.append(_failure(i, unit, "Cancelled", "cancelled"))
        else:
            outcomes.append(task.result())
    return build_report(outcomes, time.perf_counter() - started)


def _run_unit_sync(index: int, unit: BatchUnit, operation: SyncOperation) -> BatchItemOutcome:
    started = time.perf_counter()
    try:
        value = operation(unit)
    except Exception as e:
        logger.warning("Batch item %s failed: %s", _label(index, unit), e)
        return _failure(index, unit, str(e) or type(e).__name__, "error", started)
    return _success(index, unit, value, started)


def run_batch_threaded(
    units: Iterable[BatchUnit],
    operation: SyncOperation,
    *,
    max_workers: int | None = None,
    timeout: float | None = None,
) -> BatchReport:
    """Thread-pool variant of :func:`run_batch` for blocking operations.

    Units that have not started when ``timeout`` expires are cancelled; units
    still running are reported as ``timeout`` failures and left to finish in
    the background.
    """
    if max_workers is not None and max_workers < 1:
        raise ValueError("max_workers must be at least 1")
    units = list(units)
    if not units:
        return build_report([], 0.0)

    started = time.perf_counter()
    executor = ThreadPoolExecutor(max_workers=max_workers or len(units), thread_name_prefix="watsonx-batch")
    futures: list[Future[BatchItemOutcome]] = [
        executor.submit(_run_unit_sync, i, unit, operation) for i, unit in enumerate(units)
    ]
    try:
        done, _ = wait(futures, timeout=timeout)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    outcomes = []
    for i, (unit, future) in enumerate(zip(units, futures)):
        if future in done:
            outcomes.append(future.result())
        elif future.cancelled():
            outcomes.append(_failure(i, unit, "Cancelled", "cancelled"))
        else:
            outcomes.append(_failure(i, unit, f"Timed out after {timeout}s", "timeout"))
    return build_report(outcomes, time.perf_counter() - started)
