"""
Bounded-concurrency image description pool.

Workers pull `(index, item)` pairs from a FIFO queue and post `(index, result)`
messages to a single aggregator, which owns the results list and the progress
counter. A failed item is recorded as an error result and never stops the
pool.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from credit_common.schema import (
    STATUS_ERROR,
    STATUS_PROCESSING,
    STATUS_SUCCESS,
    DescriptionResult,
    ImageItem,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 2


@dataclass(frozen=True)
class Progress:
    current: int
    total: int


Describe = Callable[[ImageItem], Awaitable[str]]
ProgressCallback = Callable[[Progress, List[DescriptionResult]], None]


def pending_result(item: ImageItem, description: str = "Processing...") -> DescriptionResult:
    return DescriptionResult(item=item, description=description, status=STATUS_PROCESSING)


async def _describe_one(item: ImageItem, describe: Describe) -> DescriptionResult:
    try:
        description = await describe(item)
    except Exception as exc:
        LOGGER.warning("Description failed for %s: %s", item.label, exc)
        return DescriptionResult(
            item=item,
            description=f"Image description failed: {exc}",
            status=STATUS_ERROR,
        )
    return DescriptionResult(item=item, description=description, status=STATUS_SUCCESS)


async def describe_all(
    items: Sequence[ImageItem],
    describe: Describe,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    on_progress: Optional[ProgressCallback] = None,
) -> List[DescriptionResult]:
    """
    Describe every item with at most `concurrency` calls in flight.

    The returned list is index-aligned with `items`. `on_progress` receives the
    counter and a snapshot of the partial results after every completed item.
    """

    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    total = len(items)
    results: List[DescriptionResult] = [pending_result(item) for item in items]
    if total == 0:
        return results

    work: asyncio.Queue = asyncio.Queue()
    for index, item in enumerate(items):
        work.put_nowait((index, item))
    outcomes: asyncio.Queue = asyncio.Queue()

    async def worker() -> None:
        while True:
            try:
                index, item = work.get_nowait()
            except asyncio.QueueEmpty:
                return
            outcome = await _describe_one(item, describe)
            await outcomes.put((index, outcome))

    workers = [asyncio.create_task(worker()) for _ in range(min(concurrency, total))]

    completed = 0
    while completed < total:
        index, outcome = await outcomes.get()
        results[index] = outcome
        completed += 1
        if on_progress is not None:
            on_progress(Progress(current=completed, total=total), list(results))

    await asyncio.gather(*workers)
    failures = sum(1 for r in results if r.status == STATUS_ERROR)
    LOGGER.info("Described %d images (%d failed)", total, failures)
    return results


def _merge_by_label(
    results: Sequence[DescriptionResult],
    retried: Sequence[DescriptionResult],
) -> List[DescriptionResult]:
    queued: Dict[str, List[DescriptionResult]] = {}
    for outcome in retried:
        queued.setdefault(outcome.label, []).append(outcome)

    merged: List[DescriptionResult] = []
    for result in results:
        if result.status == STATUS_ERROR and queued.get(result.label):
            merged.append(queued[result.label].pop(0))
        else:
            merged.append(result)
    return merged


async def retry_failed(
    results: Sequence[DescriptionResult],
    describe: Describe,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    on_progress: Optional[ProgressCallback] = None,
) -> List[DescriptionResult]:
    """
    Re-run only the error results and merge the outcomes back by item label.

    Non-error results are returned untouched (the same objects). Progress
    continues from the count of non-error results toward the full total.
    """

    failed = [r for r in results if r.status == STATUS_ERROR]
    if not failed:
        return list(results)

    total = len(results)
    already_done = total - len(failed)
    LOGGER.info("Retrying %d failed image descriptions", len(failed))

    def relay(progress: Progress, partial: List[DescriptionResult]) -> None:
        if on_progress is None:
            return
        done = [r for r in partial if r.status != STATUS_PROCESSING]
        merged = _merge_by_label(results, done)
        on_progress(Progress(current=already_done + progress.current, total=total), merged)

    retried = await describe_all(
        [r.item for r in failed],
        describe,
        concurrency=concurrency,
        on_progress=relay,
    )
    return _merge_by_label(results, retried)


def make_async_describer(describe_image: Callable[[bytes, str], str]) -> Describe:
    """Adapt a blocking `describe_image(bytes, mime)` callable so it runs off the event loop."""

    async def describe(item: ImageItem) -> str:
        return await asyncio.to_thread(describe_image, item.image_bytes, item.mime_type)

    return describe


def run_describe_all(
    items: Sequence[ImageItem],
    describe: Describe,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    retries: int = 0,
    on_progress: Optional[ProgressCallback] = None,
) -> Tuple[List[DescriptionResult], int]:
    """Synchronous entry point: describe everything, then retry failures up to `retries` rounds."""

    async def _run() -> Tuple[List[DescriptionResult], int]:
        results = await describe_all(items, describe, concurrency=concurrency, on_progress=on_progress)
        rounds = 0
        while rounds < retries and any(r.status == STATUS_ERROR for r in results):
            rounds += 1
            results = await retry_failed(results, describe, concurrency=concurrency, on_progress=on_progress)
        return results, rounds

    return asyncio.run(_run())
