import asyncio

import pytest

from credit_ai.describer import Progress, describe_all, make_async_describer, retry_failed, run_describe_all
from credit_common.schema import STATUS_ERROR, STATUS_SUCCESS, DescriptionResult, ImageItem


def make_items(count):
    return [ImageItem(label=f"img{i}", image_bytes=bytes([i]), mime_type="image/png") for i in range(count)]


def test_describe_all_keeps_order_and_bounds_concurrency():
    """Later items finish first, but results stay index-aligned and at most two calls run at once."""

    items = make_items(5)
    state = {"in_flight": 0, "peak": 0}
    progress = []

    async def describe(item):
        state["in_flight"] += 1
        state["peak"] = max(state["peak"], state["in_flight"])
        await asyncio.sleep(0.01 * (5 - item.image_bytes[0]))
        state["in_flight"] -= 1
        return f"description of {item.label}"

    results = asyncio.run(
        describe_all(items, describe, concurrency=2, on_progress=lambda p, partial: progress.append(p))
    )

    assert [r.description for r in results] == [f"description of img{i}" for i in range(5)]
    assert all(r.status == STATUS_SUCCESS for r in results)
    assert state["peak"] == 2
    assert [p.current for p in progress] == [1, 2, 3, 4, 5]
    assert progress.count(Progress(current=5, total=5)) == 1


def test_describe_all_isolates_failures():
    items = make_items(3)

    async def describe(item):
        if item.label == "img1":
            raise RuntimeError("model unavailable")
        return "ok"

    results = asyncio.run(describe_all(items, describe))

    assert [r.status for r in results] == [STATUS_SUCCESS, STATUS_ERROR, STATUS_SUCCESS]
    assert results[1].description == "Image description failed: model unavailable"
    assert results[1].item is items[1]


def test_describe_all_empty_and_invalid_concurrency():
    async def describe(item):
        return "unused"

    assert asyncio.run(describe_all([], describe)) == []
    with pytest.raises(ValueError):
        asyncio.run(describe_all(make_items(1), describe, concurrency=0))


def test_retry_failed_only_reruns_errors():
    items = make_items(5)
    results = [
        DescriptionResult(
            item=item,
            description="first pass" if i % 2 == 0 else "Image description failed: busy",
            status=STATUS_SUCCESS if i % 2 == 0 else STATUS_ERROR,
        )
        for i, item in enumerate(items)
    ]
    calls = []
    progress = []

    async def describe(item):
        calls.append(item.label)
        return f"second pass {item.label}"

    merged = asyncio.run(retry_failed(results, describe, on_progress=lambda p, partial: progress.append(p)))

    assert sorted(calls) == ["img1", "img3"]
    assert [r.label for r in merged] == [f"img{i}" for i in range(5)]
    for index in (0, 2, 4):
        assert merged[index] is results[index]
    assert merged[1].description == "second pass img1"
    assert merged[3].status == STATUS_SUCCESS
    assert [p.current for p in progress] == [4, 5]
    assert progress[-1].total == 5


def test_retry_failed_without_errors_returns_same_results():
    results = [DescriptionResult(item=make_items(1)[0], description="done", status=STATUS_SUCCESS)]

    async def describe(item):
        raise AssertionError("should not be called")

    assert asyncio.run(retry_failed(results, describe)) == results


def test_run_describe_all_retries_until_success():
    attempts = {}

    def describe_image(image_bytes, mime_type):
        attempts[image_bytes] = attempts.get(image_bytes, 0) + 1
        if image_bytes == bytes([1]) and attempts[image_bytes] == 1:
            raise RuntimeError("busy")
        return f"{mime_type} image"

    results, rounds = run_describe_all(make_items(3), make_async_describer(describe_image), retries=2)

    assert rounds == 1
    assert all(r.ok for r in results)
    assert attempts == {bytes([0]): 1, bytes([1]): 2, bytes([2]): 1}
