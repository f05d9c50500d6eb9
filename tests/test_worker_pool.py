import asyncio

import pytest

from wiretap.core.worker_pool import run_bounded


@pytest.mark.asyncio
async def test_concurrency_is_bounded_and_order_kept():
    in_flight = 0
    peak = 0

    async def handler(item):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return item * 2

    results = await run_bounded(range(10), handler, concurrency=3)
    assert peak == 3
    assert [r.value for r in results] == [i * 2 for i in range(10)]
    assert all(r.ok for r in results)


@pytest.mark.asyncio
async def test_failures_are_contained_per_unit():
    async def handler(item):
        if item % 2:
            raise ValueError(f"odd {item}")
        return item

    results = await run_bounded([0, 1, 2, 3], handler, concurrency=2)
    assert [r.ok for r in results] == [True, False, True, False]
    assert str(results[1].error) == "odd 1"
    assert results[2].value == 2


@pytest.mark.asyncio
async def test_empty_input():
    async def handler(item):
        raise AssertionError("never called")

    assert await run_bounded([], handler, concurrency=4) == []
