import asyncio

import pytest

from services.single_flight import SingleFlight


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_execution():
    flight = SingleFlight()
    calls = 0
    release = asyncio.Event()

    async def rebuild():
        nonlocal calls
        calls += 1
        await release.wait()
        return {"rebuilt": calls}

    tasks = [asyncio.create_task(flight.run("programs:list", rebuild)) for _ in range(5)]
    await asyncio.sleep(0)
    assert flight.in_flight("programs:list")

    release.set()
    results = await asyncio.gather(*tasks)

    assert calls == 1
    assert results == [{"rebuilt": 1}] * 5
    assert not flight.in_flight("programs:list")


@pytest.mark.asyncio
async def test_failure_reaches_every_waiter_and_releases_key():
    flight = SingleFlight()
    release = asyncio.Event()

    async def failing():
        await release.wait()
        raise RuntimeError("store down")

    tasks = [asyncio.create_task(flight.run("program:1", failing)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert all(isinstance(result, RuntimeError) for result in results)
    assert not flight.in_flight("program:1")

    async def succeeding():
        return "ok"

    assert await flight.run("program:1", succeeding) == "ok"


@pytest.mark.asyncio
async def test_distinct_keys_run_independently():
    flight = SingleFlight()
    seen = []

    async def work(tag):
        seen.append(tag)
        return tag

    results = await asyncio.gather(
        flight.run("a", lambda: work("a")),
        flight.run("b", lambda: work("b")),
    )

    assert sorted(results) == ["a", "b"]
    assert sorted(seen) == ["a", "b"]
