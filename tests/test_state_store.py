import asyncio

import pytest

from auth.state_store import MemoryStateStore, StateStore


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_put_take() -> None:
    store = MemoryStateStore()

    await store.put("state-1", "verifier-1")

    assert await store.take("state-1") == "verifier-1"


@pytest.mark.asyncio
async def test_take_missing() -> None:
    store = MemoryStateStore()

    assert await store.take("missing") is None


@pytest.mark.asyncio
async def test_take_is_single_use() -> None:
    store = MemoryStateStore()
    await store.put("state-1", "verifier-1")

    assert await store.take("state-1") == "verifier-1"
    assert await store.take("state-1") is None
    assert len(store) == 0


@pytest.mark.asyncio
async def test_concurrent_takes_only_one_wins() -> None:
    store = MemoryStateStore()
    await store.put("state-1", "verifier-1")

    results = await asyncio.gather(*(store.take("state-1") for _ in range(10)))

    assert results.count("verifier-1") == 1
    assert results.count(None) == 9


@pytest.mark.asyncio
async def test_expired_entry_is_treated_as_absent() -> None:
    clock = FakeClock()
    store = MemoryStateStore(ttl_seconds=600, clock=clock)
    await store.put("state-1", "verifier-1")

    clock.now += 600

    assert await store.take("state-1") is None
    assert "state-1" not in store


@pytest.mark.asyncio
async def test_entry_valid_before_ttl() -> None:
    clock = FakeClock()
    store = MemoryStateStore(ttl_seconds=600, clock=clock)
    await store.put("state-1", "verifier-1")

    clock.now += 599

    assert await store.take("state-1") == "verifier-1"


@pytest.mark.asyncio
async def test_sweep_removes_only_expired() -> None:
    clock = FakeClock()
    store = MemoryStateStore(ttl_seconds=600, clock=clock)
    await store.put("old", "verifier-old")
    clock.now += 500
    await store.put("fresh", "verifier-fresh")
    clock.now += 200

    removed = await store.sweep()

    assert removed == 1
    assert "old" not in store
    assert "fresh" in store


def test_store_interface_requires_size_and_membership() -> None:
    assert {"put", "take", "sweep", "__len__", "__contains__"} <= StateStore.__abstractmethods__
