import asyncio

import pytest

from stockledger.inventory_service.app.locks import KeyedLock, product_key, sku_key


@pytest.mark.asyncio
async def test_same_key_is_serialized() -> None:
    locks = KeyedLock()
    events: list[str] = []

    async def worker(name: str) -> None:
        async with locks.hold(product_key(1)):
            events.append(f"{name}:start")
            await asyncio.sleep(0.01)
            events.append(f"{name}:end")

    await asyncio.gather(worker("a"), worker("b"))

    assert events in (
        ["a:start", "a:end", "b:start", "b:end"],
        ["b:start", "b:end", "a:start", "a:end"],
    )


@pytest.mark.asyncio
async def test_distinct_keys_run_concurrently() -> None:
    locks = KeyedLock()
    both_inside = asyncio.Event()
    inside = 0

    async def worker(key: str) -> None:
        nonlocal inside
        async with locks.hold(key):
            inside += 1
            if inside == 2:
                both_inside.set()
            await asyncio.wait_for(both_inside.wait(), timeout=1)

    await asyncio.gather(worker(product_key(1)), worker(product_key(2)))

    assert both_inside.is_set()


@pytest.mark.asyncio
async def test_overlapping_key_sets_do_not_deadlock() -> None:
    locks = KeyedLock()

    async def worker(*keys: str) -> None:
        async with locks.hold(*keys):
            await asyncio.sleep(0)

    await asyncio.wait_for(
        asyncio.gather(
            worker(product_key(1), sku_key("A")),
            worker(sku_key("A"), product_key(1)),
            worker(product_key(1)),
        ),
        timeout=1,
    )


@pytest.mark.asyncio
async def test_registry_is_empty_after_release() -> None:
    locks = KeyedLock()

    async with locks.hold(product_key(7), sku_key("X")):
        assert locks.locked(product_key(7))
        assert len(locks) == 2

    assert len(locks) == 0
    assert not locks.locked(product_key(7))


@pytest.mark.asyncio
async def test_lock_released_when_body_raises() -> None:
    locks = KeyedLock()

    with pytest.raises(RuntimeError):
        async with locks.hold(product_key(3)):
            raise RuntimeError("boom")

    assert len(locks) == 0
    async with locks.hold(product_key(3)):
        assert locks.locked(product_key(3))
