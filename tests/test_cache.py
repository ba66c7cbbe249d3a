import pytest

from zuno_sdk.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(default_ttl=10, gc_time=100, clock=clock)

    await cache.set("abi", [1])
    clock.now += 9.9
    assert await cache.get("abi") == [1]

    clock.now += 0.1
    assert await cache.get("abi") is None
    assert cache.size() == 0


@pytest.mark.asyncio
async def test_per_entry_ttl_overrides_default():
    clock = FakeClock()
    cache = TTLCache(default_ttl=10, clock=clock)

    await cache.set("short", "a", ttl=1)
    await cache.set("long", "b")
    clock.now += 5

    assert await cache.get("short") is None
    assert await cache.get("long") == "b"


@pytest.mark.asyncio
async def test_idle_entries_are_collected():
    clock = FakeClock()
    cache = TTLCache(default_ttl=1000, gc_time=60, clock=clock)

    await cache.set("idle", 1)
    await cache.set("busy", 2)
    clock.now += 40
    assert await cache.get("busy") == 2

    clock.now += 30
    await cache.get("busy")

    assert cache.size() == 1
    assert await cache.get("idle") is None


@pytest.mark.asyncio
async def test_least_recently_used_entry_is_evicted():
    cache = TTLCache(max_size=2, clock=FakeClock())

    await cache.set("a", 1)
    await cache.set("b", 2)
    await cache.get("a")
    await cache.set("c", 3)

    assert await cache.get("b") is None
    assert await cache.get("a") == 1
    assert await cache.get("c") == 3


@pytest.mark.asyncio
async def test_clear_empties_the_cache():
    cache = TTLCache()
    await cache.set("a", 1)

    await cache.clear()

    assert cache.size() == 0
