import json

import pytest

from jobagg.cache.manager import LOCATION_TIER, REQUESTER_TIER, CacheKey, CacheManager
from jobagg.cache.store import JsonCacheStore, MemoryCacheStore
from jobagg.errors import CacheStoreError
from jobagg.models import QuerySpec


class BrokenStore:
    async def insert(self, entry):
        raise CacheStoreError("store offline")

    async def entries(self):
        raise CacheStoreError("store offline")

    async def delete_where(self, predicate):
        raise CacheStoreError("store offline")


@pytest.fixture
def cache(settings, clock):
    return CacheManager(MemoryCacheStore(), settings, clock=clock)


def key(requester="u1", keywords=("python", "developer"), location="Toronto, ON", remote=None):
    return CacheKey(requester, list(keywords), location, remote)


@pytest.mark.asyncio
async def test_requester_hit_within_ttl(cache, clock, many_records):
    await cache.save(key(), many_records(3), {"total_cost": 0.004})
    clock.advance(minutes=10)
    hit = await cache.get_requester(key())
    assert hit is not None
    assert hit.tier == REQUESTER_TIER
    assert len(hit.records) == 3
    assert hit.age_minutes == 10.0
    assert hit.metadata["total_cost"] == 0.004


@pytest.mark.asyncio
async def test_requester_miss_after_ttl(cache, clock, many_records):
    await cache.save(key(), many_records(3))
    clock.advance(minutes=31)
    assert await cache.get_requester(key()) is None


@pytest.mark.asyncio
async def test_requester_tier_is_per_requester(cache, many_records):
    await cache.save(key(requester="u1"), many_records(2))
    assert await cache.get_requester(key(requester="u2")) is None


@pytest.mark.asyncio
async def test_query_match_is_substring_of_stored_query(cache, many_records):
    await cache.save(key(keywords=["senior", "python", "developer"]), many_records(2))
    assert await cache.get_requester(key(keywords=["python"])) is not None
    assert await cache.get_requester(key(keywords=["python", "rust"])) is None


@pytest.mark.asyncio
async def test_remote_flag_must_agree_when_given(cache, many_records):
    await cache.save(key(remote=True), many_records(2))
    assert await cache.get_requester(key(remote=False)) is None
    assert await cache.get_requester(key(remote=None)) is not None


@pytest.mark.asyncio
async def test_location_tier_serves_other_requesters(cache, clock, many_records):
    await cache.save(key(requester="u1"), many_records(4))
    clock.advance(minutes=45)
    other = key(requester="u2", location="toronto")
    hit = await cache.get_with_fallback(other)
    assert hit is not None
    assert hit.tier == LOCATION_TIER
    assert len(hit.records) == 4


@pytest.mark.asyncio
async def test_location_tier_expires_after_an_hour(cache, clock, many_records):
    await cache.save(key(), many_records(4))
    clock.advance(minutes=61)
    assert await cache.get_with_fallback(key(requester="u2")) is None


@pytest.mark.asyncio
async def test_requester_tier_preferred(cache, clock, many_records):
    await cache.save(key(requester="u2"), many_records(5, start=50))
    clock.advance(minutes=1)
    await cache.save(key(requester="u1"), many_records(2))
    hit = await cache.get_with_fallback(key(requester="u1"))
    assert hit.tier == REQUESTER_TIER
    assert len(hit.records) == 2


@pytest.mark.asyncio
async def test_newest_entry_wins(cache, clock, many_records):
    await cache.save(key(), many_records(2))
    clock.advance(minutes=5)
    await cache.save(key(), many_records(7))
    hit = await cache.get_requester(key())
    assert len(hit.records) == 7
    assert hit.age_minutes == 0.0


@pytest.mark.asyncio
async def test_save_without_requester_is_a_noop(cache, many_records):
    assert await cache.save(key(requester=None), many_records(2)) is None
    assert await cache.store.entries() == []


@pytest.mark.asyncio
async def test_get_without_requester_or_location_misses(cache, many_records):
    await cache.save(key(), many_records(2))
    assert await cache.get_with_fallback(key(requester=None, location=None)) is None


@pytest.mark.asyncio
async def test_stale_ignores_ttl(cache, clock, many_records):
    await cache.save(key(), many_records(3))
    clock.advance(hours=5)
    assert await cache.get_with_fallback(key()) is None
    stale = await cache.get_stale(key())
    assert stale is not None
    assert stale.age_minutes == 300.0


@pytest.mark.asyncio
async def test_clear_expired_after_retention(cache, clock, many_records):
    await cache.save(key(requester="old"), many_records(1))
    clock.advance(hours=23)
    await cache.save(key(requester="new"), many_records(1))
    clock.advance(hours=2)
    assert await cache.clear_expired() == 1
    remaining = await cache.store.entries()
    assert [e["requester_id"] for e in remaining] == ["new"]


@pytest.mark.asyncio
async def test_clear_requester(cache, many_records):
    await cache.save(key(requester="u1"), many_records(1))
    await cache.save(key(requester="u1", keywords=["rust"]), many_records(1))
    await cache.save(key(requester="u2"), many_records(1))
    assert await cache.clear_requester("u1") == 2
    assert await cache.get_requester(key(requester="u1")) is None
    assert await cache.get_requester(key(requester="u2")) is not None


@pytest.mark.asyncio
async def test_stats(cache, clock, many_records):
    start = clock()
    await cache.save(key(), many_records(3), {"total_cost": 0.002})
    clock.advance(minutes=1)
    await cache.save(key(keywords=["rust"]), many_records(2), {"total_cost": 0.001})
    await cache.save(key(requester="someone-else"), many_records(9))
    stats = await cache.stats("u1")
    assert stats["total_entries"] == 2
    assert stats["total_records"] == 5
    assert stats["total_cost"] == pytest.approx(0.003)
    assert stats["oldest_entry"] == start.isoformat()


@pytest.mark.asyncio
async def test_broken_store_reads_as_miss(settings, clock, many_records):
    cache = CacheManager(BrokenStore(), settings, clock=clock)
    assert await cache.save(key(), many_records(1)) is None
    assert await cache.get_with_fallback(key()) is None
    assert await cache.get_stale(key()) is None
    assert await cache.clear_expired() == 0
    assert await cache.clear_requester("u1") == 0


@pytest.mark.asyncio
async def test_save_replaces_older_entry_for_same_key(cache, clock, many_records):
    await cache.save(key(), many_records(2))
    clock.advance(minutes=5)
    await cache.save(key(), many_records(7))
    entries = await cache.store.entries()
    assert len(entries) == 1
    assert len(entries[0]["records"]) == 7


@pytest.mark.asyncio
async def test_save_keeps_entries_for_other_keys(cache, many_records):
    await cache.save(key(), many_records(2))
    await cache.save(key(remote=True), many_records(2))
    await cache.save(key(location="Ottawa"), many_records(2))
    await cache.save(CacheKey("u1", ["python", "developer"], "Toronto, ON", None, ["contract"]), many_records(2))
    assert len(await cache.store.entries()) == 4


@pytest.mark.asyncio
async def test_malformed_entries_read_as_miss(cache, clock, many_records):
    await cache.store.insert("garbage")
    await cache.store.insert({"id": "bad", "requester_id": "u1", "query": 5, "created_at": clock().isoformat()})
    assert await cache.get_with_fallback(key()) is None
    assert await cache.get_stale(key()) is None

    # a good entry next to the bad ones is still found, and saving still works
    assert await cache.save(key(), many_records(3)) is not None
    hit = await cache.get_requester(key())
    assert hit is not None
    assert len(hit.records) == 3


def test_key_for_query():
    spec = QuerySpec.build("data engineer", location="Ottawa", remote=True, job_types=["contract"])
    k = CacheKey.for_query("u9", spec)
    assert k.query == "data engineer"
    assert (k.location, k.remote, list(k.job_types)) == ("Ottawa", True, ["contract"])


class TestJsonStore:
    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path, settings, clock, many_records):
        path = tmp_path / "cache" / "jobs.json"
        await CacheManager(JsonCacheStore(path), settings, clock=clock).save(key(), many_records(2))

        reopened = CacheManager(JsonCacheStore(path), settings, clock=clock)
        hit = await reopened.get_requester(key())
        assert hit is not None
        assert [r["id"] for r in hit.records] == ["job-1", "job-2"]
        assert list(json.loads(path.read_text())) == ["entries"]

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        assert await JsonCacheStore(tmp_path / "nope.json").entries() == []

    @pytest.mark.asyncio
    async def test_corrupt_file_raises_store_error(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(CacheStoreError):
            await JsonCacheStore(path).entries()

    @pytest.mark.asyncio
    async def test_delete_where(self, tmp_path):
        store = JsonCacheStore(tmp_path / "c.json")
        await store.insert({"id": "a", "requester_id": "x"})
        await store.insert({"id": "b", "requester_id": "y"})
        assert await store.delete_where(lambda e: e["requester_id"] == "x") == 1
        assert [e["id"] for e in await store.entries()] == ["b"]

    @pytest.mark.asyncio
    async def test_non_dict_entries_are_skipped(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text(json.dumps({"entries": ["garbage", 3, {"id": "ok"}]}))
        assert [e["id"] for e in await JsonCacheStore(path).entries()] == ["ok"]
