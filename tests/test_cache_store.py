import os
import time
from datetime import timedelta

import pytest

from cfb_reconcile.models.enums import Category
from cfb_reconcile.models.team import ResolvedTeam
from cfb_reconcile.storage.cache_manager import CacheManager, MemoryCache
from cfb_reconcile.storage.store import (
    CONSOLIDATION_KEY,
    ReconciliationStore,
    StoreError,
    binding_key,
)

FOOTBALL = Category.FOOTBALL


class TestCacheManager:
    def test_round_trip(self, tmp_path):
        cache = CacheManager(tmp_path)
        cache.set("football_college_ids", [{"team_name": "Towson", "ncaa_id": "264"}])
        entry = cache.get("football_college_ids")
        assert entry is not None
        assert entry.data == [{"team_name": "Towson", "ncaa_id": "264"}]
        assert entry.saved_at.tzinfo is not None

    def test_missing_key(self, tmp_path):
        assert CacheManager(tmp_path).get("nope") is None

    def test_keys_are_sanitized(self, tmp_path):
        cache = CacheManager(tmp_path)
        path = cache.cache_path("espn/teams?season=2024")
        assert path.parent == cache.cache_dir
        assert "/" not in path.name and "?" not in path.name

    def test_expired_entry_is_removed(self, tmp_path):
        cache = CacheManager(tmp_path)
        cache.set("old", {"a": 1})
        path = cache.cache_path("old")
        stale = time.time() - 3 * 86400
        os.utime(path, (stale, stale))
        assert cache.get("old", ttl=timedelta(days=1)) is None
        assert not path.exists()

    def test_read_ignores_age(self, tmp_path):
        cache = CacheManager(tmp_path)
        cache.set("kept", {"a": 1})
        path = cache.cache_path("kept")
        stale = time.time() - 400 * 86400
        os.utime(path, (stale, stale))
        assert cache.read("kept").data == {"a": 1}
        assert path.exists()
        assert cache.read("missing") is None

    def test_corrupt_entry_is_removed(self, tmp_path):
        cache = CacheManager(tmp_path)
        path = cache.cache_path("broken")
        path.write_text("{not json", encoding="utf-8")
        assert cache.get("broken") is None
        assert not path.exists()

    def test_clear_all(self, tmp_path):
        cache = CacheManager(tmp_path / "cache")
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear_all()
        assert cache.get("a") is None
        assert cache.cache_dir.exists()


def test_memory_cache_returns_copies():
    cache = MemoryCache()
    cache.set("k", {"ids": ["1"]})
    entry = cache.get("k")
    entry.data["ids"].append("2")
    assert cache.get("k").data == {"ids": ["1"]}
    assert cache.invalidate("k") is True
    assert cache.get("k") is None


class TestReconciliationStore:
    def test_use_before_load_raises(self, memory_cache):
        store = ReconciliationStore(memory_cache)
        with pytest.raises(StoreError):
            store.bindings_for(FOOTBALL)

    def test_load_reads_existing_tables(self, memory_cache):
        memory_cache.set(CONSOLIDATION_KEY, {"football": {"999": "100"}})
        memory_cache.set(binding_key(FOOTBALL), {"999": "500", "264": "52"})
        store = ReconciliationStore(memory_cache).load()
        assert store.resolve(FOOTBALL, "999") == "100"
        assert store.bindings_for(FOOTBALL) == {"100": "500", "264": "52"}
        assert store.espn_for(FOOTBALL, "999") == "500"
        assert store.ncaa_for(FOOTBALL, "52") == "264"

    def test_nothing_is_written_until_commit(self, memory_cache):
        store = ReconciliationStore(memory_cache).load()
        assert store.bind(FOOTBALL, "264", "52") is True
        assert memory_cache.get(binding_key(FOOTBALL)) is None
        store.commit()
        assert memory_cache.get(binding_key(FOOTBALL)).data == {"264": "52"}

    def test_bind_is_idempotent(self, store):
        assert store.bind(FOOTBALL, "264", "52") is True
        assert store.bind(FOOTBALL, "264", "52") is False

    def test_add_consolidation_rekeys_bindings(self, memory_cache):
        store = ReconciliationStore(memory_cache).load()
        store.bind(FOOTBALL, "999", "500")
        assert store.add_consolidation(FOOTBALL, "999", "100") == "100"
        assert store.bindings_for(FOOTBALL) == {"100": "500"}
        store.commit()
        reloaded = ReconciliationStore(memory_cache).load()
        assert reloaded.resolve(FOOTBALL, "999") == "100"
        assert reloaded.espn_for(FOOTBALL, "100") == "500"

    def test_canonical_binding_beats_inherited_one(self, store):
        store.bind(FOOTBALL, "100", "500")
        store.bind(FOOTBALL, "999", "777")
        store.add_consolidation(FOOTBALL, "999", "100")
        assert store.bindings_for(FOOTBALL) == {"100": "500"}

    def test_snapshots(self, store):
        team = ResolvedTeam(id="TOW12345", espn_id="52", ncaa_id="264", full_name="Towson Tigers")
        store.save_snapshot(FOOTBALL, "teams", [team])
        (row,) = store.load_snapshot(FOOTBALL, "teams")
        assert row["id"] == "TOW12345"
        assert row["is_bound"] is True

    def test_tables_survive_a_year_without_changes(self, tmp_path):
        cache = CacheManager(tmp_path)
        store = ReconciliationStore(cache, ttl=timedelta(days=365)).load()
        store.bind(FOOTBALL, "264", "52")
        store.add_consolidation(FOOTBALL, "999", "100")
        store.commit()

        # A run with no new facts rewrites nothing
        ReconciliationStore(cache).load().commit()
        stale = time.time() - 366 * 86400
        for key in (binding_key(FOOTBALL), CONSOLIDATION_KEY):
            os.utime(cache.cache_path(key), (stale, stale))

        reloaded = ReconciliationStore(cache, ttl=timedelta(days=365)).load()
        assert reloaded.bindings_for(FOOTBALL) == {"264": "52"}
        assert reloaded.resolve(FOOTBALL, "999") == "100"
        assert cache.cache_path(binding_key(FOOTBALL)).exists()
        assert cache.cache_path(CONSOLIDATION_KEY).exists()
