"""
Unit tests for CacheStore: TTL expiry, overwrite semantics and namespace
scoping of the SQLite-backed short-lived cache.
"""

from eds_calendar_tagger.db import CacheStore
from eds_calendar_tagger.db import query_namespaces
from tests.conftest import FakeClock


class TestGetPut:
    def test_missing_key_reads_none(self, cache_store):
        assert cache_store.get("nope") is None

    def test_put_then_get(self, cache_store):
        cache_store.put("k", '["#Work"]', 120)
        assert cache_store.get("k") == '["#Work"]'

    def test_put_overwrites_value(self, cache_store):
        cache_store.put("k", "one", 120)
        cache_store.put("k", "two", 120)
        assert cache_store.get("k") == "two"

    def test_remove(self, cache_store):
        cache_store.put("k", "v", 120)
        cache_store.remove("k")
        assert cache_store.get("k") is None

    def test_remove_missing_key_is_noop(self, cache_store):
        cache_store.remove("never-set")


class TestExpiry:
    def test_entry_expires_after_ttl(self, cache_store, clock):
        cache_store.put("k", "v", 120)
        clock.advance(119)
        assert cache_store.get("k") == "v"
        clock.advance(1)
        assert cache_store.get("k") is None

    def test_put_renews_ttl(self, cache_store, clock):
        """Re-putting restarts the expiry window (sliding expiration)."""
        cache_store.put("k", "v1", 120)
        clock.advance(100)
        cache_store.put("k", "v2", 120)
        clock.advance(100)
        assert cache_store.get("k") == "v2"

    def test_expired_rows_are_purged_on_write(self, cache_store, clock):
        cache_store.put("old", "v", 10)
        clock.advance(20)
        cache_store.put("new", "v", 10)

        count = cache_store.conn.execute("SELECT COUNT(*) FROM cache_entries").fetchone()[0]
        assert count == 1


class TestNamespaceScoping:
    def test_namespaces_do_not_share_entries(self, cache_store, cache_db_path, clock):
        cache_store.put("k", "mine", 120)

        with CacheStore(cache_db_path, "someone-else", clock=clock) as other:
            assert other.get("k") is None
            other.put("k", "theirs", 120)

        assert cache_store.get("k") == "mine"

    def test_query_namespaces_counts_rows(self, cache_db_path):
        clock = FakeClock()
        with CacheStore(cache_db_path, "alice", clock=clock) as alice:
            alice.put("a", "v", 60)
            alice.put("b", "v", 60)
        with CacheStore(cache_db_path, "bob", clock=clock) as bob:
            bob.put("a", "v", 60)

        rows = query_namespaces(cache_db_path)
        assert [(r["namespace"], r["count"]) for r in rows] == [("alice", 2), ("bob", 1)]

    def test_query_namespaces_without_db(self, tmp_path):
        assert query_namespaces(tmp_path / "missing.db") == []
