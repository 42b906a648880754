"""
Unit tests for the DecisionCache.
"""

from datetime import datetime, timezone

import pytest

from service_policy.app.cache.decision_cache import DecisionCache
from service_policy.app.policy.models import AccessResult


class TestDecisionCache:
    """Test cases for DecisionCache."""

    @pytest.fixture
    def cache(self, clock):
        """Create DecisionCache instance."""
        return DecisionCache(ttl_seconds=60, max_entries=3, clock=clock)

    @pytest.fixture
    def allow(self):
        """Create an allow result."""
        return AccessResult(allowed=True, reason="Role-based access granted for roles: viewer")

    def test_set_stamps_expiry(self, cache, clock, allow):
        """Test that stored results carry their expiry."""
        stored = cache.set("u1:abc", "u1", allow)

        assert stored.expires_at == datetime.fromtimestamp(clock.now + 60, tz=timezone.utc)
        assert allow.expires_at is None
        assert cache.get("u1:abc") == stored

    def test_miss(self, cache):
        """Test lookup of a missing key."""
        assert cache.get("u1:missing") is None
        assert cache.get_stats()["misses"] == 1

    def test_expiry(self, cache, clock, allow):
        """Test that entries expire after the TTL."""
        cache.set("u1:abc", "u1", allow)

        clock.advance(59)
        assert cache.get("u1:abc") is not None

        clock.advance(1)
        assert cache.get("u1:abc") is None
        assert len(cache) == 0

    def test_invalidate_user(self, cache, allow):
        """Test targeted invalidation by user."""
        cache.set("u1:a", "u1", allow)
        cache.set("u1:b", "u1", allow)
        cache.set("u2:a", "u2", allow)

        assert cache.invalidate_user("u1") == 2
        assert cache.get("u1:a") is None
        assert cache.get("u2:a") is not None

    def test_invalidate_user_matches_exact_id(self, cache, allow):
        """Test that user ids sharing a prefix are not invalidated."""
        cache.set("u1:a", "u1", allow)
        cache.set("u10:a", "u10", allow)

        cache.invalidate_user("u1")

        assert cache.get("u10:a") is not None

    def test_clear(self, cache, allow):
        """Test full invalidation."""
        cache.set("u1:a", "u1", allow)
        cache.set("u2:a", "u2", allow)

        assert cache.clear() == 2
        assert len(cache) == 0

    def test_eviction(self, cache, allow):
        """Test that the oldest entries are evicted past max_entries."""
        for index in range(4):
            cache.set(f"u{index}:a", f"u{index}", allow)

        assert len(cache) == 3
        assert cache.get("u0:a") is None
        assert cache.get("u3:a") is not None

    def test_eviction_prefers_expired(self, cache, clock, allow):
        """Test that expired entries are purged before live ones."""
        cache.set("old:a", "old", allow)
        clock.advance(61)
        for index in range(3):
            cache.set(f"u{index}:a", f"u{index}", allow)

        assert len(cache) == 3
        assert cache.get("u0:a") is not None

    def test_purge_expired(self, cache, clock, allow):
        """Test explicit purge."""
        cache.set("u1:a", "u1", allow)
        clock.advance(30)
        cache.set("u2:a", "u2", allow)
        clock.advance(31)

        assert cache.purge_expired() == 1
        assert len(cache) == 1

    def test_disabled(self, clock, allow):
        """Test that a zero TTL disables storage."""
        cache = DecisionCache(ttl_seconds=0, clock=clock)

        stored = cache.set("u1:a", "u1", allow)

        assert stored is allow
        assert cache.enabled is False
        assert len(cache) == 0

    def test_stats(self, cache, allow):
        """Test hit rate statistics."""
        cache.set("u1:a", "u1", allow)
        cache.get("u1:a")
        cache.get("u1:b")

        stats = cache.get_stats()

        assert stats["size"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["ttl_seconds"] == 60
