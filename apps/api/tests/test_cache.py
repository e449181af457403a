"""
Tests for the Redis caching layer.

Redis is replaced by FakeRedis; "unavailable" is simulated by the client
factory returning None.
"""
import json
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from redis.exceptions import ConnectionError

from core.cache import (
    analytics_cache_key,
    cache_key,
    get_cache,
    set_cache,
)


class TestCacheKey:

    def test_skips_none_and_sorts_kwargs(self):
        assert cache_key("p", "a", None, z=1, a=None, b=2) == "p:a:b:2:z:1"

    def test_analytics_key_includes_version(self):
        key = analytics_cache_key("u1", "month", "2026-03-15", "2026-03-14T10:00:00+00:00/12")
        assert key.startswith("analytics:u1:month:2026-03-15:")
        assert key.endswith("version:2026-03-14T10:00:00+00:00/12")

    def test_empty_record_set_has_its_own_version(self):
        assert analytics_cache_key("u1", "week", "2026-03-15", None).endswith("version:empty")


class TestGetSet:

    def test_round_trip(self, fake_redis):
        assert set_cache("k", {"a": 1}, ttl=60) is True
        assert get_cache("k") == {"a": 1}
        assert fake_redis._ttls["k"] == 60

    def test_miss(self, fake_redis):
        assert get_cache("missing") is None

    def test_redis_unavailable_degrades(self, no_redis):
        assert set_cache("k", {"a": 1}) is False
        assert get_cache("k") is None

    def test_redis_errors_are_swallowed(self):
        client = MagicMock()
        client.get.side_effect = ConnectionError("down")
        client.setex.side_effect = ConnectionError("down")
        with patch("core.cache.get_redis_client", return_value=client):
            assert get_cache("k") is None
            assert set_cache("k", 1) is False

    def test_datetimes_serialized_as_strings(self, fake_redis):
        from datetime import date
        set_cache("d", {"day": date(2026, 3, 15)})
        assert json.loads(fake_redis.get("d")) == {"day": "2026-03-15"}
