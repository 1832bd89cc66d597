#!/usr/bin/env python3

from token_cache import InMemoryTokenCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestInMemoryTokenCache:
    def setup_method(self):
        self.clock = FakeClock()
        self.cache = InMemoryTokenCache(clock=self.clock)

    def test_miss(self):
        assert self.cache.get("1001|alice") is None

    def test_put_and_get(self):
        self.cache.put("1001|alice", "token", 60)

        assert self.cache.get("1001|alice") == "token"

    def test_expiry(self):
        self.cache.put("1001|alice", "token", 60)

        self.clock.now += 59
        assert self.cache.get("1001|alice") == "token"

        self.clock.now += 1
        assert self.cache.get("1001|alice") is None

    def test_no_ttl_never_expires(self):
        self.cache.put("key", "token")

        self.clock.now += 10 ** 9
        assert self.cache.get("key") == "token"

    def test_non_positive_ttl_is_not_cached(self):
        self.cache.put("key", "old", 60)
        self.cache.put("key", "new", -3)

        assert self.cache.get("key") is None

    def test_keys_are_independent(self):
        self.cache.put("1001|alice", "a", 60)
        self.cache.put("1002|alice", "b", 60)

        assert self.cache.get("1001|alice") == "a"
        assert self.cache.get("1002|alice") == "b"

    def test_clear(self):
        self.cache.put("key", "token", 60)
        self.cache.clear()

        assert self.cache.get("key") is None
