"""
Tests for the crypto materials cache, manager and master key provider.
"""

from __future__ import annotations

import threading

import pytest

from kms_codec import (
    ConfigurationError,
    CryptoMaterialsCache,
    DataKey,
    KeyAccessError,
    MasterKeyProvider,
    UnwrappableKeyError,
    WrappedKey,
    resolve_credentials,
)
from kms_codec.cache import cache_key
from kms_codec.materials import CryptoMaterial

TEST_KEY_ID = "alias/testkey"
TEST_REGION = "us-east-1"


def _material(context=None) -> CryptoMaterial:
    return CryptoMaterial(
        data_key=DataKey.generate(),
        wrapped_keys=(WrappedKey(key_id=TEST_KEY_ID, wrapped=b"wrapped"),),
        encryption_context=dict(context or {}),
    )


class TestCacheKey:
    def test_order_independent(self):
        assert cache_key({"a": "1", "b": "2"}, "p") == cache_key({"b": "2", "a": "1"}, "p")

    def test_scoped_by_provider(self):
        assert cache_key({"a": "1"}, "p1") != cache_key({"a": "1"}, "p2")

    def test_scoped_by_context(self):
        assert cache_key({"a": "1"}, "p") != cache_key({"a": "2"}, "p")


class TestCryptoMaterialsCache:
    def test_get_missing(self, clock):
        cache = CryptoMaterialsCache(clock=clock)
        assert cache.get("nope") is None
        assert cache.stats.misses == 1

    def test_hit_counts_use(self, clock):
        cache = CryptoMaterialsCache(clock=clock)
        material = _material()
        cache.put("k", material)
        assert cache.get("k") is material
        assert cache.stats.hits == 1

    def test_capacity_evicts_least_recently_used(self, clock):
        cache = CryptoMaterialsCache(max_entries=2, clock=clock)
        cache.put("a", _material())
        cache.put("b", _material())
        assert cache.get("a") is not None  # touch a, b becomes LRU
        cache.put("c", _material())

        assert len(cache) == 2
        assert "b" not in cache
        assert "a" in cache
        assert "c" in cache
        assert cache.stats.evictions == 1

    def test_use_limit(self, clock):
        cache = CryptoMaterialsCache(max_entry_uses=3, clock=clock)
        cache.put("k", _material())  # first use
        assert cache.get("k") is not None  # second
        assert cache.get("k") is not None  # third
        assert cache.get("k") is None
        assert "k" not in cache

    def test_age_limit(self, clock):
        cache = CryptoMaterialsCache(max_entry_age_ms=1000, clock=clock)
        cache.put("k", _material())
        clock.advance(1000)
        assert cache.get("k") is not None
        clock.advance(1)
        assert cache.get("k") is None

    def test_clear(self, clock):
        cache = CryptoMaterialsCache(clock=clock)
        cache.put("k", _material())
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.parametrize(
        "options",
        [{"max_entries": 0}, {"max_entry_uses": 0}, {"max_entry_age_ms": 0}],
    )
    def test_invalid_limits(self, options):
        with pytest.raises(ConfigurationError):
            CryptoMaterialsCache(**options)

    def test_concurrent_use_count_is_exact(self, clock):
        cache = CryptoMaterialsCache(max_entry_uses=50, clock=clock)
        cache.put("k", _material())

        results = []
        results_lock = threading.Lock()
        start = threading.Barrier(20)

        def worker():
            start.wait()
            for _ in range(10):
                material = cache.get("k")
                with results_lock:
                    results.append(material)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for r in results if r is not None) == 49


class TestCryptoMaterialsManager:
    def test_miss_then_hit(self, make_manager, transport):
        manager = make_manager()
        first = manager.materials_for_encrypt({"a": "1"})
        second = manager.materials_for_encrypt({"a": "1"})
        assert first is second
        assert transport.wrap_calls == 1

    def test_distinct_contexts_negotiate_separately(self, make_manager, transport):
        manager = make_manager()
        first = manager.materials_for_encrypt({"a": "1"})
        second = manager.materials_for_encrypt({"a": "2"})
        assert first is not second
        assert second.encryption_context == {"a": "2"}
        assert transport.wrap_calls == 2

    def test_capacity_eviction_renegotiates(self, make_manager, transport):
        manager = make_manager(max_entries=2)
        for value in ("1", "2", "3"):
            manager.materials_for_encrypt({"ctx": value})
        assert transport.wrap_calls == 3

        manager.materials_for_encrypt({"ctx": "3"})
        assert transport.wrap_calls == 3
        manager.materials_for_encrypt({"ctx": "1"})
        assert transport.wrap_calls == 4

    def test_use_limit_renegotiates(self, make_manager, transport):
        manager = make_manager(max_entry_uses=2)
        first = manager.materials_for_encrypt({})
        assert manager.materials_for_encrypt({}) is first
        third = manager.materials_for_encrypt({})
        assert third is not first
        assert transport.wrap_calls == 2

    def test_age_limit_renegotiates(self, make_manager, transport, clock):
        manager = make_manager(max_entry_age_ms=5000)
        first = manager.materials_for_encrypt({})
        clock.advance(5001)
        assert manager.materials_for_encrypt({}) is not first
        assert transport.wrap_calls == 2

    def test_materials_for_decrypt(self, make_manager, transport):
        manager = make_manager()
        material = manager.materials_for_encrypt({"a": "1", "b": "2"})
        data_key, context = manager.materials_for_decrypt(
            material.wrapped_keys, {"a": "1", "b": "2"}
        )
        assert data_key == material.data_key
        assert context == {"a": "1", "b": "2"}
        # Decrypt-path material is never cached
        assert len(manager.cache) == 1
        assert transport.unwrap_calls == 1

    def test_wrap_failure_is_not_cached(self, make_manager, transport):
        transport.deny(TEST_KEY_ID)
        manager = make_manager()
        with pytest.raises(KeyAccessError):
            manager.materials_for_encrypt({})
        assert len(manager.cache) == 0


class TestMasterKeyProvider:
    def _provider(self, transport, key_ids):
        return MasterKeyProvider(resolve_credentials(), TEST_REGION, key_ids, transport)

    def test_requires_key_ids(self, transport):
        with pytest.raises(ConfigurationError):
            self._provider(transport, [])

    def test_key_ids_are_immutable(self, transport):
        key_ids = [TEST_KEY_ID]
        provider = self._provider(transport, key_ids)
        key_ids.append("alias/other")
        assert provider.key_ids == (TEST_KEY_ID,)
        assert provider.primary_key_id == TEST_KEY_ID

    def test_wraps_under_every_key_in_order(self, transport):
        provider = self._provider(transport, [TEST_KEY_ID, "alias/secondary"])
        wrapped = provider.wrap(DataKey.generate(), {})
        assert [w.key_id for w in wrapped] == [TEST_KEY_ID, "alias/secondary"]

    def test_unwrap_skips_unusable_entries(self, transport):
        provider = self._provider(transport, [TEST_KEY_ID, "alias/secondary"])
        data_key = DataKey.generate()
        wrapped = provider.wrap(data_key, {"a": "1"})
        entries = [WrappedKey(key_id="alias/unknown", wrapped=b"x" * 60)] + wrapped
        assert provider.unwrap(entries, {"a": "1"}) == data_key

    def test_unwrap_with_wrong_context_fails(self, transport):
        provider = self._provider(transport, [TEST_KEY_ID])
        wrapped = provider.wrap(DataKey.generate(), {"a": "1"})
        with pytest.raises(UnwrappableKeyError):
            provider.unwrap(wrapped, {"a": "2"})

    def test_unwrap_nothing(self, transport):
        provider = self._provider(transport, [TEST_KEY_ID])
        with pytest.raises(UnwrappableKeyError):
            provider.unwrap([], {})

    def test_unwrap_denied(self, transport):
        provider = self._provider(transport, [TEST_KEY_ID])
        wrapped = provider.wrap(DataKey.generate(), {})
        transport.deny(TEST_KEY_ID)
        with pytest.raises(KeyAccessError):
            provider.unwrap(wrapped, {})

    def test_denial_outranks_rejection(self, transport):
        provider = self._provider(transport, [TEST_KEY_ID, "alias/secondary"])
        wrapped = provider.wrap(DataKey.generate(), {"a": "1"})
        transport.deny("alias/secondary")
        # The first entry is rejected for its context, the second is denied
        with pytest.raises(KeyAccessError):
            provider.unwrap(wrapped, {"a": "2"})

    def test_provider_id(self, transport):
        provider = self._provider(transport, [TEST_KEY_ID, "alias/secondary"])
        assert provider.provider_id == "aws-kms:us-east-1:alias/testkey,alias/secondary"
