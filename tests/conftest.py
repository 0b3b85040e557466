"""
Pytest configuration and fixtures for KMS codec tests.
"""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from kms_codec import (
    CodecConfig,
    CryptoMaterialsCache,
    CryptoMaterialsManager,
    InMemoryKeyTransport,
    KmsCodec,
    MasterKeyProvider,
    create_codec,
    resolve_credentials,
)

TEST_KEY_ID = "alias/testkey"
TEST_REGION = "us-east-1"


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def transport() -> InMemoryKeyTransport:
    """In-memory key transport holding the test master keys."""
    return InMemoryKeyTransport([TEST_KEY_ID, "alias/secondary"])


@pytest.fixture
def config() -> Dict[str, Any]:
    """Codec options matching the usual test setup."""
    return {
        "key_ids": TEST_KEY_ID,
        "region": TEST_REGION,
        "encryption_context": {"foo": "bar"},
    }


@pytest.fixture
def make_codec(transport: InMemoryKeyTransport, config: Dict[str, Any]):
    """Factory building registered codecs that share the test transport."""

    def _make(**overrides: Any) -> KmsCodec:
        return create_codec({**config, **overrides}, transport=transport)

    return _make


@pytest.fixture
def kms(make_codec) -> KmsCodec:
    return make_codec()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_manager(transport: InMemoryKeyTransport, clock: FakeClock):
    """Factory for a materials manager over the in-memory transport."""

    def _make(key_ids: List[str] = (TEST_KEY_ID,), **cache_options: Any) -> CryptoMaterialsManager:
        provider = MasterKeyProvider(
            credentials=resolve_credentials(),
            region=TEST_REGION,
            key_ids=list(key_ids),
            transport=transport,
        )
        cache = CryptoMaterialsCache(clock=clock, **cache_options)
        return CryptoMaterialsManager(provider, cache)

    return _make


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove codec variables and restore the environment after the test."""
    for name in CodecConfig.model_fields:
        var = f"KMS_CODEC_{name.upper()}"
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    return monkeypatch
