"""
Crypto materials manager.

Decides per request whether cached key material can be reused or new
material has to be negotiated with the master key provider.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence, Tuple

from .cache import CryptoMaterialsCache, cache_key
from .context import EncryptionContext
from .crypto import DataKey
from .provider import MasterKeyProvider, WrappedKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CryptoMaterial:
    """A data key, its wrapped forms and the context it was negotiated under."""

    data_key: DataKey
    wrapped_keys: Tuple[WrappedKey, ...]
    encryption_context: EncryptionContext


class CryptoMaterialsManager:
    """Composes a MasterKeyProvider with a CryptoMaterialsCache."""

    def __init__(self, provider: MasterKeyProvider, cache: CryptoMaterialsCache) -> None:
        self._provider = provider
        self._cache = cache

    @property
    def provider(self) -> MasterKeyProvider:
        return self._provider

    @property
    def cache(self) -> CryptoMaterialsCache:
        return self._cache

    def materials_for_encrypt(self, encryption_context: Mapping[str, str]) -> CryptoMaterial:
        """
        Get material to encrypt one message under ``encryption_context``.

        Raises:
            KeyAccessError: If negotiation with the key provider fails
        """
        key = cache_key(encryption_context, self._provider.provider_id)
        material = self._cache.get(key)
        if material is not None:
            return material

        # Negotiate outside the cache lock; concurrent misses may both negotiate.
        context = dict(encryption_context)
        data_key = DataKey.generate()
        wrapped_keys = tuple(self._provider.wrap(data_key, context))
        material = CryptoMaterial(
            data_key=data_key,
            wrapped_keys=wrapped_keys,
            encryption_context=context,
        )
        self._cache.put(key, material)
        logger.debug(
            "Negotiated new data key wrapped under %d master key(s)", len(wrapped_keys)
        )
        return material

    def materials_for_decrypt(
        self,
        wrapped_keys: Sequence[WrappedKey],
        encryption_context: Mapping[str, str],
    ) -> Tuple[DataKey, EncryptionContext]:
        """
        Recover the data key of an incoming envelope.

        The declared context is returned as-is; checking it is up to the caller.

        Raises:
            KeyAccessError: If a master key was denied or unreachable
            UnwrappableKeyError: If every wrapped key was rejected
        """
        data_key = self._provider.unwrap(wrapped_keys, encryption_context)
        return data_key, dict(encryption_context)
