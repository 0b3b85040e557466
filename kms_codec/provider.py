"""
Master key provider.

Binds a credential set and a region to an ordered list of master key ids,
and wraps/unwraps data keys through a key transport.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Mapping, Sequence, Tuple

from .credentials import CredentialHandle
from .crypto import DataKey
from .errors import ConfigurationError, KeyAccessError, UnwrappableKeyError
from .transport import KeyTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WrappedKey:
    """A data key wrapped under one master key."""

    key_id: str
    wrapped: bytes


class MasterKeyProvider:
    """
    Wraps data keys under every configured master key.

    The first key id is the primary one; a copy of the data key is wrapped
    under each id so that access to any single master key is enough to
    decrypt.
    """

    def __init__(
        self,
        credentials: CredentialHandle,
        region: str,
        key_ids: Sequence[str],
        transport: KeyTransport,
    ) -> None:
        if not key_ids:
            raise ConfigurationError("At least one key id is required")
        if not region:
            raise ConfigurationError("A region is required")

        self._credentials = credentials
        self._region = region
        self._key_ids: Tuple[str, ...] = tuple(key_ids)
        self._transport = transport

    @property
    def region(self) -> str:
        return self._region

    @property
    def key_ids(self) -> Tuple[str, ...]:
        return self._key_ids

    @property
    def primary_key_id(self) -> str:
        return self._key_ids[0]

    @property
    def credentials(self) -> CredentialHandle:
        return self._credentials

    @property
    def provider_id(self) -> str:
        """Stable identity used to scope cached materials to this provider."""
        return f"aws-kms:{self._region}:{','.join(self._key_ids)}"

    def wrap(
        self, data_key: DataKey, encryption_context: Mapping[str, str]
    ) -> List[WrappedKey]:
        """
        Wrap ``data_key`` under every configured key id.

        Raises:
            KeyAccessError: If any key cannot be used; no partial result is returned
        """
        raw_key = data_key.as_bytes()
        return [
            WrappedKey(
                key_id=key_id,
                wrapped=self._transport.wrap_key(
                    key_id, self._credentials, self._region, raw_key, encryption_context
                ),
            )
            for key_id in self._key_ids
        ]

    def unwrap(
        self, wrapped_keys: Sequence[WrappedKey], encryption_context: Mapping[str, str]
    ) -> DataKey:
        """
        Recover the data key from the first entry that unwraps.

        Raises:
            KeyAccessError: If no entry unwraps and at least one master key
                was denied or unreachable
            UnwrappableKeyError: If every entry was rejected, or there are none
        """
        rejected = []
        denied = []
        for entry in wrapped_keys:
            try:
                raw_key = self._transport.unwrap_key(
                    entry.key_id,
                    self._credentials,
                    self._region,
                    entry.wrapped,
                    encryption_context,
                )
            except UnwrappableKeyError as e:
                logger.debug("Data key wrapped under %s was rejected: %s", entry.key_id, e)
                rejected.append(entry.key_id)
                continue
            except KeyAccessError as e:
                logger.debug("Could not unwrap data key with %s: %s", entry.key_id, e)
                denied.append(entry.key_id)
                continue
            return DataKey(raw_key)

        if denied:
            raise KeyAccessError(
                f"Unable to unwrap data key with any of: {', '.join(denied + rejected)}"
            )
        if not rejected:
            raise UnwrappableKeyError("Envelope carries no wrapped data keys")
        raise UnwrappableKeyError(
            f"No master key accepted the wrapped data key: {', '.join(rejected)}"
        )
