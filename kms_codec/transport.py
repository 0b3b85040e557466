"""
Key-management transports.

This module provides:
- KeyTransport: Abstract interface for wrapping/unwrapping data keys
- KmsKeyTransport: AWS KMS implementation backed by boto3
- InMemoryKeyTransport: Thread-safe local implementation for tests and development
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from .context import serialize_context
from .credentials import CredentialHandle
from .crypto import AesGcmCipher, DataKey, EncryptedData
from .errors import CryptoFormatError, KeyAccessError, UnwrappableKeyError

logger = logging.getLogger(__name__)

# KMS decrypt errors that mean the ciphertext itself was rejected, as opposed
# to the caller being refused or the service being unreachable.
REJECTED_CIPHERTEXT_CODES = frozenset(
    {"InvalidCiphertextException", "IncorrectKeyException", "NotFoundException"}
)


class KeyTransport(ABC):
    """
    Abstract interface to an external key-management service.

    Both calls are blocking and may fail with KeyAccessError. unwrap_key
    raises UnwrappableKeyError when the wrapped bytes are rejected rather
    than the request.
    """

    @abstractmethod
    def wrap_key(
        self,
        key_id: str,
        credentials: CredentialHandle,
        region: str,
        raw_key: bytes,
        encryption_context: Mapping[str, str],
    ) -> bytes:
        """Wrap a raw data key under the master key ``key_id``."""
        ...

    @abstractmethod
    def unwrap_key(
        self,
        key_id: str,
        credentials: CredentialHandle,
        region: str,
        wrapped: bytes,
        encryption_context: Mapping[str, str],
    ) -> bytes:
        """Unwrap a data key previously wrapped under ``key_id``."""
        ...


class KmsKeyTransport(KeyTransport):
    """
    AWS KMS transport.

    Uses the KMS Encrypt/Decrypt APIs to wrap data keys generated locally.
    One client is created lazily per (credentials, region) pair.
    """

    def __init__(self) -> None:
        self._clients: Dict[Tuple[CredentialHandle, str], Any] = {}
        self._lock = threading.Lock()

    def client_for(self, credentials: CredentialHandle, region: str) -> Any:
        """Get or create the KMS client for a credential set and region."""
        with self._lock:
            client = self._clients.get((credentials, region))
            if client is None:
                try:
                    client = credentials.create_session(region).client("kms")
                except BotoCoreError as e:
                    raise KeyAccessError(f"Unable to create KMS client in {region}: {e}")
                self._clients[(credentials, region)] = client
                logger.debug(
                    "Created KMS client for region %s using %s credentials",
                    region,
                    credentials.strategy,
                )
            return client

    def wrap_key(
        self,
        key_id: str,
        credentials: CredentialHandle,
        region: str,
        raw_key: bytes,
        encryption_context: Mapping[str, str],
    ) -> bytes:
        params: Dict[str, Any] = {"KeyId": key_id, "Plaintext": raw_key}
        if encryption_context:
            params["EncryptionContext"] = dict(encryption_context)

        client = self.client_for(credentials, region)
        try:
            response = client.encrypt(**params)
        except (BotoCoreError, ClientError) as e:
            raise KeyAccessError(f"KMS encrypt failed for key {key_id}: {e}")
        return response["CiphertextBlob"]

    def unwrap_key(
        self,
        key_id: str,
        credentials: CredentialHandle,
        region: str,
        wrapped: bytes,
        encryption_context: Mapping[str, str],
    ) -> bytes:
        params: Dict[str, Any] = {"CiphertextBlob": wrapped, "KeyId": key_id}
        if encryption_context:
            params["EncryptionContext"] = dict(encryption_context)

        client = self.client_for(credentials, region)
        try:
            response = client.decrypt(**params)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in REJECTED_CIPHERTEXT_CODES:
                raise UnwrappableKeyError(
                    f"KMS rejected data key wrapped under {key_id}: {e}"
                )
            raise KeyAccessError(f"KMS decrypt failed for key {key_id}: {e}")
        except BotoCoreError as e:
            raise KeyAccessError(f"KMS decrypt failed for key {key_id}: {e}")
        return response["Plaintext"]


class InMemoryKeyTransport(KeyTransport):
    """
    Thread-safe in-memory transport for testing and local development.

    Master keys live in process memory and never leave it. Wrapping binds
    the key id and encryption context as AAD, so a wrapped key only unwraps
    under the same master key and context, like KMS does.
    """

    def __init__(self, key_ids: Iterable[str] = ()) -> None:
        self._master_keys: Dict[str, DataKey] = {}
        self._denied: set = set()
        self._lock = threading.Lock()
        self.wrap_calls = 0
        self.unwrap_calls = 0
        for key_id in key_ids:
            self.add_key(key_id)

    def add_key(self, key_id: str, key: Optional[DataKey] = None) -> None:
        """Register a master key (generated when not given)."""
        with self._lock:
            self._master_keys[key_id] = key if key is not None else DataKey.generate()

    def deny(self, key_id: str) -> None:
        """Make every later call against ``key_id`` fail with KeyAccessError."""
        with self._lock:
            self._denied.add(key_id)

    def _master_key(self, key_id: str, missing: type = KeyAccessError) -> DataKey:
        if key_id in self._denied:
            raise KeyAccessError(f"Access denied for key {key_id}")
        key = self._master_keys.get(key_id)
        if key is None:
            raise missing(f"Key {key_id} not found")
        return key

    @staticmethod
    def _aad(key_id: str, encryption_context: Mapping[str, str]) -> bytes:
        return key_id.encode("utf-8") + b"\x00" + serialize_context(encryption_context)

    def wrap_key(
        self,
        key_id: str,
        credentials: CredentialHandle,
        region: str,
        raw_key: bytes,
        encryption_context: Mapping[str, str],
    ) -> bytes:
        with self._lock:
            self.wrap_calls += 1
            master_key = self._master_key(key_id)
        encrypted = AesGcmCipher.encrypt(
            master_key, raw_key, self._aad(key_id, encryption_context)
        )
        return encrypted.to_aead_blob()

    def unwrap_key(
        self,
        key_id: str,
        credentials: CredentialHandle,
        region: str,
        wrapped: bytes,
        encryption_context: Mapping[str, str],
    ) -> bytes:
        with self._lock:
            self.unwrap_calls += 1
            master_key = self._master_key(key_id, missing=UnwrappableKeyError)
        try:
            return AesGcmCipher.decrypt(
                master_key,
                EncryptedData.from_aead_blob(wrapped),
                self._aad(key_id, encryption_context),
            )
        except CryptoFormatError as e:
            raise UnwrappableKeyError(f"Unable to unwrap data key with {key_id}: {e}")


def default_transport() -> KeyTransport:
    """Transport used when the caller does not supply one."""
    return KmsKeyTransport()

