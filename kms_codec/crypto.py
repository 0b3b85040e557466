"""
Cryptographic primitives used by envelopes and the in-memory transport.

A negotiated data key is cached and shared by many messages, so it never
encrypts a payload directly: every envelope derives its own content key from
the data key and its message id (DataKey.derive_message_key) and seals the
payload with AES-256-GCM, binding the envelope header as AAD.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .errors import CryptoFormatError

# Cryptographic constants
AES_256_KEY_SIZE: int = 32  # 256 bits
NONCE_SIZE: int = 12  # 96 bits (standard for AES-GCM)
TAG_SIZE: int = 16  # 128 bits (authentication tag)
MESSAGE_ID_SIZE: int = 16


class DataKey:
    """
    Symmetric key material: a cached data key, a content key derived from
    one, or a master key of the in-memory transport.

    The bytes are held in a bytearray and overwritten when the object is
    collected. Collection timing is up to the interpreter.
    """

    __slots__ = ("_bytes",)

    def __init__(self, key_bytes: bytes | bytearray) -> None:
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise TypeError(
                f"DataKey expects bytes or bytearray, got {type(key_bytes).__name__}"
            )
        self._bytes = bytearray(key_bytes)

    @classmethod
    def generate(cls) -> DataKey:
        """Generate a cryptographically secure random 32-byte key."""
        return cls(secrets.token_bytes(AES_256_KEY_SIZE))

    def as_bytes(self) -> bytes:
        return bytes(self._bytes)

    def derive_message_key(self, message_id: bytes, info: bytes) -> DataKey:
        """
        Derive the content key for one message (HKDF-SHA256).

        ``message_id`` salts the derivation and ``info`` names the envelope
        format and algorithm, so a content key never serves two messages or
        two formats.
        """
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=AES_256_KEY_SIZE,
            salt=message_id,
            info=info,
        )
        return DataKey(hkdf.derive(self.as_bytes()))

    def __len__(self) -> int:
        return len(self._bytes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DataKey):
            return NotImplemented
        return secrets.compare_digest(bytes(self._bytes), bytes(other._bytes))

    def __repr__(self) -> str:
        return "DataKey([REDACTED])"

    def __del__(self) -> None:
        if hasattr(self, "_bytes"):
            for i in range(len(self._bytes)):
                self._bytes[i] = 0


@dataclass(frozen=True)
class EncryptedData:
    """
    Sealed envelope body or wrapped key: nonce, then ciphertext with the
    GCM tag appended.
    """

    nonce: bytes
    ciphertext: bytes

    def to_aead_blob(self) -> bytes:
        return self.nonce + self.ciphertext

    @classmethod
    def from_aead_blob(cls, blob: bytes) -> EncryptedData:
        """
        Split ``nonce || ciphertext || tag`` as found at the end of an envelope.

        Raises:
            CryptoFormatError: If the blob cannot hold a nonce and a tag
        """
        min_size = NONCE_SIZE + TAG_SIZE
        if len(blob) < min_size:
            raise CryptoFormatError(
                f"Encrypted body too short: {len(blob)} bytes, need at least {min_size}"
            )
        return cls(nonce=blob[:NONCE_SIZE], ciphertext=blob[NONCE_SIZE:])


class AesGcmCipher:
    """AES-256-GCM with a fresh random nonce per call."""

    @staticmethod
    def encrypt(
        key: DataKey,
        plaintext: bytes,
        aad: Optional[bytes] = None,
    ) -> EncryptedData:
        if len(key) != AES_256_KEY_SIZE:
            raise CryptoFormatError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
            )

        nonce = secrets.token_bytes(NONCE_SIZE)
        aesgcm = AESGCM(key.as_bytes())
        return EncryptedData(nonce=nonce, ciphertext=aesgcm.encrypt(nonce, plaintext, aad))

    @staticmethod
    def decrypt(
        key: DataKey,
        encrypted: EncryptedData,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Raises:
            CryptoFormatError: If the key or nonce has the wrong size, or the
                tag does not verify (wrong key, tampered bytes, different AAD)
        """
        if len(key) != AES_256_KEY_SIZE:
            raise CryptoFormatError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
            )

        if len(encrypted.nonce) != NONCE_SIZE:
            raise CryptoFormatError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(encrypted.nonce)}"
            )

        aesgcm = AESGCM(key.as_bytes())

        try:
            return aesgcm.decrypt(encrypted.nonce, encrypted.ciphertext, aad)
        except InvalidTag:
            # No detail: which part failed is not disclosed
            raise CryptoFormatError("Decryption failed")


def generate_random_bytes(length: int) -> bytes:
    """Generate cryptographically secure random bytes."""
    return secrets.token_bytes(length)
