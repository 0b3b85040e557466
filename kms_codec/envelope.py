"""
Envelope wire format.

This module provides:
- EnvelopeBlob: Self-describing encrypted payload (context, wrapped keys, ciphertext)
- DecryptOutcome: Result of opening a blob, either plaintext or a CryptoFormatError

Wire format (integers big-endian):
    magic "KMSE" | version u8 | algorithm u8 | message_id (16 bytes)
    context_len u16 | context (canonical JSON)
    key_count u16 | key_count x (id_len u16 | key id | wrapped_len u16 | wrapped key)
    nonce (12 bytes) | ciphertext || tag (16 bytes)

Everything before the nonce is the header and is authenticated as AAD.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .context import EncryptionContext, parse_context, serialize_context
from .crypto import (
    MESSAGE_ID_SIZE,
    AesGcmCipher,
    DataKey,
    EncryptedData,
    generate_random_bytes,
)
from .errors import CryptoFormatError
from .materials import CryptoMaterial
from .provider import WrappedKey

MAGIC: bytes = b"KMSE"
FORMAT_VERSION: int = 1
ALGORITHM_AES_256_GCM_HKDF_SHA256: int = 1

_PREAMBLE = struct.Struct(f"!4sBB{MESSAGE_ID_SIZE}s")
_U16 = struct.Struct("!H")
_U16_MAX = 0xFFFF


class _Reader:
    """Bounds-checked cursor over blob bytes."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self.offset = 0

    def take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self._data):
            raise CryptoFormatError("Truncated envelope")
        chunk = self._data[self.offset:end]
        self.offset = end
        return chunk

    def u16(self) -> int:
        return _U16.unpack(self.take(_U16.size))[0]

    def rest(self) -> bytes:
        chunk = self._data[self.offset:]
        self.offset = len(self._data)
        return chunk


def _u16_prefixed(chunk: bytes) -> bytes:
    if len(chunk) > _U16_MAX:
        raise CryptoFormatError(f"Envelope field too large: {len(chunk)} bytes")
    return _U16.pack(len(chunk)) + chunk


@dataclass(frozen=True)
class DecryptOutcome:
    """Either the decrypted plaintext or the reason it could not be produced."""

    plaintext: Optional[bytes] = None
    error: Optional[CryptoFormatError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, plaintext: bytes) -> DecryptOutcome:
        return cls(plaintext=plaintext)

    @classmethod
    def failure(cls, error: CryptoFormatError) -> DecryptOutcome:
        return cls(error=error)


@dataclass(frozen=True)
class EnvelopeBlob:
    """Immutable encrypted payload with everything needed to decrypt it."""

    message_id: bytes
    encryption_context: EncryptionContext
    wrapped_keys: Tuple[WrappedKey, ...]
    encrypted: EncryptedData
    version: int = FORMAT_VERSION
    algorithm: int = ALGORITHM_AES_256_GCM_HKDF_SHA256
    _header: bytes = field(default=b"", repr=False, compare=False)

    @staticmethod
    def _build_header(
        version: int,
        algorithm: int,
        message_id: bytes,
        encryption_context: EncryptionContext,
        wrapped_keys: Tuple[WrappedKey, ...],
    ) -> bytes:
        if len(wrapped_keys) > _U16_MAX:
            raise CryptoFormatError("Too many wrapped keys")
        parts = [
            _PREAMBLE.pack(MAGIC, version, algorithm, message_id),
            _u16_prefixed(serialize_context(encryption_context)),
            _U16.pack(len(wrapped_keys)),
        ]
        for entry in wrapped_keys:
            parts.append(_u16_prefixed(entry.key_id.encode("utf-8")))
            parts.append(_u16_prefixed(entry.wrapped))
        return b"".join(parts)

    @property
    def header(self) -> bytes:
        """Serialized header, bound to the ciphertext as AAD."""
        if self._header:
            return self._header
        return self._build_header(
            self.version,
            self.algorithm,
            self.message_id,
            self.encryption_context,
            self.wrapped_keys,
        )

    @staticmethod
    def _key_info(algorithm: int) -> bytes:
        return MAGIC + bytes([algorithm])

    @classmethod
    def seal(cls, material: CryptoMaterial, plaintext: bytes) -> EnvelopeBlob:
        """Encrypt ``plaintext`` under ``material`` into a new blob."""
        message_id = generate_random_bytes(MESSAGE_ID_SIZE)
        algorithm = ALGORITHM_AES_256_GCM_HKDF_SHA256
        header = cls._build_header(
            FORMAT_VERSION,
            algorithm,
            message_id,
            material.encryption_context,
            material.wrapped_keys,
        )
        content_key = material.data_key.derive_message_key(
            message_id, cls._key_info(algorithm)
        )
        encrypted = AesGcmCipher.encrypt(content_key, plaintext, header)
        return cls(
            message_id=message_id,
            encryption_context=dict(material.encryption_context),
            wrapped_keys=tuple(material.wrapped_keys),
            encrypted=encrypted,
            version=FORMAT_VERSION,
            algorithm=algorithm,
            _header=header,
        )

    def open(self, data_key: DataKey) -> DecryptOutcome:
        """Authenticate and decrypt the payload with the unwrapped data key."""
        content_key = data_key.derive_message_key(
            self.message_id, self._key_info(self.algorithm)
        )
        try:
            plaintext = AesGcmCipher.decrypt(content_key, self.encrypted, self.header)
        except CryptoFormatError as e:
            return DecryptOutcome.failure(e)
        return DecryptOutcome.success(plaintext)

    def to_bytes(self) -> bytes:
        return self.header + self.encrypted.to_aead_blob()

    @classmethod
    def from_bytes(cls, data: bytes) -> EnvelopeBlob:
        """
        Parse a blob from its wire form.

        Raises:
            CryptoFormatError: If the bytes are not a well-formed envelope
        """
        reader = _Reader(data)
        magic, version, algorithm, message_id = _PREAMBLE.unpack(
            reader.take(_PREAMBLE.size)
        )
        if magic != MAGIC:
            raise CryptoFormatError("Not a KMS envelope")
        if version != FORMAT_VERSION:
            raise CryptoFormatError(f"Unsupported envelope version: {version}")
        if algorithm != ALGORITHM_AES_256_GCM_HKDF_SHA256:
            raise CryptoFormatError(f"Unsupported envelope algorithm: {algorithm}")

        encryption_context = parse_context(reader.take(reader.u16()))

        wrapped_keys = []
        for _ in range(reader.u16()):
            try:
                key_id = reader.take(reader.u16()).decode("utf-8")
            except UnicodeDecodeError:
                raise CryptoFormatError("Invalid key id in envelope")
            wrapped_keys.append(WrappedKey(key_id=key_id, wrapped=reader.take(reader.u16())))

        header_end = reader.offset
        encrypted = EncryptedData.from_aead_blob(reader.rest())

        return cls(
            message_id=message_id,
            encryption_context=encryption_context,
            wrapped_keys=tuple(wrapped_keys),
            encrypted=encrypted,
            version=version,
            algorithm=algorithm,
            _header=bytes(data[:header_end]),
        )
