"""
KMS envelope codec.

Encrypts events with envelope encryption on the way out and decrypts them on
the way in. Serialization of the plaintext is delegated to an inner codec.

Usage:
    codec = create_codec({
        "key_ids": ["alias/app-logs"],
        "region": "us-east-1",
        "encryption_context": {"app": "billing"},
        "codec": "json",
    })
    blob = codec.encode({"message": "Hello World."})
    events = list(codec.decode(blob))

Setting ``fallback_if_invalid_format`` lets undecryptable input pass through
the inner codec as plaintext, which helps while producers are migrated to
encrypted transport one at a time. A context mismatch or a denied master
key is never covered by the fallback.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterator, Mapping, Optional, Union

from .cache import CryptoMaterialsCache
from .config import CodecConfig
from .context import verify_context
from .credentials import resolve_credentials
from .envelope import DecryptOutcome, EnvelopeBlob
from .errors import ConfigurationError, CryptoFormatError, UnwrappableKeyError
from .inner import Event, InnerCodec, create_inner_codec
from .materials import CryptoMaterialsManager
from .provider import MasterKeyProvider
from .transport import KeyTransport, default_transport

logger = logging.getLogger(__name__)


class CodecState(Enum):
    CONFIGURED = "configured"
    OPERATIONAL = "operational"

    def __str__(self) -> str:
        return self.value


class KmsCodec:
    """
    Envelope-encryption codec backed by a master key provider.

    Safe to share between threads once registered; the materials cache is
    the only shared mutable state and is internally synchronized.
    """

    def __init__(
        self,
        config: Union[CodecConfig, Mapping[str, Any]],
        transport: Optional[KeyTransport] = None,
    ) -> None:
        self._options = config
        self._transport = transport
        self._state = CodecState.CONFIGURED
        self._config: Optional[CodecConfig] = None
        self._inner: Optional[InnerCodec] = None
        self._materials: Optional[CryptoMaterialsManager] = None

    @property
    def state(self) -> CodecState:
        return self._state

    @property
    def config(self) -> Optional[CodecConfig]:
        return self._config

    @property
    def materials_manager(self) -> Optional[CryptoMaterialsManager]:
        return self._materials

    def register(self) -> None:
        """
        Validate configuration and build the key management stack.

        Safe to call more than once; every call rebuilds from the same options.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        config = CodecConfig.parse(self._options)
        credentials = resolve_credentials(
            config.access_key, config.secret_key, config.aws_profile
        )
        if self._transport is None:
            self._transport = default_transport()

        provider = MasterKeyProvider(
            credentials=credentials,
            region=config.region,
            key_ids=config.key_ids,
            transport=self._transport,
        )
        cache = CryptoMaterialsCache(
            max_entries=config.max_cache_entries,
            max_entry_age_ms=config.max_entry_age_ms,
            max_entry_uses=config.max_entry_uses,
        )

        self._config = config
        self._inner = create_inner_codec(config.codec, config.charset)
        self._materials = CryptoMaterialsManager(provider, cache)
        self._state = CodecState.OPERATIONAL

        logger.info(
            "Registered KMS codec: region=%s keys=%d credentials=%s inner=%s",
            config.region,
            len(config.key_ids),
            credentials.strategy,
            config.codec,
        )

    def _require_operational(self) -> None:
        if self._state is not CodecState.OPERATIONAL:
            raise ConfigurationError("KMS codec used before register()")

    def encode(self, event: Mapping[str, Any]) -> bytes:
        """
        Serialize and encrypt a single event.

        Raises:
            SerializationError: If the inner codec cannot serialize the event
            KeyAccessError: If the data key cannot be wrapped
        """
        self._require_operational()
        payload = self._inner.encode(event)
        material = self._materials.materials_for_encrypt(self._config.encryption_context)
        return EnvelopeBlob.seal(material, payload).to_bytes()

    def _decrypt(self, data: bytes) -> DecryptOutcome:
        try:
            blob = EnvelopeBlob.from_bytes(data)
        except CryptoFormatError as e:
            return DecryptOutcome.failure(e)

        try:
            data_key, blob_context = self._materials.materials_for_decrypt(
                blob.wrapped_keys, blob.encryption_context
            )
        except UnwrappableKeyError as e:
            return DecryptOutcome.failure(e)
        verify_context(self._config.encryption_context, blob_context)
        return blob.open(data_key)

    def decode(self, data: Union[bytes, bytearray, str]) -> Iterator[Event]:
        """
        Decrypt a payload and yield the events the inner codec parses from it.

        The work happens lazily as the returned iterator is consumed.

        Raises:
            CryptoFormatError: If the payload is not a valid envelope, fails
                authentication or carries a data key no master key accepts,
                and fallback is disabled
            ContextMismatchError: If the envelope context lacks a configured pair
            KeyAccessError: If a master key was denied or unreachable
            SerializationError: If the inner codec cannot parse the plaintext
        """
        self._require_operational()
        charset = self._config.charset
        raw = data.encode(charset) if isinstance(data, str) else bytes(data)

        outcome = self._decrypt(raw)
        if outcome.ok:
            plaintext = outcome.plaintext
        elif self._config.fallback_if_invalid_format:
            logger.debug("Passing undecryptable payload through: %s", outcome.error)
            plaintext = raw
        else:
            raise outcome.error

        yield from self._inner.decode(plaintext.decode(charset, errors="replace"))


def create_codec(
    config: Union[CodecConfig, Mapping[str, Any]],
    transport: Optional[KeyTransport] = None,
) -> KmsCodec:
    """Build and register a codec from configuration."""
    codec = KmsCodec(config, transport=transport)
    codec.register()
    return codec
