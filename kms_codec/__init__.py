"""
KMS Envelope Codec

A codec that encrypts messages with AWS KMS envelope encryption before they
leave the process and decrypts them on the way in. Serialization of the
plaintext is delegated to a pluggable inner codec.

Quick Start
-----------
```python
from kms_codec import create_codec

codec = create_codec({
    "key_ids": ["alias/app-logs"],
    "region": "us-east-1",
    "encryption_context": {"app": "billing"},
    "codec": "json",
})

blob = codec.encode({"message": "Hello World."})
for event in codec.decode(blob):
    print(event["message"])
```

Key Features
------------
- **AES-256-GCM**: Authenticated encryption with per-message HKDF keys
- **Multiple Master Keys**: The data key is wrapped under every configured KMS key
- **Data Key Caching**: Bounded LRU cache with age and use-count limits
- **Encryption Context**: Configured context is required on decrypt
- **Migration Fallback**: Optional passthrough for plaintext input
"""

__version__ = "0.1.0"

# =============================================================================
# Codec Exports (Primary API)
# =============================================================================

from .codec import CodecState, KmsCodec, create_codec
from .config import CodecConfig

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    ConfigurationError,
    ContextMismatchError,
    CryptoFormatError,
    KeyAccessError,
    KmsCodecError,
    SerializationError,
    UnwrappableKeyError,
)

# =============================================================================
# Key Management Exports
# =============================================================================

from .cache import CacheEntry, CacheStats, CryptoMaterialsCache
from .credentials import CredentialHandle, CredentialStrategy, resolve_credentials
from .materials import CryptoMaterial, CryptoMaterialsManager
from .provider import MasterKeyProvider, WrappedKey
from .transport import InMemoryKeyTransport, KeyTransport, KmsKeyTransport

# =============================================================================
# Envelope and Inner Codec Exports
# =============================================================================

from .crypto import AesGcmCipher, DataKey, EncryptedData
from .envelope import DecryptOutcome, EnvelopeBlob
from .inner import InnerCodec, create_inner_codec

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Codec
    "CodecConfig",
    "CodecState",
    "KmsCodec",
    "create_codec",
    # Errors
    "KmsCodecError",
    "ConfigurationError",
    "KeyAccessError",
    "CryptoFormatError",
    "UnwrappableKeyError",
    "ContextMismatchError",
    "SerializationError",
    # Key management
    "CredentialHandle",
    "CredentialStrategy",
    "resolve_credentials",
    "KeyTransport",
    "KmsKeyTransport",
    "InMemoryKeyTransport",
    "MasterKeyProvider",
    "WrappedKey",
    "CacheEntry",
    "CacheStats",
    "CryptoMaterialsCache",
    "CryptoMaterial",
    "CryptoMaterialsManager",
    # Envelope
    "AesGcmCipher",
    "DataKey",
    "EncryptedData",
    "EnvelopeBlob",
    "DecryptOutcome",
    "InnerCodec",
    "create_inner_codec",
]
