"""
Exception classes for the KMS envelope codec.

Every error raised by the codec derives from KmsCodecError so callers can
catch the whole family at once.
"""

from __future__ import annotations


class KmsCodecError(Exception):
    """Base exception for all codec operations."""

    pass


class ConfigurationError(KmsCodecError):
    """Invalid configuration, detected at setup time."""

    pass


class KeyAccessError(KmsCodecError):
    """Key-management transport denied or could not perform wrap/unwrap."""

    pass


class CryptoFormatError(KmsCodecError):
    """Payload is not a valid envelope or failed authentication."""

    pass


class UnwrappableKeyError(CryptoFormatError):
    """
    Wrapped data key was rejected by its master key.

    Raised when the wrapped bytes fail authentication, were bound to a
    different encryption context, or name a master key the transport does
    not hold. Access denial and outages are KeyAccessError instead.
    """

    pass


class ContextMismatchError(KmsCodecError):
    """Envelope encryption context does not contain the configured pairs."""

    pass


class SerializationError(KmsCodecError):
    """Inner codec failed to encode or decode a payload."""

    pass
