"""
Encryption context helpers.

The context is a flat mapping of strings. It is serialized canonically
(sorted keys, compact JSON, UTF-8) so the same mapping always produces the
same bytes, whether it is written into a blob header, passed to a key
transport as authenticated data, or hashed into a cache key.
"""

from __future__ import annotations

import json
from typing import Dict, Mapping

from .errors import ContextMismatchError, CryptoFormatError

EncryptionContext = Dict[str, str]


def serialize_context(context: Mapping[str, str]) -> bytes:
    """Canonical byte form of an encryption context."""
    return json.dumps(
        dict(context), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def parse_context(data: bytes) -> EncryptionContext:
    """
    Parse a serialized encryption context from a blob header.

    Raises:
        CryptoFormatError: If the bytes are not a flat string mapping
    """
    try:
        context = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise CryptoFormatError(f"Invalid encryption context: {e}")

    if not isinstance(context, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in context.items()
    ):
        raise CryptoFormatError("Encryption context must be a mapping of strings")
    return context


def verify_context(expected: Mapping[str, str], actual: Mapping[str, str]) -> None:
    """
    Check that every expected pair is present in ``actual`` with an equal value.

    Extra pairs in ``actual`` are allowed. A missing key fails the same way a
    different value does.

    Raises:
        ContextMismatchError: On the first missing or mismatched pair
    """
    for key, value in expected.items():
        if key not in actual or actual[key] != value:
            raise ContextMismatchError(
                f"Encryption context does not match expected. Received context keys: "
                f"{sorted(actual)}"
            )
