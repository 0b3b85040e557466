"""
Codec configuration.

Options can be given as a mapping or read from environment variables
(optionally through a ``.env`` file):

    KMS_CODEC_KEY_IDS = alias/app-logs,arn:aws:kms:...   (comma separated)
    KMS_CODEC_REGION = us-east-1
    KMS_CODEC_ACCESS_KEY / KMS_CODEC_SECRET_KEY / KMS_CODEC_AWS_PROFILE
    KMS_CODEC_ENCRYPTION_CONTEXT = {"app": "billing"}     (JSON object)
    KMS_CODEC_FALLBACK_IF_INVALID_FORMAT = true
    KMS_CODEC_CHARSET, KMS_CODEC_CODEC
    KMS_CODEC_MAX_ENTRY_AGE_MS, KMS_CODEC_MAX_ENTRY_USES, KMS_CODEC_MAX_CACHE_ENTRIES

Security Note:
    Never log secret_key. Only log region, key count and credential strategy.
"""

from __future__ import annotations

import codecs
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError, field_validator

from .errors import ConfigurationError
from .inner import INNER_CODECS

ENV_PREFIX = "KMS_CODEC_"


class CodecConfig(BaseModel):
    """Validated KMS codec configuration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    key_ids: List[StrictStr] = Field(min_length=1)
    region: StrictStr = Field(min_length=1)
    access_key: Optional[str] = None
    secret_key: Optional[str] = Field(default=None, repr=False)
    aws_profile: Optional[str] = None
    encryption_context: Dict[StrictStr, StrictStr] = Field(default_factory=dict)
    fallback_if_invalid_format: bool = False
    charset: str = "UTF-8"
    max_entry_age_ms: int = Field(default=300000, gt=0)
    max_entry_uses: int = Field(default=1000, ge=1)
    max_cache_entries: int = Field(default=1000, ge=1)
    codec: str = "plain"

    @field_validator("key_ids", mode="before")
    @classmethod
    def split_key_ids(cls, v: Any) -> Any:
        """Accept a single key id as well as a list."""
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("key_ids")
    @classmethod
    def validate_key_ids(cls, v: List[str]) -> List[str]:
        if any(not key_id.strip() for key_id in v):
            raise ValueError("key ids must not be blank")
        return v

    @field_validator("charset")
    @classmethod
    def validate_charset(cls, v: str) -> str:
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"Unknown charset: {v}")
        return v

    @field_validator("codec")
    @classmethod
    def validate_codec(cls, v: str) -> str:
        if v not in INNER_CODECS:
            raise ValueError(
                f"Unsupported codec: {v} (expected one of {', '.join(sorted(INNER_CODECS))})"
            )
        return v

    @classmethod
    def parse(cls, options: Union[CodecConfig, Mapping[str, Any]]) -> CodecConfig:
        """
        Build a config from a mapping of options.

        Raises:
            ConfigurationError: If any option is missing or invalid
        """
        if isinstance(options, CodecConfig):
            return options
        try:
            return cls.model_validate(dict(options))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid KMS codec configuration: {e}")

    @classmethod
    def from_env(
        cls,
        prefix: str = ENV_PREFIX,
        env_file: Optional[Union[str, Path]] = None,
    ) -> CodecConfig:
        """
        Create a config from environment variables.

        Values from ``env_file`` (or a ``.env`` found by python-dotenv) are
        loaded first without overriding variables already set.
        """
        load_dotenv(env_file)

        options: Dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is None:
                continue
            if name == "key_ids":
                options[name] = [part.strip() for part in raw.split(",") if part.strip()]
            elif name == "encryption_context":
                try:
                    options[name] = json.loads(raw)
                except ValueError as e:
                    raise ConfigurationError(
                        f"{prefix}ENCRYPTION_CONTEXT must be a JSON object: {e}"
                    )
            else:
                options[name] = raw
        return cls.parse(options)
