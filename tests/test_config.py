"""
Tests for CodecConfig validation and environment loading.
"""

from __future__ import annotations

import pytest

from kms_codec import CodecConfig, ConfigurationError


def test_defaults():
    config = CodecConfig.parse({"key_ids": ["alias/testkey"], "region": "us-east-1"})
    assert config.encryption_context == {}
    assert config.fallback_if_invalid_format is False
    assert config.charset == "UTF-8"
    assert config.max_entry_age_ms == 300000
    assert config.max_entry_uses == 1000
    assert config.max_cache_entries == 1000
    assert config.codec == "plain"
    assert config.access_key is None
    assert config.aws_profile is None


def test_single_key_id():
    config = CodecConfig.parse({"key_ids": "alias/testkey", "region": "us-east-1"})
    assert config.key_ids == ["alias/testkey"]


def test_parse_passes_config_through():
    config = CodecConfig(key_ids=["alias/testkey"], region="us-east-1")
    assert CodecConfig.parse(config) is config


@pytest.mark.parametrize(
    "options",
    [
        {"region": "us-east-1"},
        {"key_ids": [], "region": "us-east-1"},
        {"key_ids": ["  "], "region": "us-east-1"},
        {"key_ids": ["alias/testkey"]},
        {"key_ids": ["alias/testkey"], "region": "us-east-1", "encryption_context": {"a": 1}},
        {"key_ids": ["alias/testkey"], "region": "us-east-1", "encryption_context": {"a": None}},
        {"key_ids": ["alias/testkey"], "region": "us-east-1", "codec": "msgpack"},
        {"key_ids": ["alias/testkey"], "region": "us-east-1", "charset": "not-a-charset"},
        {"key_ids": ["alias/testkey"], "region": "us-east-1", "max_entry_uses": 0},
        {"key_ids": ["alias/testkey"], "region": "us-east-1", "max_cache_entries": 0},
        {"key_ids": ["alias/testkey"], "region": "us-east-1", "unknown_option": True},
    ],
)
def test_invalid(options):
    with pytest.raises(ConfigurationError):
        CodecConfig.parse(options)


def test_secret_not_in_repr():
    config = CodecConfig.parse(
        {
            "key_ids": ["alias/testkey"],
            "region": "us-east-1",
            "access_key": "AKIDEXAMPLE",
            "secret_key": "very-secret",
        }
    )
    assert "very-secret" not in repr(config)


def test_from_env(clean_env):
    clean_env.setenv("KMS_CODEC_KEY_IDS", "alias/one, alias/two")
    clean_env.setenv("KMS_CODEC_REGION", "eu-west-1")
    clean_env.setenv("KMS_CODEC_ENCRYPTION_CONTEXT", '{"app": "billing"}')
    clean_env.setenv("KMS_CODEC_FALLBACK_IF_INVALID_FORMAT", "true")
    clean_env.setenv("KMS_CODEC_MAX_ENTRY_USES", "10")
    clean_env.setenv("KMS_CODEC_CODEC", "json")

    config = CodecConfig.from_env(env_file="/nonexistent/.env")

    assert config.key_ids == ["alias/one", "alias/two"]
    assert config.region == "eu-west-1"
    assert config.encryption_context == {"app": "billing"}
    assert config.fallback_if_invalid_format is True
    assert config.max_entry_uses == 10
    assert config.codec == "json"


def test_from_env_file(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "KMS_CODEC_KEY_IDS=alias/from-file\n"
        "KMS_CODEC_REGION=us-west-2\n"
    )
    config = CodecConfig.from_env(env_file=env_file)
    assert config.key_ids == ["alias/from-file"]
    assert config.region == "us-west-2"


def test_from_env_invalid_context(clean_env):
    clean_env.setenv("KMS_CODEC_KEY_IDS", "alias/one")
    clean_env.setenv("KMS_CODEC_REGION", "eu-west-1")
    clean_env.setenv("KMS_CODEC_ENCRYPTION_CONTEXT", "not json")
    with pytest.raises(ConfigurationError):
        CodecConfig.from_env(env_file="/nonexistent/.env")
