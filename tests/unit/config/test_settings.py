# tests/unit/config/test_settings.py — v2
"""Tests for config/settings.py — typed Settings and validation rules."""

from __future__ import annotations

from pathlib import Path

import pytest

from kbcreationtools.config.settings import (
    MAX_KEYS_PER_REQUEST,
    ConfigurationError,
    Settings,
    load_settings,
)

_ENV_VARS = (
    "DO_SPACES_BUCKET", "AWS_BUCKET_NAME", "BUCKET_NAME", "BUCKET_ENDPOINT",
    "AWS_BUCKET_REGION", "SPACES_REGION", "AWS_ACCESS_KEY_ID", "SPACES_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY", "SPACES_SECRET_ACCESS_KEY", "OBJECT_STORE", "USER", "USERNAME",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettingsDefaults:
    def test_default_store(self):
        s = Settings(_env_file=None)
        assert s.object_store == "s3"
        assert s.bucket_name == "gradientai-kb"
        assert s.bucket_region == "us-east-1"

    def test_default_request_sizes(self):
        s = Settings(_env_file=None)
        assert s.delete_batch_size == MAX_KEYS_PER_REQUEST
        assert s.list_page_size == MAX_KEYS_PER_REQUEST

    def test_default_logging(self):
        s = Settings(_env_file=None)
        assert s.log_level == "INFO"
        assert s.log_format == "text"
        assert s.log_file is None

    def test_ledger_path_expanded(self):
        s = Settings(_env_file=None, ledger_dir=Path("~/kb-test"))
        assert s.ledger_path == Path("~/kb-test").expanduser() / "log"
        assert "~" not in str(s.ledger_path)

    def test_username_fallback(self):
        s = Settings(_env_file=None)
        assert s.effective_username == "unknown"


class TestSettingsEnvAliases:
    def test_spaces_bucket_alias(self, monkeypatch):
        monkeypatch.setenv("DO_SPACES_BUCKET", "spaces-kb")
        assert Settings(_env_file=None).bucket_name == "spaces-kb"

    def test_aws_bucket_alias(self, monkeypatch):
        monkeypatch.setenv("AWS_BUCKET_NAME", "aws-kb")
        assert Settings(_env_file=None).bucket_name == "aws-kb"

    def test_spaces_credentials(self, monkeypatch):
        monkeypatch.setenv("SPACES_ACCESS_KEY_ID", "AKID")
        monkeypatch.setenv("SPACES_SECRET_ACCESS_KEY", "secret")
        s = Settings(_env_file=None)
        assert s.access_key_id == "AKID"
        assert s.secret_access_key == "secret"

    def test_user_env(self, monkeypatch):
        monkeypatch.setenv("USER", "alice")
        assert Settings(_env_file=None).effective_username == "alice"


class TestSettingsValidation:
    def test_half_configured_credentials(self):
        with pytest.raises(ConfigurationError, match="must be set together"):
            Settings(_env_file=None, access_key_id="AKID")

    def test_half_configured_ignored_for_local_store(self):
        s = Settings(_env_file=None, object_store="local", access_key_id="AKID")
        assert s.object_store == "local"

    def test_empty_bucket_with_s3(self):
        with pytest.raises(ConfigurationError, match="bucket name"):
            Settings(_env_file=None, bucket_name="")

    def test_delete_batch_size_above_limit(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, delete_batch_size=1001)

    def test_list_page_size_zero(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, list_page_size=0)

    def test_invalid_store(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, object_store="gcs")


class TestLoadSettings:
    def test_overrides(self):
        s = load_settings(_env_file=None, object_store="local", delete_batch_size=10)
        assert s.object_store == "local"
        assert s.delete_batch_size == 10
