# src/config/settings.py — v2
"""Typed configuration loaded from the environment and .env via pydantic-settings.

Bucket credentials accept both the AWS names and the DigitalOcean Spaces names
so the same .env works against either provider.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# S3 DeleteObjects and ListObjectsV2 both cap a single request at 1000 keys.
MAX_KEYS_PER_REQUEST = 1000


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file and environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # === Object storage ===
    object_store: Literal["s3", "local"] = "s3"
    bucket_name: str = Field(
        default="gradientai-kb",
        validation_alias=AliasChoices(
            "DO_SPACES_BUCKET", "AWS_BUCKET_NAME", "BUCKET_NAME", "bucket_name"
        ),
    )
    bucket_endpoint: str = Field(
        default="",
        validation_alias=AliasChoices("BUCKET_ENDPOINT", "bucket_endpoint"),
    )
    bucket_region: str = Field(
        default="us-east-1",
        validation_alias=AliasChoices(
            "AWS_BUCKET_REGION", "SPACES_REGION", "bucket_region"
        ),
    )
    access_key_id: str = Field(
        default="",
        validation_alias=AliasChoices(
            "AWS_ACCESS_KEY_ID", "SPACES_ACCESS_KEY_ID", "access_key_id"
        ),
    )
    secret_access_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "AWS_SECRET_ACCESS_KEY", "SPACES_SECRET_ACCESS_KEY", "secret_access_key"
        ),
    )
    local_store_root: Path = Path("~/.kbcreationtools/store")

    # === Ledger ===
    ledger_dir: Path = Path("~/.kbcreationtools")
    username: str = Field(
        default="",
        validation_alias=AliasChoices("USER", "USERNAME", "username"),
    )

    # === Deletion ===
    delete_batch_size: int = MAX_KEYS_PER_REQUEST
    list_page_size: int = MAX_KEYS_PER_REQUEST

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("delete_batch_size", "list_page_size")
    @classmethod
    def validate_request_size(cls, v: int) -> int:
        """Request sizes must stay within the per-call S3 ceiling."""
        if not 1 <= v <= MAX_KEYS_PER_REQUEST:
            raise ValueError(f"must be between 1 and {MAX_KEYS_PER_REQUEST}")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.object_store == "s3":
            if bool(self.access_key_id) != bool(self.secret_access_key):
                errors.append(
                    "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together"
                )
            if not self.bucket_name:
                errors.append("A bucket name is required when OBJECT_STORE=s3")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def ledger_path(self) -> Path:
        """Expanded path of the local ledger log file."""
        return self.ledger_dir.expanduser() / "log"

    @property
    def effective_username(self) -> str:
        return self.username or "unknown"


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (CLI flags or tests).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
