from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CHUNK_SIZE = 1024 * 1024


class StoreSettings(BaseSettings):
    """Configuration for the binary store and its backend."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    backend: Literal["s3", "memory"] = Field(
        default="s3",
        validation_alias="BINSTORE_BACKEND",
    )
    endpoint: str | None = Field(
        default=None,
        validation_alias="BINSTORE_ENDPOINT",
    )
    access_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "BINSTORE_ACCESS_KEY",
            "AWS_ACCESS_KEY_ID",
        ),
    )
    secret_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "BINSTORE_SECRET_KEY",
            "AWS_SECRET_ACCESS_KEY",
        ),
    )
    session_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "BINSTORE_SESSION_TOKEN",
            "AWS_SESSION_TOKEN",
        ),
    )
    region: str = Field(
        default="us-east-1",
        validation_alias=AliasChoices(
            "BINSTORE_REGION",
            "AWS_REGION",
        ),
    )
    bucket: str = Field(
        default="binstore",
        validation_alias="BINSTORE_BUCKET",
    )
    bucket_location: str = Field(
        default="us-east-1",
        validation_alias="BINSTORE_BUCKET_LOCATION",
    )
    addressing_style: Literal["auto", "virtual", "path"] = Field(
        default="path",
        validation_alias="BINSTORE_ADDRESSING_STYLE",
    )
    keyspace: str = Field(
        default="binarystore",
        validation_alias="BINSTORE_KEYSPACE",
    )
    default_chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        ge=1,
        validation_alias="BINSTORE_DEFAULT_CHUNK_SIZE",
    )
    idle_timeout: float | None = Field(
        default=300.0,
        validation_alias="BINSTORE_IDLE_TIMEOUT",
    )

    @field_validator("keyspace", mode="before")
    @classmethod
    def _strip_keyspace(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip().strip("/")
            if not stripped:
                msg = "keyspace must not be empty"
                raise ValueError(msg)
            return stripped
        return value

    @field_validator("idle_timeout", mode="before")
    @classmethod
    def _parse_idle_timeout(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in {"", "none", "off"}:
            return None
        return value


def load_settings_from_env() -> StoreSettings:
    """Load store settings from environment variables.

    Returns:
        StoreSettings instance populated from environment variables.
    """
    return StoreSettings()
