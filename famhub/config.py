"""
Configuration and settings for the FamHub backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TABLE_NAME = "YOUR_TABLE_NAME"


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Relational store (Supabase / Postgres)
    supabase_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("NEXT_PUBLIC_SUPABASE_URL", "SUPABASE_URL"),
    )
    supabase_anon_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "NEXT_PUBLIC_SUPABASE_ANON_KEY", "SUPABASE_ANON_KEY"
        ),
    )
    supabase_service_role_key: Optional[str] = Field(
        default=None, validation_alias="SUPABASE_SERVICE_ROLE_KEY"
    )
    database_url: Optional[str] = Field(
        default=None, validation_alias="DATABASE_URL"
    )

    # Tabular store (Airtable)
    airtable_api_key: Optional[str] = Field(
        default=None, validation_alias="AIRTABLE_API_KEY"
    )
    airtable_base_id: Optional[str] = Field(
        default=None, validation_alias="AIRTABLE_BASE_ID"
    )
    airtable_endpoint_url: str = Field(
        default="https://api.airtable.com", validation_alias="AIRTABLE_ENDPOINT_URL"
    )
    airtable_table_name: Optional[str] = Field(
        default=None, validation_alias="AIRTABLE_TABLE_NAME"
    )
    airtable_timeout: float = Field(default=30, validation_alias="AIRTABLE_TIMEOUT")

    # Uploads: local public directory, or an S3-compatible bucket when set
    public_root: str = Field(default="public", validation_alias="PUBLIC_ROOT")
    upload_bucket: Optional[str] = Field(default=None, validation_alias="UPLOAD_BUCKET")
    upload_region: Optional[str] = Field(default=None, validation_alias="UPLOAD_REGION")
    upload_endpoint: Optional[str] = Field(
        default=None, validation_alias="UPLOAD_ENDPOINT"
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, validation_alias="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, validation_alias="AWS_SECRET_ACCESS_KEY"
    )

    # Likes: opt into a single-statement increment instead of read-modify-write
    atomic_like_increment: bool = Field(
        default=False, validation_alias="ATOMIC_LIKE_INCREMENT"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="FAMHUB_USE_IN_MEMORY_BACKENDS"
    )

    @property
    def airtable_configured(self) -> bool:
        """True only when both the API key and the base id are present."""
        return bool(self.airtable_api_key and self.airtable_base_id)

    @property
    def records_table_name(self) -> str:
        return self.airtable_table_name or DEFAULT_TABLE_NAME


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
