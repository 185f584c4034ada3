"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from famhub.config import get_settings
from famhub.relational import (
    InMemoryRelationalClient,
    RelationalClient,
    SqlRelationalClient,
)
from famhub.storage import LocalUploadStorage, S3UploadStorage, UploadStorage
from famhub.tabular import APP_TABLES, AirtableClient, InMemoryTabularClient, TabularClient

logger = logging.getLogger(__name__)

_relational_client: RelationalClient | None = None
_tabular_client: TabularClient | None = None
_upload_storage: UploadStorage | None = None
_warned_unconfigured = False


def get_relational_client() -> RelationalClient:
    """
    Return a singleton relational client shared by all requests.
    """
    global _relational_client
    if _relational_client:
        return _relational_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _relational_client = InMemoryRelationalClient()
    else:
        _relational_client = SqlRelationalClient(settings.database_url)
    return _relational_client


def get_tabular_client() -> TabularClient | None:
    """
    Return the tabular client, or None while the store is unconfigured.

    Handlers must treat None as "not configured" and answer 503 without
    attempting a remote call.
    """
    global _tabular_client, _warned_unconfigured
    if _tabular_client:
        return _tabular_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        tables = (*APP_TABLES, settings.records_table_name)
        _tabular_client = InMemoryTabularClient({name: [] for name in tables})
    elif settings.airtable_configured:
        _tabular_client = AirtableClient(
            api_key=settings.airtable_api_key,
            base_id=settings.airtable_base_id,
            endpoint_url=settings.airtable_endpoint_url,
            timeout=settings.airtable_timeout,
        )
    elif not _warned_unconfigured:
        logger.warning("Airtable configuration is missing; tabular routes will return 503.")
        _warned_unconfigured = True
    return _tabular_client


def get_upload_storage() -> UploadStorage:
    global _upload_storage
    if _upload_storage:
        return _upload_storage

    settings = get_settings()
    if settings.upload_bucket:
        _upload_storage = S3UploadStorage(
            bucket=settings.upload_bucket,
            region=settings.upload_region or "",
            endpoint=settings.upload_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    else:
        _upload_storage = LocalUploadStorage(settings.public_root)
    return _upload_storage


def reset_clients() -> None:
    """Drop cached clients so the next request rebuilds them from settings."""
    global _relational_client, _tabular_client, _upload_storage
    _relational_client = None
    _tabular_client = None
    _upload_storage = None
