"""Shared fixtures for the catalog sync test suite."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from catalog_sync.cache.audit import InMemoryAuditTrail
from catalog_sync.cache.cursor import InMemorySyncCursorStore
from catalog_sync.cache.raw_products import InMemoryRawProductStore
from catalog_sync.cache.service import ProductCacheService
from catalog_sync.cache.store import InMemoryCacheStore
from catalog_sync.models import Platform, Supplier, SupplierAuth
from catalog_sync.suppliers import InMemorySupplierDirectory
from tests.factories import SHOPIFY_CSV_HEADER, SHOPIFY_CSV_ROWS


@pytest.fixture()
def cache_store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture()
def audit_trail() -> InMemoryAuditTrail:
    return InMemoryAuditTrail()


@pytest.fixture()
def cache_service(cache_store, audit_trail) -> ProductCacheService:
    return ProductCacheService(cache_store, audit_trail)


@pytest.fixture()
def cursor_store() -> InMemorySyncCursorStore:
    return InMemorySyncCursorStore()


@pytest.fixture()
def raw_store() -> InMemoryRawProductStore:
    return InMemoryRawProductStore()


@pytest.fixture()
def edi_supplier() -> Supplier:
    return Supplier(
        id="f4a3f969-7ce8-4153-a52a-d88cf9a318a8",
        supplier_code="edi-supplier-name",
        name="EDI Supplier Name",
        platform=Platform.EDI,
    )


@pytest.fixture()
def directory(edi_supplier) -> InMemorySupplierDirectory:
    return InMemorySupplierDirectory(
        suppliers=[edi_supplier],
        auths=[
            SupplierAuth(
                supplier_id=edi_supplier.id,
                auth={"host": "sftp.example.com", "port": 22, "username": "edi", "password": "secret"},
            )
        ],
    )


@pytest.fixture()
def write_csv():
    """Write a Shopify-standard CSV into a directory and return its path."""

    def _write(folder: Path, name: str, body: str = SHOPIFY_CSV_ROWS, header: str = SHOPIFY_CSV_HEADER) -> Path:
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / name
        path.write_text(header + body, encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def mock_conn():
    """Patch the psycopg connection factory with a context-manager MagicMock."""
    conn = MagicMock()
    conn.__enter__.return_value = conn
    conn.__exit__.return_value = False
    with patch("catalog_sync.db._get_conn", return_value=conn):
        yield conn
