"""Supplier directory: supplier records and their integration auth."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import psycopg
from psycopg.types.json import Jsonb

from catalog_sync import db
from catalog_sync.errors import StorageError
from catalog_sync.models import Platform, Supplier, SupplierAuth

logger = logging.getLogger(__name__)


@runtime_checkable
class SupplierDirectory(Protocol):
    def get_supplier_by_id(self, supplier_id: str) -> Supplier | None:
        ...

    def get_supplier_by_code(self, supplier_code: str) -> Supplier | None:
        ...

    def get_supplier_auth(self, supplier_id: str) -> SupplierAuth | None:
        ...

    def get_suppliers_by_platform(self, platform: Platform) -> list[Supplier]:
        ...


class InMemorySupplierDirectory:
    def __init__(
        self,
        suppliers: list[Supplier] | None = None,
        auths: list[SupplierAuth] | None = None,
    ):
        self._suppliers: dict[str, Supplier] = {s.id: s for s in suppliers or []}
        self._auths: dict[str, SupplierAuth] = {a.supplier_id: a for a in auths or []}

    def add(self, supplier: Supplier, auth: SupplierAuth | None = None) -> None:
        self._suppliers[supplier.id] = supplier
        if auth is not None:
            self._auths[supplier.id] = auth

    def get_supplier_by_id(self, supplier_id: str) -> Supplier | None:
        return self._suppliers.get(supplier_id)

    def get_supplier_by_code(self, supplier_code: str) -> Supplier | None:
        for supplier in self._suppliers.values():
            if supplier.supplier_code == supplier_code:
                return supplier
        return None

    def get_supplier_auth(self, supplier_id: str) -> SupplierAuth | None:
        return self._auths.get(supplier_id)

    def get_suppliers_by_platform(self, platform: Platform) -> list[Supplier]:
        return [s for s in self._suppliers.values() if s.platform == Platform(platform)]


_SUPPLIER_COLUMNS = "id, supplier_code, name, platform, is_integration_unhealthy"


class PostgresSupplierDirectory:
    """suppliers / supplier_auth tables."""

    def _fetch_one(self, sql: str, params: tuple) -> dict | None:
        try:
            with db._get_conn() as conn:
                return conn.execute(sql, params).fetchone()
        except psycopg.Error as exc:
            raise StorageError("Supplier directory lookup failed") from exc

    def get_supplier_by_id(self, supplier_id: str) -> Supplier | None:
        row = self._fetch_one(f"SELECT {_SUPPLIER_COLUMNS} FROM suppliers WHERE id = %s", (supplier_id,))
        return Supplier(**row) if row else None

    def get_supplier_by_code(self, supplier_code: str) -> Supplier | None:
        row = self._fetch_one(
            f"SELECT {_SUPPLIER_COLUMNS} FROM suppliers WHERE supplier_code = %s", (supplier_code,)
        )
        return Supplier(**row) if row else None

    def get_supplier_auth(self, supplier_id: str) -> SupplierAuth | None:
        row = self._fetch_one(
            "SELECT supplier_id, auth FROM supplier_auth WHERE supplier_id = %s", (supplier_id,)
        )
        return SupplierAuth(**row) if row else None

    def get_suppliers_by_platform(self, platform: Platform) -> list[Supplier]:
        try:
            with db._get_conn() as conn:
                rows = conn.execute(
                    f"SELECT {_SUPPLIER_COLUMNS} FROM suppliers WHERE platform = %s ORDER BY supplier_code",
                    (Platform(platform).value,),
                ).fetchall()
        except psycopg.Error as exc:
            raise StorageError(f"Supplier listing failed for platform {platform}") from exc
        return [Supplier(**r) for r in rows]

    def save(self, supplier: Supplier, auth: SupplierAuth | None = None) -> None:
        try:
            with db._get_conn() as conn:
                conn.execute(
                    """INSERT INTO suppliers (id, supplier_code, name, platform, is_integration_unhealthy)
                       VALUES (%s, %s, %s, %s, %s)
                       ON CONFLICT (id) DO UPDATE SET
                           supplier_code = EXCLUDED.supplier_code,
                           name = EXCLUDED.name,
                           platform = EXCLUDED.platform,
                           is_integration_unhealthy = EXCLUDED.is_integration_unhealthy""",
                    (
                        supplier.id,
                        supplier.supplier_code,
                        supplier.name,
                        supplier.platform.value,
                        supplier.is_integration_unhealthy,
                    ),
                )
                if auth is not None:
                    conn.execute(
                        """INSERT INTO supplier_auth (supplier_id, auth) VALUES (%s, %s)
                           ON CONFLICT (supplier_id) DO UPDATE SET auth = EXCLUDED.auth""",
                        (supplier.id, Jsonb(auth.auth)),
                    )
        except psycopg.Error as exc:
            raise StorageError(f"Supplier save failed for {supplier.supplier_code}") from exc
