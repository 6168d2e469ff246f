"""EDI product sync: staged CSV drops -> full-replace of a supplier's catalog.

Per supplier, strictly sequential, one file at a time:

    Discovered -> Staged (pending/) -> Succeeded | Failed

- A file whose name timestamp is not newer than the supplier's sync cursor
  is treated as already applied: moved to success/ with no mutation
- Validation failure moves the file to failed/ and the run continues with
  the supplier's next file
- Any other exception moves the file to failed/ and stops the supplier;
  initiate_sync() logs it and carries on with the next supplier
- A cursor read failure leaves the file in pending/ and stops the supplier
- The cursor is advanced only after every row of the file is written
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from catalog_sync.cache.cursor import SyncCursorStore
from catalog_sync.cache.raw_products import RawProductStore
from catalog_sync.cache.service import ProductCacheService
from catalog_sync.edi.timestamps import extract_timestamp
from catalog_sync.edi.transfer import FileTransferClient, default_transfer_factory
from catalog_sync.errors import FileValidationError
from catalog_sync.models import (
    AuditAction,
    AuditActor,
    AuditLogDetails,
    CacheRecord,
    Platform,
    ProductHashes,
    RawSupplierRecord,
    Supplier,
    SupplierAuth,
    generate_unique_id,
    utcnow,
)
from catalog_sync.suppliers import SupplierDirectory

logger = logging.getLogger(__name__)

REQUIRED_PRODUCT_KEYS = ("title", "handle", "option1_name", "variants")

_IMPORT_AUDIT = AuditLogDetails(action=AuditAction.CREATE, actor=AuditActor.INTERNAL_SYNC)

TransferFactory = Callable[[Supplier, SupplierAuth], FileTransferClient]


@dataclass
class SupplierSyncReport:
    """Outcome of one supplier's pass through initiate_sync()."""

    supplier_code: str
    synced: bool = False
    sync_timestamp: datetime | None = None
    files_succeeded: list[str] = field(default_factory=list)
    files_skipped: list[str] = field(default_factory=list)
    files_failed: list[str] = field(default_factory=list)
    skipped_reason: str = ""
    error: str = ""


def file_timestamp(name: str) -> datetime:
    """Timestamp from the file name, or now when the name carries none."""
    return extract_timestamp(name) or utcnow()


def validate_products(file_name: str, products: list[dict[str, Any]]) -> None:
    """Every product must expose the required structural keys."""
    if not products:
        raise FileValidationError(file_name, reason="no product rows")
    for product in products:
        missing = [k for k in REQUIRED_PRODUCT_KEYS if k not in product]
        if missing:
            raise FileValidationError(file_name, missing_keys=missing)


class EdiProductSync:
    def __init__(
        self,
        directory: SupplierDirectory,
        raw_store: RawProductStore,
        cache_service: ProductCacheService,
        cursor_store: SyncCursorStore,
        transfer_factory: TransferFactory = default_transfer_factory,
    ):
        self.directory = directory
        self.raw_store = raw_store
        self.cache_service = cache_service
        self.cursor_store = cursor_store
        self.transfer_factory = transfer_factory

    def initiate_sync(self) -> list[SupplierSyncReport]:
        """Sync every EDI supplier in turn. One supplier's failure never blocks the others."""
        reports: list[SupplierSyncReport] = []
        for supplier in self.directory.get_suppliers_by_platform(Platform.EDI):
            report = SupplierSyncReport(supplier_code=supplier.supplier_code)
            reports.append(report)
            try:
                auth = self.directory.get_supplier_auth(supplier.id)
                if auth is None:
                    report.skipped_reason = "auth_missing"
                    logger.info("EDI_SYNC supplier=%s skipped: no auth record", supplier.supplier_code)
                    continue
                self.sync_products_by_supplier(supplier, auth, report)
            except Exception as exc:
                report.error = f"{type(exc).__name__}: {exc}"
                logger.error(
                    "Error while attempting to sync products for edi supplier %s",
                    supplier.supplier_code,
                    exc_info=True,
                )
        return reports

    def sync_products_by_supplier(
        self,
        supplier: Supplier,
        auth: SupplierAuth,
        report: SupplierSyncReport | None = None,
    ) -> SupplierSyncReport:
        report = report or SupplierSyncReport(supplier_code=supplier.supplier_code)
        transfer = self.transfer_factory(supplier, auth)

        transfer.stage_incoming()
        pending = transfer.list_pending_files()
        if not pending:
            logger.debug("EDI_SYNC supplier=%s: no pending files", supplier.supplier_code)
            return report

        ordered = sorted(((file_timestamp(n), n) for n in pending), key=lambda item: (item[0], item[1]))
        for file_ts, name in ordered:
            # A cursor read failure propagates: the file stays pending and the supplier stops.
            cursor = self.cursor_store.get(supplier.id)
            if cursor is not None and file_ts <= cursor.latest_sync_timestamp:
                logger.info(
                    "EDI_SYNC supplier=%s file=%s older than cursor %s, already applied",
                    supplier.supplier_code,
                    name,
                    cursor.latest_sync_timestamp.isoformat(),
                )
                transfer.move_to_success(name)
                report.files_skipped.append(name)
                continue

            try:
                products = transfer.fetch_and_parse(name)
                try:
                    validate_products(name, products)
                except FileValidationError as exc:
                    logger.warning(
                        "Csv %s is missing some required product keys, not able to import data: %s",
                        name,
                        exc,
                    )
                    transfer.move_to_failed(name)
                    report.files_failed.append(name)
                    continue

                self._replace_supplier_products(supplier, products, file_ts)
                self.cursor_store.advance(supplier.id, file_ts)
                transfer.move_to_success(name)
            except Exception:
                transfer.move_to_failed(name)
                report.files_failed.append(name)
                raise

            report.files_succeeded.append(name)
            report.synced = True
            report.sync_timestamp = file_ts
            logger.info(
                "EDI_SYNC supplier=%s file=%s products=%d cursor=%s",
                supplier.supplier_code,
                name,
                len(products),
                file_ts.isoformat(),
            )
        return report

    def _replace_supplier_products(
        self, supplier: Supplier, products: list[dict[str, Any]], file_ts: datetime
    ) -> None:
        """Full replace: drop the supplier's raw catalog, then recreate it row by row."""
        removed = self.raw_store.delete_all(supplier.supplier_code)
        logger.debug("Removed %d raw products for %s", removed, supplier.supplier_code)

        for product in products:
            hash_key = generate_unique_id(product["handle"], supplier.supplier_code)
            self.raw_store.put(
                RawSupplierRecord(
                    hash_key=hash_key,
                    supplier_code=supplier.supplier_code,
                    platform=Platform.EDI,
                    query_key=product["handle"],
                    data=dict(product),
                )
            )
            # The feed carries no content hash, so fingerprints start empty.
            self.cache_service.upsert_product(
                CacheRecord(
                    product_id=hash_key,
                    supplier_id=supplier.id,
                    platform=Platform.EDI,
                    updated_at=file_ts,
                    query_key=product["handle"],
                    product_hashes=ProductHashes(),
                    variant_hashes={},
                    variant_list_hash="",
                    data=dict(product),
                ),
                _IMPORT_AUDIT,
            )
