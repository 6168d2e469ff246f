"""Product cache service: conditional cache writes plus best-effort auditing.

An audit entry is appended only when the mutation was applied and the
caller asked for logging. Audit failures are logged and swallowed; they
never fail or roll back the cache write that triggered them.
"""

from __future__ import annotations

import logging
from datetime import datetime

from catalog_sync.cache.audit import AuditTrail
from catalog_sync.cache.store import CacheStore
from catalog_sync.models import (
    AuditLogDetails,
    AuditRecord,
    CacheRecord,
    Platform,
    UpsertOutcome,
    ensure_aware,
    to_audit_record,
    utcnow,
)

logger = logging.getLogger(__name__)


class ProductCacheService:
    """Entry point for every cache mutation (webhook consumers and EDI ingestion)."""

    def __init__(self, store: CacheStore, audit: AuditTrail):
        self.store = store
        self.audit = audit

    def upsert_product(
        self, record: CacheRecord, logging_details: AuditLogDetails | None = None
    ) -> UpsertOutcome:
        outcome = self.store.upsert(record)
        if outcome is UpsertOutcome.APPLIED and logging_details:
            self.add_log(record, logging_details)
        return outcome

    def delete_product(
        self,
        product_id: str,
        supplier_id: str,
        platform: Platform,
        logging_details: AuditLogDetails | None = None,
        updated_at: datetime | None = None,
    ) -> UpsertOutcome:
        """Tombstone a product. An older delete loses to a newer write."""
        ts = ensure_aware(updated_at) if updated_at else utcnow()
        outcome = self.store.soft_delete(product_id, supplier_id, platform, ts)
        if outcome is UpsertOutcome.APPLIED and logging_details:
            tombstone = CacheRecord(
                product_id=product_id,
                supplier_id=supplier_id,
                platform=platform,
                updated_at=ts,
                deleted=True,
            )
            self.add_log(tombstone, logging_details)
        return outcome

    def add_log(self, record: CacheRecord, logging_details: AuditLogDetails) -> None:
        try:
            self.audit.append(to_audit_record(record, logging_details))
        except Exception:
            logger.warning(
                "Failed to create audit log for %s (supplier=%s)",
                record.product_id,
                record.supplier_id,
                exc_info=True,
            )

    def audit_history(self, product_id: str, supplier_id: str) -> list[AuditRecord]:
        return self.audit.query_by_key(f"{product_id}-{supplier_id}")
