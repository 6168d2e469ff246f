"""Scheduled jobs: EDI product sync and audit retention."""

from __future__ import annotations

import logging
import os

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

EDI_SYNC_INTERVAL_MINUTES = int(os.environ.get("EDI_SYNC_INTERVAL_MINUTES", "15"))
AUDIT_PURGE_INTERVAL_HOURS = 6


def build_edi_sync():
    """Wire the EDI pipeline against the Postgres stores."""
    from catalog_sync.cache.audit import PostgresAuditTrail
    from catalog_sync.cache.cursor import PostgresSyncCursorStore
    from catalog_sync.cache.raw_products import PostgresRawProductStore
    from catalog_sync.cache.service import ProductCacheService
    from catalog_sync.cache.store import PostgresCacheStore
    from catalog_sync.edi.pipeline import EdiProductSync
    from catalog_sync.suppliers import PostgresSupplierDirectory

    return EdiProductSync(
        directory=PostgresSupplierDirectory(),
        raw_store=PostgresRawProductStore(),
        cache_service=ProductCacheService(PostgresCacheStore(), PostgresAuditTrail()),
        cursor_store=PostgresSyncCursorStore(),
    )


def edi_sync_job() -> None:
    """Sync every EDI supplier. Called every EDI_SYNC_INTERVAL_MINUTES by APScheduler."""
    try:
        reports = build_edi_sync().initiate_sync()
        synced = sum(1 for r in reports if r.synced)
        failed = sum(1 for r in reports if r.error)
        logger.info(
            "EDI sync complete: %d suppliers, %d synced, %d failed",
            len(reports), synced, failed,
        )
    except Exception:
        logger.warning("EDI sync job failed", exc_info=True)


def audit_retention_job() -> None:
    """Drop expired audit entries. Every 6 hours."""
    try:
        from catalog_sync.cache.audit import PostgresAuditTrail
        count = PostgresAuditTrail().purge_expired()
        logger.info("Audit retention complete: %d expired entries removed", count)
    except Exception:
        logger.warning("Audit retention job failed", exc_info=True)


def register_jobs(scheduler: BaseScheduler) -> None:
    """Add the catalog sync jobs to an APScheduler instance (max one run of each at a time)."""
    scheduler.add_job(
        edi_sync_job,
        IntervalTrigger(minutes=EDI_SYNC_INTERVAL_MINUTES),
        id="edi_product_sync",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.add_job(
        audit_retention_job,
        IntervalTrigger(hours=AUDIT_PURGE_INTERVAL_HOURS),
        id="audit_retention",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info("Catalog sync jobs registered (edi every %dm)", EDI_SYNC_INTERVAL_MINUTES)
