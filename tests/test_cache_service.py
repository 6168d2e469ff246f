"""Tests for ProductCacheService: conditional writes plus best-effort auditing."""

from __future__ import annotations

import logging
from datetime import datetime
from unittest.mock import MagicMock

from catalog_sync.cache.service import ProductCacheService
from catalog_sync.errors import AuditWriteFailed
from catalog_sync.models import (
    AuditAction,
    AuditActor,
    AuditLogDetails,
    Platform,
    UpsertOutcome,
)
from tests.factories import make_record, ts

CREATE_BY_SYNC = AuditLogDetails(action=AuditAction.CREATE, actor=AuditActor.INTERNAL_SYNC)
UPDATE_BY_PLATFORM = AuditLogDetails(action=AuditAction.UPDATE, actor=AuditActor.PLATFORM_INTEGRATION)


class TestUpsertProduct:
    def test_applied_write_is_audited(self, cache_service, audit_trail):
        outcome = cache_service.upsert_product(make_record(), CREATE_BY_SYNC)
        assert outcome is UpsertOutcome.APPLIED
        history = audit_trail.query_by_key("P1-S1")
        assert len(history) == 1
        entry = history[0]
        assert entry.timestamp == ts(2024, 1, 1)
        assert entry.action is AuditAction.CREATE
        assert entry.actor is AuditActor.INTERNAL_SYNC
        assert entry.platform is Platform.SHOPIFY
        assert entry.data == {"id": "P1", "title": "Classic Tee"}
        assert entry.expires_at is not None

    def test_stale_write_is_not_audited(self, cache_service, audit_trail):
        cache_service.upsert_product(make_record(updated_at=ts(2024, 1, 2)), CREATE_BY_SYNC)
        outcome = cache_service.upsert_product(make_record(updated_at=ts(2024, 1, 1)), UPDATE_BY_PLATFORM)
        assert outcome is UpsertOutcome.STALE
        assert [e.timestamp for e in audit_trail.query_by_key("P1-S1")] == [ts(2024, 1, 2)]

    def test_no_logging_details_means_no_audit(self, cache_service, audit_trail):
        assert cache_service.upsert_product(make_record()) is UpsertOutcome.APPLIED
        assert audit_trail.query_by_key("P1-S1") == []

    def test_history_is_ordered_by_timestamp(self, cache_service):
        cache_service.upsert_product(make_record(updated_at=ts(2024, 1, 1)), CREATE_BY_SYNC)
        cache_service.upsert_product(make_record(updated_at=ts(2024, 1, 3)), UPDATE_BY_PLATFORM)
        history = cache_service.audit_history("P1", "S1")
        assert [e.timestamp for e in history] == [ts(2024, 1, 1), ts(2024, 1, 3)]
        assert [e.action for e in history] == [AuditAction.CREATE, AuditAction.UPDATE]


class TestAuditFailureIsolation:
    def test_audit_failure_does_not_fail_the_write(self, cache_store, caplog):
        audit = MagicMock()
        audit.append.side_effect = AuditWriteFailed("disk full")
        service = ProductCacheService(cache_store, audit)
        with caplog.at_level(logging.WARNING, logger="catalog_sync.cache.service"):
            outcome = service.upsert_product(make_record(), CREATE_BY_SYNC)
        assert outcome is UpsertOutcome.APPLIED
        assert cache_store.get("P1", "S1") is not None
        assert "Failed to create audit log for P1" in caplog.text

    def test_unexpected_audit_error_is_also_swallowed(self, cache_store):
        audit = MagicMock()
        audit.append.side_effect = RuntimeError("boom")
        service = ProductCacheService(cache_store, audit)
        assert service.delete_product("P1", "S1", Platform.SHOPIFY, CREATE_BY_SYNC) is UpsertOutcome.APPLIED
        assert cache_store.get("P1", "S1").deleted is True


class TestDeleteProduct:
    def test_delete_is_audited_as_tombstone(self, cache_service, audit_trail):
        cache_service.upsert_product(make_record(updated_at=ts(2024, 1, 1)))
        details = AuditLogDetails(action=AuditAction.DELETE, actor=AuditActor.PLATFORM_INTEGRATION)
        outcome = cache_service.delete_product("P1", "S1", Platform.SHOPIFY, details, updated_at=ts(2024, 1, 2))
        assert outcome is UpsertOutcome.APPLIED
        [entry] = audit_trail.query_by_key("P1-S1")
        assert entry.action is AuditAction.DELETE
        assert entry.timestamp == ts(2024, 1, 2)
        assert entry.data is None

    def test_stale_delete_is_discarded(self, cache_service, audit_trail):
        cache_service.upsert_product(make_record(updated_at=ts(2024, 1, 5)))
        details = AuditLogDetails(action=AuditAction.DELETE, actor=AuditActor.PLATFORM_INTEGRATION)
        outcome = cache_service.delete_product("P1", "S1", Platform.SHOPIFY, details, updated_at=ts(2024, 1, 2))
        assert outcome is UpsertOutcome.STALE
        assert audit_trail.query_by_key("P1-S1") == []

    def test_naive_timestamp_is_treated_as_utc(self, cache_service, cache_store):
        cache_service.delete_product("P1", "S1", Platform.SHOPIFY, updated_at=datetime(2024, 1, 2))
        assert cache_store.get("P1", "S1").updated_at == ts(2024, 1, 2)
