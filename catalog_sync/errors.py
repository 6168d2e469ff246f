"""Exception taxonomy for the catalog sync engine.

Propagation contract:
- StorageError            -> fatal, propagated to the caller
- AuditWriteFailed        -> caught and logged by the cache service, never propagated
- FileValidationError     -> per file; file routed to failed/, processing continues
- SupplierUnavailable     -> supplier skipped, other suppliers continue
- AuthMissing             -> supplier skipped, other suppliers continue
- UnsupportedWebhookType  -> rejected immediately, never retried
- UnmappedWebhookSource   -> programming defect, raised immediately
- DispatchExhausted       -> raised after the dispatch budget is spent

A stale cache write is not an error: it is reported as UpsertOutcome.STALE.
"""

from __future__ import annotations

from typing import Any


class CatalogSyncError(Exception):
    """Base class for all catalog sync errors."""


class StorageError(CatalogSyncError):
    """A storage backend failed for a reason other than a stale write."""


class AuditWriteFailed(CatalogSyncError):
    """An audit entry could not be appended."""


class FileValidationError(CatalogSyncError):
    """A staged EDI file does not have the required row structure."""

    def __init__(self, file_name: str, missing_keys: list[str] | None = None, reason: str = ""):
        self.file_name = file_name
        self.missing_keys = missing_keys or []
        detail = reason or f"missing required keys: {', '.join(self.missing_keys)}"
        super().__init__(f"{file_name}: {detail}")


class SupplierUnavailable(CatalogSyncError):
    """Supplier is unknown or its integration is flagged unhealthy."""


class AuthMissing(CatalogSyncError):
    """Supplier has no auth record."""


class ProductNotFound(CatalogSyncError):
    """Product (or variant) is missing or tombstoned."""


class UnsupportedWebhookType(CatalogSyncError):
    """Inbound webhook matched none of the known platform shapes."""

    def __init__(self, headers: dict[str, str], body: Any):
        self.headers = headers
        self.body = body
        super().__init__("Unsupported webhook type")


class UnmappedWebhookSource(CatalogSyncError):
    """A webhook was classified but no mapper is registered for its source."""


class DispatchExhausted(CatalogSyncError):
    """Outbound event publication failed on every attempt."""

    def __init__(self, attempts: int, payload: list[dict[str, Any]], last_error: BaseException | None = None):
        self.attempts = attempts
        self.payload = payload
        self.last_error = last_error
        super().__init__(f"Failed to dispatch event after {attempts} attempts")
