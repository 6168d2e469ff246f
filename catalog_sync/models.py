"""Catalog data models.

CacheRecord is the canonical per-supplier product snapshot. Its updated_at
is the only ordering signal for a (product_id, supplier_id) key: a write
carrying an updated_at that is not strictly newer than the stored one is
discarded as stale.
"""

from __future__ import annotations

import hashlib
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Platform(str, Enum):
    """Supplier integration platforms."""
    SHOPIFY = "shopify"
    WOOCOMMERCE = "woocommerce"
    BIGCOMMERCE = "bigcommerce"
    SQUARESPACE = "squarespace"
    EDI = "edi"


class UpsertOutcome(str, Enum):
    """Result of a conditional cache write."""
    APPLIED = "applied"
    STALE = "stale"  # discarded, not an error


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditActor(str, Enum):
    PLATFORM_INTEGRATION = "platform-integration"  # storefront webhooks
    INTERNAL_SYNC = "internal-sync"  # EDI ingestion and other internal jobs


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix accepted) into an aware datetime."""
    if isinstance(value, datetime):
        return ensure_aware(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text))


def generate_unique_id(handle: str, supplier_code: str) -> str:
    """Content hash used as the raw supplier product key."""
    canonical = f"{handle}-{supplier_code}"
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]


@dataclass
class ProductHashes:
    """Change-detection fingerprints for the product body."""
    general_hash: str = ""
    status_hash: str = ""


@dataclass
class CacheRecord:
    """Canonical per-supplier product snapshot."""

    product_id: str
    supplier_id: str
    platform: Platform
    updated_at: datetime
    query_key: str = ""
    deleted: bool = False
    product_hashes: ProductHashes = field(default_factory=ProductHashes)
    variant_hashes: dict[str, str] = field(default_factory=dict)
    variant_list_hash: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.platform = Platform(self.platform)
        self.updated_at = parse_timestamp(self.updated_at)
        if isinstance(self.product_hashes, dict):
            self.product_hashes = ProductHashes(**self.product_hashes)

    @property
    def key(self) -> tuple[str, str]:
        return (self.product_id, self.supplier_id)

    @property
    def audit_hash_key(self) -> str:
        return f"{self.product_id}-{self.supplier_id}"

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["platform"] = self.platform.value
        d["updated_at"] = self.updated_at.isoformat()
        return d

    @staticmethod
    def from_dict(d: dict[str, Any]) -> CacheRecord:
        return CacheRecord(**{k: v for k, v in d.items() if k in CacheRecord.__dataclass_fields__})


@dataclass
class RawSupplierRecord:
    """Primary catalog entry for one supplier product (platform-specific data)."""

    hash_key: str
    supplier_code: str
    platform: Platform
    query_key: str = ""
    deleted: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.platform = Platform(self.platform)


@dataclass
class AuditRecord:
    """Immutable record of one accepted cache mutation."""

    hash_key: str
    timestamp: datetime
    action: AuditAction
    actor: AuditActor
    platform: Platform
    product_id: str
    supplier_id: str
    data: dict[str, Any] | None = None
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        self.action = AuditAction(self.action)
        self.actor = AuditActor(self.actor)
        self.platform = Platform(self.platform)
        self.timestamp = parse_timestamp(self.timestamp)
        if self.expires_at is not None:
            self.expires_at = parse_timestamp(self.expires_at)


@dataclass
class AuditLogDetails:
    """Who did what, attached to a cache mutation that should be audited."""
    action: AuditAction
    actor: AuditActor


@dataclass
class SyncCursor:
    supplier_id: str
    latest_sync_timestamp: datetime

    def __post_init__(self) -> None:
        self.latest_sync_timestamp = parse_timestamp(self.latest_sync_timestamp)


@dataclass
class Supplier:
    """Supplier directory entry."""

    id: str
    supplier_code: str
    platform: Platform
    name: str = ""
    is_integration_unhealthy: bool = False

    def __post_init__(self) -> None:
        self.platform = Platform(self.platform)


@dataclass
class SupplierAuth:
    """Integration credentials. For EDI: host, port, username, password, directory_catalog."""
    supplier_id: str
    auth: dict[str, Any] = field(default_factory=dict)


def to_audit_record(
    record: CacheRecord,
    logging_details: AuditLogDetails,
    expires_at: datetime | None = None,
) -> AuditRecord:
    """Build the audit entry for an accepted mutation of ``record``."""
    return AuditRecord(
        hash_key=record.audit_hash_key,
        timestamp=record.updated_at,
        action=logging_details.action,
        actor=logging_details.actor,
        platform=record.platform,
        product_id=record.product_id,
        supplier_id=record.supplier_id,
        data=record.data or None,
        expires_at=expires_at,
    )
