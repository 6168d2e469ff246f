"""Supplier product read paths over the raw supplier catalog."""

from __future__ import annotations

import logging
from typing import Any

from catalog_sync.cache.raw_products import RawProductStore
from catalog_sync.errors import AuthMissing, ProductNotFound, SupplierUnavailable
from catalog_sync.models import Platform, RawSupplierRecord
from catalog_sync.suppliers import SupplierDirectory

logger = logging.getLogger(__name__)

# Where each platform keeps its variant list inside the product payload
_VARIANT_FIELDS = {
    Platform.SHOPIFY: "variants",
    Platform.WOOCOMMERCE: "variations",
    Platform.BIGCOMMERCE: "variants",
    Platform.SQUARESPACE: "variants",
    Platform.EDI: "variants",
}

DEFAULT_PAGE_SIZE = 100


class SupplierProductService:
    def __init__(self, directory: SupplierDirectory, raw_store: RawProductStore):
        self.directory = directory
        self.raw_store = raw_store

    def assert_supplier_exists_and_healthy(self, supplier_code: str) -> None:
        supplier = self.directory.get_supplier_by_code(supplier_code)
        if supplier is None:
            raise SupplierUnavailable(f"Supplier not found: {supplier_code}")
        if supplier.is_integration_unhealthy:
            raise SupplierUnavailable(f"Supplier integration is not healthy: {supplier_code}")
        if self.directory.get_supplier_auth(supplier.id) is None:
            raise AuthMissing(f"Supplier auth not found: {supplier_code}")

    def get_products_by_ids(self, supplier_code: str, ids: list[str]) -> list[dict[str, Any]]:
        return [r.data for r in self.raw_store.get_many(supplier_code, ids) if not r.deleted]

    def list_products(self, supplier_code: str, page_size: int = DEFAULT_PAGE_SIZE) -> list[dict[str, Any]]:
        return [r.data for r in self.raw_store.scan(supplier_code, limit=page_size) if not r.deleted]

    def _get_live(self, supplier_code: str, product_id: str) -> RawSupplierRecord:
        record = self.raw_store.get(supplier_code, product_id)
        if record is None or record.deleted:
            raise ProductNotFound(f"Product not found: {product_id}")
        return record

    def get_product_by_id(self, supplier_code: str, product_id: str) -> dict[str, Any]:
        return self._get_live(supplier_code, product_id).data

    def get_variant_by_id(self, supplier_code: str, product_id: str, variant_id: str) -> dict[str, Any]:
        record = self._get_live(supplier_code, product_id)
        field_name = _VARIANT_FIELDS.get(record.platform)
        variants = (record.data.get(field_name) if field_name else None) or []
        for variant in variants:
            # EDI variants have no id of their own; the SKU identifies them.
            candidate = variant.get("id", variant.get("sku"))
            if candidate is not None and str(candidate) == str(variant_id):
                return variant
        raise ProductNotFound(f"Variant not found: {variant_id}")
