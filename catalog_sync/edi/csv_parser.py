"""Shopify-standard product CSV -> product dicts.

One CSV row per variant (or extra image); rows sharing a Handle form one
product. Product-level columns are taken from the first row of the handle
that fills them. Headers are normalized to snake_case, so "Body (HTML)"
becomes body_html and "Option1 Name" becomes option1_name.
"""

from __future__ import annotations

import csv
import re
from typing import Any, Iterable, TextIO

_NON_WORD = re.compile(r"[^0-9a-z]+")

_OPTION_VALUE = re.compile(r"^option([123])_value$")
_IMAGE_KEYS = {"image_src": "src", "image_position": "position", "image_alt_text": "alt"}


def normalize_header(header: str) -> str:
    return _NON_WORD.sub("_", header.strip().lower()).strip("_")


def _is_variant_key(key: str) -> bool:
    return key.startswith("variant_") or bool(_OPTION_VALUE.match(key))


def _variant_from_row(row: dict[str, str]) -> dict[str, Any] | None:
    variant: dict[str, Any] = {}
    for key, value in row.items():
        option = _OPTION_VALUE.match(key)
        if option:
            variant[f"option{option.group(1)}"] = value
        elif key.startswith("variant_"):
            variant[key[len("variant_"):]] = value
    # Image-only continuation rows carry no variant data.
    if not any(variant.values()):
        return None
    return variant


def _image_from_row(row: dict[str, str]) -> dict[str, str] | None:
    if not row.get("image_src"):
        return None
    return {target: row.get(source, "") for source, target in _IMAGE_KEYS.items()}


def group_rows(rows: Iterable[dict[str, str]]) -> list[dict[str, Any]]:
    """Group normalized CSV rows by handle into product dicts (input order kept)."""
    products: dict[str, dict[str, Any]] = {}
    for row in rows:
        handle = (row.get("handle") or "").strip()
        if not handle:
            continue
        product = products.get(handle)
        if product is None:
            product = {"handle": handle, "variants": [], "images": []}
            products[handle] = product
        for key, value in row.items():
            if key == "handle" or _is_variant_key(key) or key in _IMAGE_KEYS:
                continue
            if key not in product or (not product[key] and value):
                product[key] = value
        variant = _variant_from_row(row)
        if variant is not None:
            product["variants"].append(variant)
        image = _image_from_row(row)
        if image is not None:
            product["images"].append(image)
    return list(products.values())


def parse_products(stream: TextIO) -> list[dict[str, Any]]:
    reader = csv.reader(stream)
    header = next(reader, None)
    if header is None:
        return []
    fieldnames = [normalize_header(h) for h in header]
    rows = (
        {key: value.strip() for key, value in zip(fieldnames, raw)}
        for raw in reader
        if any(cell.strip() for cell in raw)
    )
    return group_rows(rows)
