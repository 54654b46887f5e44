"""
shopdesk/modules/orders/normalizer.py

Purpose
-------
Turn stored order records of either shape into canonical line items.

Stored shapes (a tagged union, discriminated by an `items` collection):
- ItemizedOrder: one record carrying every line in `items`.
- LegacyLine:    one record per line, fields on the record itself; several
                 records share an invoice number.

Everything downstream (totals, grouping, payment, rewards, rendering) works on
CanonicalLine only; nothing past this module branches on the stored shape.

Rules
-----
- productName: item-level name -> order-level name -> catalog name -> "Item".
- unit price: stored price (several historical field names) -> catalog
  selling price when no price was stored at all -> 0.
- quantity/price/discount that are missing, non-numeric or non-finite become 0.
- Never raises on malformed data; each degradation is logged as a
  data-quality warning.

Public API
----------
- parse_record(record) -> ItemizedOrder | LegacyLine
- lines_for_record(record, catalog) -> list[CanonicalLine]
- canonical_lines_from_records(records, catalog) -> list[CanonicalLine]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

from ...constants import FALLBACK_ITEM_NAME
from ...utils.validators import try_parse_float

__all__ = [
    "CanonicalLine",
    "ItemizedOrder",
    "LegacyLine",
    "parse_record",
    "lines_for_record",
    "canonical_lines_from_records",
]

_log = logging.getLogger(__name__)

# Field names seen across the stored generations, most specific first.
_QTY_KEYS = ("quantity", "qty")
_PRICE_KEYS = ("unit_price", "unitPrice", "sale_price", "salePrice", "price")
_DISCOUNT_KEYS = ("discount",)
_NAME_KEYS = ("product_name", "productName", "name")
_PRODUCT_ID_KEYS = ("product_id", "productId")


# ----------------------------
# Types
# ----------------------------

@dataclass(frozen=True)
class ItemizedOrder:
    header: Mapping[str, Any]
    items: tuple


@dataclass(frozen=True)
class LegacyLine:
    header: Mapping[str, Any]


StoredOrder = Union[ItemizedOrder, LegacyLine]


@dataclass(frozen=True)
class CanonicalLine:
    id: str
    product_id: Any
    product_name: str
    quantity: float
    unit_price: float
    discount: float
    invoice_number: Optional[str]
    order_date: Optional[str]
    payment_status: Optional[str]
    customer_id: Any = None


# ----------------------------
# Helpers
# ----------------------------

def _get(mapping: Mapping[str, Any], key: str) -> Any:
    try:
        return mapping.get(key)
    except AttributeError:
        return None


def _first_present(mapping: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for k in keys:
        v = _get(mapping, k)
        if v is not None and not (isinstance(v, str) and v.strip() == ""):
            return v
    return None


def _record_id(record: Mapping[str, Any]) -> str:
    rid = _first_present(record, ("id", "order_id"))
    return "" if rid is None else str(rid)


def _number(value: Any, *, field: str, where: str) -> float:
    if value is None:
        _log.warning("data quality: %s missing %s; using 0", where, field)
        return 0.0
    ok, val = try_parse_float(value)
    if not ok:
        _log.warning("data quality: %s has unreadable %s=%r; using 0", where, field, value)
        return 0.0
    return val


def _catalog_product(catalog: Optional[Mapping[Any, Any]], product_id: Any):
    if not catalog or product_id is None:
        return None
    try:
        product = catalog.get(product_id)
    except TypeError:
        _log.warning("data quality: unusable product id %r; no catalog lookup", product_id)
        return None
    if product is None:
        try:
            product = catalog.get(int(product_id))
        except (TypeError, ValueError):
            product = None
    return product


def _has_items(record: Mapping[str, Any]) -> bool:
    items = _get(record, "items")
    return isinstance(items, (list, tuple)) and len(items) > 0


def _has_flat_line(record: Mapping[str, Any]) -> bool:
    return _first_present(record, _PRODUCT_ID_KEYS + _QTY_KEYS + _PRICE_KEYS) is not None


# ----------------------------
# Public API
# ----------------------------

def parse_record(record: Mapping[str, Any]) -> StoredOrder:
    """
    Classify a stored record. A non-empty `items` collection means itemized;
    an empty one with no flat line fields is an itemized order with no lines.
    """
    if _has_items(record):
        return ItemizedOrder(header=record, items=tuple(_get(record, "items")))
    if isinstance(_get(record, "items"), (list, tuple)) and not _has_flat_line(record):
        return ItemizedOrder(header=record, items=())
    return LegacyLine(header=record)


def _canonical(
    source: Mapping[str, Any],
    header: Mapping[str, Any],
    *,
    line_id: str,
    catalog: Optional[Mapping[Any, Any]],
) -> CanonicalLine:
    where = f"order {_record_id(header) or '?'} line {line_id}"

    product_id = _first_present(source, _PRODUCT_ID_KEYS)
    if product_id is None and source is not header:
        product_id = _first_present(header, _PRODUCT_ID_KEYS)
    product = _catalog_product(catalog, product_id)

    name = _first_present(source, _NAME_KEYS)
    if name is None and source is not header:
        name = _first_present(header, ("product_name", "productName"))
    if name is None and product is not None:
        name = getattr(product, "name", None) or None
    if name is None:
        _log.warning("data quality: %s has no product name; using %r", where, FALLBACK_ITEM_NAME)
        name = FALLBACK_ITEM_NAME

    raw_price = _first_present(source, _PRICE_KEYS)
    if raw_price is None and product is not None:
        raw_price = getattr(product, "selling_price", None)

    return CanonicalLine(
        id=line_id,
        product_id=product_id,
        product_name=str(name),
        quantity=_number(_first_present(source, _QTY_KEYS), field="quantity", where=where),
        unit_price=_number(raw_price, field="unit price", where=where),
        # an absent discount is the normal case, not a data-quality issue
        discount=_number(_first_present(source, _DISCOUNT_KEYS) or 0, field="discount", where=where),
        invoice_number=_get(header, "invoice_number") or _get(header, "invoiceNumber"),
        order_date=_get(header, "order_date") or _get(header, "orderDate"),
        payment_status=_get(header, "payment_status") or _get(header, "paymentStatus"),
        customer_id=_first_present(header, ("customer_id", "customerId")),
    )


def lines_for_record(
    record: Mapping[str, Any],
    catalog: Optional[Mapping[Any, Any]] = None,
) -> list[CanonicalLine]:
    """Canonical lines of a single stored record, in stored order."""
    stored = parse_record(record)
    rid = _record_id(record)
    if isinstance(stored, ItemizedOrder):
        lines = []
        for idx, item in enumerate(stored.items):
            if not isinstance(item, Mapping):
                _log.warning("data quality: order %s item %d is not a mapping; skipped", rid or "?", idx)
                continue
            lines.append(_canonical(item, stored.header, line_id=f"{rid}_itm_{idx}", catalog=catalog))
        return lines
    return [_canonical(stored.header, stored.header, line_id=rid, catalog=catalog)]


def canonical_lines_from_records(
    records: Iterable[Mapping[str, Any]],
    catalog: Optional[Mapping[Any, Any]] = None,
) -> list[CanonicalLine]:
    """
    Canonical lines for every record given (typically all records sharing one
    invoice number), preserving record order then line order.
    """
    out: list[CanonicalLine] = []
    for record in records:
        out.extend(lines_for_record(record, catalog))
    return out
