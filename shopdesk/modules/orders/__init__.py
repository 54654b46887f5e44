# shopdesk/modules/orders/__init__.py

from .normalizer import (
    CanonicalLine,
    ItemizedOrder,
    LegacyLine,
    parse_record,
    lines_for_record,
    canonical_lines_from_records,
)

__all__ = [
    "CanonicalLine",
    "ItemizedOrder",
    "LegacyLine",
    "parse_record",
    "lines_for_record",
    "canonical_lines_from_records",
]
