# shopdesk/utils/helpers.py
from datetime import datetime, timezone


def now_iso() -> str:
    """UTC timestamp with microseconds, e.g. 2024-05-01T10:15:30.123456+00:00."""
    return datetime.now(timezone.utc).isoformat()


def invoice_date_prefix(when: datetime | None = None) -> str:
    """Date part of an invoice number: YYYYMMDD."""
    when = when or datetime.now(timezone.utc)
    return when.strftime("%Y%m%d")


def month_of(iso_value: str | None) -> str | None:
    """
    'YYYY-MM' for an ISO date/datetime string, or None if it can't be read.
    """
    if not iso_value:
        return None
    text = str(iso_value).strip()
    if len(text) < 7 or text[4] != "-":
        return None
    return text[:7]
