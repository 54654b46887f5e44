# shopdesk/utils/validators.py
import math


# ---- Numeric parsing & validators ----

def try_parse_float(x):
    """
    Best-effort parse to a finite float.

    Returns:
        (ok: bool, value: float|None)

    ok == False means parsing failed (or produced NaN/inf) and value is None.
    """
    if isinstance(x, bool):
        return False, None
    try:
        val = float(x)
    except (TypeError, ValueError):
        return False, None
    if not math.isfinite(val):
        return False, None
    return True, val


def safe_number(x, default: float = 0.0) -> float:
    """
    Lenient numeric coercion for stored records: anything missing,
    non-numeric or non-finite becomes `default`.
    """
    ok, val = try_parse_float(x)
    return val if ok else default


def is_positive_int(x) -> bool:
    """
    True iff x is an integer value > 0 (3 and 3.0 qualify, 2.5 and "3" don't).
    """
    if isinstance(x, bool):
        return False
    if isinstance(x, int):
        return x > 0
    if isinstance(x, float):
        return math.isfinite(x) and x.is_integer() and x > 0
    return False


def is_non_zero_int(x) -> bool:
    if isinstance(x, bool):
        return False
    if isinstance(x, int):
        return x != 0
    if isinstance(x, float):
        return math.isfinite(x) and x.is_integer() and x != 0
    return False


def is_non_negative_number(x) -> bool:
    """
    True iff x parses to a finite float and value >= 0.
    """
    ok, val = try_parse_float(x)
    return bool(ok and val is not None and val >= 0)
