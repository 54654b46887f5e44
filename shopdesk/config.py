import os
from pathlib import Path

from .constants import BUSY_TIMEOUT_SEC, DATA_DIR, DB_FILE_NAME, DEFAULT_TAX_RATE

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_PATH = Path(os.environ.get("SHOPDESK_DATA_DIR") or (BASE_DIR / DATA_DIR))
DB_PATH = Path(os.environ.get("SHOPDESK_DB_PATH") or (DATA_PATH / DB_FILE_NAME))


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


BUSY_TIMEOUT = _env_float("SHOPDESK_BUSY_TIMEOUT", BUSY_TIMEOUT_SEC)


def default_tax_rate() -> float:
    """
    Tax rate used when the settings table carries none.
    SHOPDESK_TAX_RATE accepts a fraction (0.18) or a percent (18).
    """
    rate = _env_float("SHOPDESK_TAX_RATE", DEFAULT_TAX_RATE)
    return rate / 100.0 if rate > 1 else rate
