from __future__ import annotations

import logging
import sqlite3

from ...config import default_tax_rate
from ...constants import SETTING_TAX_RATE
from ...utils.validators import try_parse_float
from ..transactions import immediate_tx

_log = logging.getLogger(__name__)


class SettingsRepo:
    """
    Key/value application settings. The engine only reads them; branding and
    settings screens own the values.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def get(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM app_settings WHERE key=?", (key,)).fetchone()
        return None if row is None else row["value"]

    def set(self, key: str, value) -> None:
        with immediate_tx(self.conn):
            self.conn.execute(
                "INSERT INTO app_settings(key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, None if value is None else str(value)),
            )

    def tax_rate(self) -> float:
        """
        Configured tax rate as a fraction. Stored values may be a fraction (0.18)
        or a percent (18). Missing/unreadable values fall back to the
        environment/default rate.
        """
        raw = self.get(SETTING_TAX_RATE)
        if raw is None:
            return default_tax_rate()
        ok, val = try_parse_float(raw)
        if not ok or val < 0:
            _log.warning("ignoring unreadable tax_rate setting %r", raw)
            return default_tax_rate()
        return val / 100.0 if val > 1 else val
