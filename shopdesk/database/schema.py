import logging
import sqlite3
import sys
from pathlib import Path

_log = logging.getLogger(__name__)

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== CORE TABLES ======================== */

/* -------- settings (owned by branding/settings management) -------- */
CREATE TABLE IF NOT EXISTS app_settings (
    key   TEXT PRIMARY KEY,
    value TEXT
);

/* -------- products -------- */
CREATE TABLE IF NOT EXISTS products (
    product_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    name                TEXT NOT NULL,
    sku                 TEXT,
    cost_price          NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(cost_price AS REAL) >= 0),
    selling_price       NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(selling_price AS REAL) >= 0),
    /* on-hand quantity; never negative */
    quantity            INTEGER NOT NULL DEFAULT 0 CHECK (quantity >= 0),
    low_stock_threshold INTEGER NOT NULL DEFAULT 0 CHECK (low_stock_threshold >= 0),
    dealer              TEXT,
    category            TEXT
);
CREATE INDEX IF NOT EXISTS idx_products_name ON products(name);

/* -------- customers -------- */
CREATE TABLE IF NOT EXISTS customers (
    customer_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    name           TEXT NOT NULL,
    email          TEXT,
    phone          TEXT,
    address        TEXT,
    source         TEXT,
    created_at     TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    referral_code  TEXT,              -- own shareable code, minted lazily
    referrer_code  TEXT,              -- code supplied at creation
    referred_by_id INTEGER,
    FOREIGN KEY (referred_by_id) REFERENCES customers(customer_id)
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_customers_referral_code
ON customers(referral_code) WHERE referral_code IS NOT NULL;

/* -------- orders: itemized (lines in order_items) or legacy flat (one line on the row) -------- */
CREATE TABLE IF NOT EXISTS orders (
    order_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id    INTEGER NOT NULL,
    invoice_number TEXT    NOT NULL,
    order_date     TIMESTAMP NOT NULL,
    payment_status TEXT NOT NULL DEFAULT 'Unpaid' CHECK (payment_status IN ('Unpaid','Paid')),
    payment_method TEXT,
    payment_date   TIMESTAMP,
    service_fee    NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(service_fee AS REAL) >= 0),
    share_token    TEXT,
    shape          TEXT NOT NULL DEFAULT 'itemized' CHECK (shape IN ('itemized','legacy')),

    /* legacy single-line columns; stored as found, coerced on read */
    product_id     INTEGER,
    product_name   TEXT,
    quantity       NUMERIC,
    unit_price     NUMERIC,
    discount       NUMERIC,

    created_at     TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id)
);
CREATE INDEX IF NOT EXISTS idx_orders_invoice  ON orders(invoice_number);
CREATE INDEX IF NOT EXISTS idx_orders_customer ON orders(customer_id);

CREATE TABLE IF NOT EXISTS order_items (
    item_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id     INTEGER NOT NULL,
    line_no      INTEGER NOT NULL,
    product_id   INTEGER,
    product_name TEXT,
    quantity     NUMERIC,
    unit_price   NUMERIC,
    discount     NUMERIC,
    UNIQUE(order_id, line_no),
    FOREIGN KEY (order_id) REFERENCES orders(order_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items(order_id);

/* -------- stock ledger (append-only) -------- */
CREATE TABLE IF NOT EXISTS stock_history (
    seq          INTEGER PRIMARY KEY AUTOINCREMENT,  -- server-assigned total order
    product_id   INTEGER NOT NULL,
    change       INTEGER NOT NULL CHECK (change <> 0),
    reason       TEXT    NOT NULL,
    kind         TEXT CHECK (kind IS NULL OR kind IN ('Sale','Return','Adjustment','Received')),
    date         TIMESTAMP NOT NULL,
    new_quantity INTEGER NOT NULL CHECK (new_quantity >= 0),
    FOREIGN KEY (product_id) REFERENCES products(product_id)
);
CREATE INDEX IF NOT EXISTS idx_stock_history_product ON stock_history(product_id, seq);
CREATE INDEX IF NOT EXISTS idx_stock_history_date    ON stock_history(date);

/* -------- referrals -------- */
CREATE TABLE IF NOT EXISTS referrals (
    referral_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    referrer_id    INTEGER NOT NULL,
    referee_id     INTEGER NOT NULL,
    order_id       INTEGER NOT NULL,
    date           TIMESTAMP NOT NULL,
    reward_amount  NUMERIC NOT NULL CHECK (CAST(reward_amount AS REAL) >= 0),
    status         TEXT NOT NULL DEFAULT 'Completed' CHECK (status IN ('Completed','RewardPaid')),
    reward_paid_at TIMESTAMP,
    UNIQUE(referrer_id, referee_id),
    FOREIGN KEY (referrer_id) REFERENCES customers(customer_id),
    FOREIGN KEY (referee_id)  REFERENCES customers(customer_id),
    FOREIGN KEY (order_id)    REFERENCES orders(order_id)
);
CREATE INDEX IF NOT EXISTS idx_referrals_referrer ON referrals(referrer_id);

/* ======================== TRIGGERS ======================== */

/* ledger rows are immutable */
CREATE TRIGGER IF NOT EXISTS trg_stock_history_no_update
BEFORE UPDATE ON stock_history
BEGIN
    SELECT RAISE(ABORT, 'stock_history is append-only');
END;

CREATE TRIGGER IF NOT EXISTS trg_stock_history_no_delete
BEFORE DELETE ON stock_history
BEGIN
    SELECT RAISE(ABORT, 'stock_history is append-only');
END;

/* Paid is terminal */
CREATE TRIGGER IF NOT EXISTS trg_orders_paid_is_terminal
BEFORE UPDATE OF payment_status ON orders
WHEN OLD.payment_status = 'Paid' AND NEW.payment_status <> 'Paid'
BEGIN
    SELECT RAISE(ABORT, 'Paid orders cannot return to Unpaid');
END;

/* RewardPaid is terminal */
CREATE TRIGGER IF NOT EXISTS trg_referrals_status_forward_only
BEFORE UPDATE OF status ON referrals
WHEN OLD.status = 'RewardPaid' AND NEW.status <> 'RewardPaid'
BEGIN
    SELECT RAISE(ABORT, 'RewardPaid referrals cannot be reopened');
END;

/* ======================== VIEWS ======================== */

/* per-product ledger totals, for the replay check */
DROP VIEW IF EXISTS v_stock_ledger_totals;
CREATE VIEW v_stock_ledger_totals AS
SELECT p.product_id,
       p.quantity AS quantity,
       COALESCE((SELECT SUM(h.change) FROM stock_history h WHERE h.product_id = p.product_id), 0) AS ledger_sum,
       COALESCE((SELECT COUNT(*)      FROM stock_history h WHERE h.product_id = p.product_id), 0) AS entries
FROM products p;
"""


def init_schema(db_path: Path | str = "shopdesk.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        # Apply (idempotent) schema
        conn.executescript(SQL)
        conn.commit()
    finally:
        conn.close()
    _log.debug("schema applied to %s", db_path)


if __name__ == "__main__":
    from ..utils.loggers import get_logger

    get_logger().setLevel(logging.DEBUG)
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[2] / "data" / "shopdesk.db"
    init_schema(target)
    print(f"✓ DB applied to {target}")
