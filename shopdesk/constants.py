# shopdesk/constants.py

# ---- storage ----
DATA_DIR = "data"
DB_FILE_NAME = "shopdesk.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.3.0"

# seconds a connection waits on a locked database before raising
BUSY_TIMEOUT_SEC = 5.0

# ---- billing ----
DEFAULT_TAX_RATE = 0.18
SETTING_TAX_RATE = "tax_rate"

PAYMENT_UNPAID = "Unpaid"
PAYMENT_PAID = "Paid"
PAYMENT_STATUSES = (PAYMENT_UNPAID, PAYMENT_PAID)

PAYMENT_METHODS = (
    "Credit Card",
    "Bank Transfer",
    "Cash",
    "UPI",
)

INVOICE_PREFIX = "INV"

# ---- referrals ----
REFERRAL_REWARD_AMOUNT = 500.0
REFERRAL_REWARD_THRESHOLD = 10_000.0
REFERRAL_CODE_PREFIX = "NH"
REFERRAL_COMPLETED = "Completed"
REFERRAL_REWARD_PAID = "RewardPaid"

# ---- concurrency ----
MAX_WRITE_RETRIES = 5
RETRY_BACKOFF_SEC = 0.05

# ---- normalizer ----
FALLBACK_ITEM_NAME = "Item"
