import os
from pathlib import Path
from decimal import Decimal
from dotenv import load_dotenv
import dj_database_url

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.environ.get("SECRET_KEY", os.environ.get("DJANGO_SECRET_KEY", "changeme"))
DEBUG = os.getenv("DEBUG", os.getenv("DJANGO_DEBUG", "True")) == "True"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost").split(",")

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "rest_framework",
    "ledger.apps.LedgerConfig",
    "audit.apps.AuditConfig",
    "housing.apps.HousingConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

# =============================================================================
# Database Configuration
# =============================================================================
# Ledger operations rely on multi-row transactions; PostgreSQL in production,
# SQLite for local work and tests.
DATABASES = {
    "default": dj_database_url.config(
        env="DATABASE_URL",
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=600,
    )
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "COERCE_DECIMAL_TO_STRING": True,
}

# =============================================================================
# Ledger Configuration
# =============================================================================
# Absolute debit/credit difference tolerated when validating an entry.
LEDGER_BALANCE_TOLERANCE = Decimal(os.getenv("LEDGER_BALANCE_TOLERANCE", "0.01"))

# Default chart of accounts: code -> (name, type).
# Student receivables are created on demand as "1100-<student_id>".
LEDGER_CHART_OF_ACCOUNTS = {
    "1000": ("Cash", "Asset"),
    "1001": ("Bank Account", "Asset"),
    "1100": ("Accounts Receivable - Tenants", "Asset"),
    "2000": ("Accounts Payable", "Liability"),
    "2020": ("Tenant Security Deposits", "Liability"),
    "2200": ("Advance Payment Liability", "Liability"),
    "4001": ("Rental Income", "Income"),
    "4002": ("Administrative Fees", "Income"),
    "4003": ("Forfeited Income", "Income"),
    "4004": ("Utilities Income", "Income"),
    "4005": ("Other Income", "Income"),
    "5000": ("Maintenance Expense", "Expense"),
    "5001": ("Utilities Expense", "Expense"),
}

# =============================================================================
# Structured Logging Configuration
# =============================================================================
from ops.logging_config import get_logging_config
LOGGING = get_logging_config(DEBUG)

VERSION = os.getenv("APP_VERSION", "dev")
