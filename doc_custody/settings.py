"""Django settings for the document-NFT custody backend.


The service runs these flows:
- Document records → on-chain mint → recipient approvals (event loop + client reports)
- Operator pull-back of NFTs / approved ERC-20 balances, gated by live chain reads
- Hourly owner reconciliation sweep (log-only)


Set CHAIN_BACKEND=stub to run against the in-process chain stub.
"""

import os
from pathlib import Path

from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.getenv("DEBUG", "1") in ("1", "true", "True", "yes")
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(",")
CSRF_TRUSTED_ORIGINS = os.getenv("CSRF_TRUSTED_ORIGINS", "").split(",") if os.getenv("CSRF_TRUSTED_ORIGINS") else []

def env_bool(name, default=""):
    v = os.getenv(name, default)
    return v.lower() in ("1", "true", "yes", "on")

#######################
# Chain access. "web3" talks to RPC_URL; "stub" uses chain_stub in-process.
CHAIN_BACKEND = os.getenv("CHAIN_BACKEND", "stub")

CHAIN = {
    "RPC_URL": os.getenv("RPC_URL", ""),
    "PRIVATE_KEY": os.getenv("PRIVATE_KEY", ""),
    "CHAIN_ID": int(os.getenv("CHAIN_ID", "11155111")),
    "CONTRACT_ADDRESS": os.getenv("CONTRACT_ADDRESS", "0x0000000000000000000000000000000000000c0d"),
    "CONTRACT_ABI_PATH": os.getenv("CONTRACT_ABI_PATH", ""),
    # Operator the dashboard checks NFT approval against; defaults to the contract itself
    "NFT_APPROVAL_OPERATOR": os.getenv("NFT_APPROVAL_OPERATOR", ""),
    "TX_TIMEOUT_SECONDS": float(os.getenv("TX_TIMEOUT_SECONDS", "120")),
    "TX_CONFIRMATIONS": int(os.getenv("TX_CONFIRMATIONS", "1")),
    "EVENT_POLL_SECONDS": float(os.getenv("EVENT_POLL_SECONDS", "4")),
    # eth_getLogs block span per request; providers reject wider ranges
    "MAX_LOG_RANGE": int(os.getenv("MAX_LOG_RANGE", "2000")),
}

# ERC-20 allow-list (Sepolia). Keys are lower-case contract addresses.
USDT_ADDRESS = os.getenv("USDT_ADDRESS", "0xbDeaD2A70Fe794D2f97b37EFDE497e68974a296d")
USDC_ADDRESS = os.getenv("USDC_ADDRESS", "0x94a9D9AC8a22534E3FaCa9F4e7F2E2cf85d5E4C8")

SUPPORTED_TOKENS = {
    USDT_ADDRESS.lower(): {"symbol": "USDT", "name": "Tether USD"},
    USDC_ADDRESS.lower(): {"symbol": "USDC", "name": "USD Coin"},
}

ENABLE_EVENT_MONITORING = env_bool("ENABLE_EVENT_MONITORING", "0")
RECONCILE_INTERVAL_SECONDS = int(os.getenv("RECONCILE_INTERVAL_SECONDS", "3600"))

# SIWE nonces are single-use and expire after this many seconds
SIWE_NONCE_MAX_AGE_SECONDS = int(os.getenv("SIWE_NONCE_MAX_AGE_SECONDS", "600"))
SIWE_DOMAIN = os.getenv("SIWE_DOMAIN", "")
#######################


INSTALLED_APPS = [
	"django.contrib.contenttypes",
	"django.contrib.sessions",
	"django.contrib.staticfiles",
	# local apps
	"core",
	"api",
	"chain_stub",
]


MIDDLEWARE = [
	"django.middleware.security.SecurityMiddleware",
	"django.contrib.sessions.middleware.SessionMiddleware",
	"django.middleware.common.CommonMiddleware",
	"django.middleware.csrf.CsrfViewMiddleware",
	"core.middleware.MonitorAutostartMiddleware",
]


ROOT_URLCONF = "doc_custody.urls"
TEMPLATES = []


ASGI_APPLICATION = "doc_custody.asgi.application"


DB_ENGINE = os.getenv("DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB", "doc_custody"),
            "USER": os.getenv("POSTGRES_USER", "doc_custody"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "doc_custody"),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }


SESSION_ENGINE = "django.contrib.sessions.backends.signed_cookies"


LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True


STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO")},
    "loggers": {
        "django.db.backends": {"level": "WARNING"},
        "web3": {"level": "WARNING"},
    },
}
