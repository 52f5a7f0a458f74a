"""
MarginDesk configuration.
Loads .env from the project root and exposes settings as module constants.

Usage:
    from scripts.lib.config import MAX_PAGES, get_zoho_region_config
"""
import os
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv

from scripts.lib.logger import setup_logger

logger = setup_logger("config")

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(PROJECT_ROOT / ".env")

# ─── Sync limits ──────────────────────────────────────────────

MAX_PAGES = int(os.getenv("MAX_PAGES", "200"))
ZOHO_BOOKS_PAGE_SIZE = 200
ZOHO_PEOPLE_PAGE_SIZE = 200
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "30"))

# Retries are off unless explicitly configured: one attempt per request.
SYNC_RETRY_ATTEMPTS = int(os.getenv("SYNC_RETRY_ATTEMPTS", "1"))
SYNC_RETRY_BACKOFF = float(os.getenv("SYNC_RETRY_BACKOFF", "1.0"))

# ─── Business constants ───────────────────────────────────────

HOURS_PER_DAY = 8
STANDARD_MONTHLY_HOURS = 160
FISCAL_YEAR_START_MONTH = 4  # April
DEFAULT_UTILIZATION_TARGET = 0.85
MICROSOFT_UTILIZATION_TARGET = 0.80
DEFAULT_BILLING_CURRENCY = "INR"

# ─── Zoho regions ─────────────────────────────────────────────

ZOHO_REGIONS: Dict[str, Dict[str, str]] = {
    "US": {
        "accounts_url": "https://accounts.zoho.com",
        "api_domain": "https://www.zohoapis.com",
        "people_domain": "https://people.zoho.com",
    },
    "EU": {
        "accounts_url": "https://accounts.zoho.eu",
        "api_domain": "https://www.zohoapis.eu",
        "people_domain": "https://people.zoho.eu",
    },
    "IN": {
        "accounts_url": "https://accounts.zoho.in",
        "api_domain": "https://www.zohoapis.in",
        "people_domain": "https://people.zoho.in",
    },
    "AU": {
        "accounts_url": "https://accounts.zoho.com.au",
        "api_domain": "https://www.zohoapis.com.au",
        "people_domain": "https://people.zoho.com.au",
    },
    "JP": {
        "accounts_url": "https://accounts.zoho.jp",
        "api_domain": "https://www.zohoapis.jp",
        "people_domain": "https://people.zoho.jp",
    },
    "CA": {
        "accounts_url": "https://accounts.zoho.ca",
        "api_domain": "https://www.zohoapis.ca",
        "people_domain": "https://people.zoho.ca",
    },
    "CN": {
        "accounts_url": "https://accounts.zoho.com.cn",
        "api_domain": "https://www.zohoapis.com.cn",
        "people_domain": "https://people.zoho.com.cn",
    },
}
DEFAULT_ZOHO_REGION = "IN"

# ─── Microsoft Graph ──────────────────────────────────────────

MICROSOFT_LOGIN_URL = "https://login.microsoftonline.com"
MICROSOFT_GRAPH_URL = "https://graph.microsoft.com/v1.0"


def get_zoho_region() -> str:
    """Return the configured Zoho region, falling back to IN when unknown."""
    region = os.getenv("ZOHO_REGION", DEFAULT_ZOHO_REGION).upper()
    if region not in ZOHO_REGIONS:
        logger.warning("Invalid ZOHO_REGION: %s, falling back to %s", region, DEFAULT_ZOHO_REGION)
        return DEFAULT_ZOHO_REGION
    return region


def get_zoho_region_config() -> Dict[str, str]:
    return ZOHO_REGIONS[get_zoho_region()]
