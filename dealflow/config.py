"""
Configuration for the dealflow pipeline.

Fixed policy lives here as module constants. Operational knobs (timeouts,
model names, debug) are env-driven through the small helpers below.

Secrets are never read at import time; callers ask for them through the
accessor functions, which raise ConfigurationError when a value is missing.
"""

from __future__ import annotations

import os
from typing import Optional, Tuple

from dotenv import load_dotenv

from dealflow.errors import ConfigurationError

load_dotenv()


# -----------------------------
# Env helpers
# -----------------------------
def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.environ.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    return raw or default


def env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)) or str(default))
    except Exception:
        return default


def env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)) or str(default))
    except Exception:
        return default


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y", "on")


def _require(name: str) -> str:
    value = env_str(name)
    if not value:
        raise ConfigurationError(f"{name} is not set in environment.")
    return value


# -----------------------------
# Secrets
# -----------------------------
def database_url() -> str:
    return _require("DATABASE_URL")


def places_api_key() -> str:
    return _require("GOOGLE_PLACES_API_KEY")


def openai_api_key() -> str:
    return _require("OPENAI_API_KEY")


# -----------------------------
# Places ingestion
# -----------------------------
PLACES_SEARCH_URL = "https://places.googleapis.com/v1/places:searchText"

RATE_LIMIT_PER_SECOND = 5
PAGE_TOKEN_WAIT = 2.0
PAGE_SIZE = 20
MAX_RESULTS_CAP = 60
MAX_CONSECUTIVE_EMPTY_PAGES = 3
CACHE_WINDOW_DAYS = 30

MAX_RETRIES_DEFAULT = 3
RETRY_BACKOFF_DEFAULT = 1.5

PLACES_FIELD_MASK: Tuple[str, ...] = (
    "places.id",
    "places.displayName",
    "places.types",
    "places.primaryType",
    "places.primaryTypeDisplayName",
    "places.formattedAddress",
    "places.addressComponents",
    "places.location",
    "places.nationalPhoneNumber",
    "places.internationalPhoneNumber",
    "places.websiteUri",
    "places.googleMapsUri",
    "places.rating",
    "places.userRatingCount",
    "places.priceLevel",
    "places.businessStatus",
    "places.regularOpeningHours",
    "places.editorialSummary",
    "places.reviewSummary",
    "nextPageToken",
)


def http_timeout() -> int:
    return env_int("DEALFLOW_HTTP_TIMEOUT_S", 12)


# -----------------------------
# Extraction
# -----------------------------
MAX_EMAILS = 10
MAX_PHONES = 5
MAX_TEAM_MEMBERS = 25
MAX_SNIPPETS_PER_CATEGORY = 5
MAX_SITE_DOCUMENT_CHARS = 60_000

PRIORITY_PATH_KEYWORDS: Tuple[str, ...] = ("about", "contact", "team", "staff", "leadership")

CRAWL_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120 Safari/537.36"
)


def crawl_max_pages() -> int:
    return env_int("DEALFLOW_CRAWL_MAX_PAGES", 20)


def crawl_max_depth() -> int:
    return env_int("DEALFLOW_CRAWL_MAX_DEPTH", 2)


def crawl_domain_budget_s() -> int:
    return env_int("DEALFLOW_CRAWL_DOMAIN_BUDGET_S", 30)


def crawl_fail_fast_limit() -> int:
    return env_int("DEALFLOW_CRAWL_FAIL_FAST_LIMIT", 6)


def crawl_delay_s() -> float:
    return env_float("DEALFLOW_CRAWL_DELAY_S", 0.2)


def crawl_ignore_robots() -> bool:
    return env_bool("DEALFLOW_CRAWL_IGNORE_ROBOTS", False)


# -----------------------------
# Market statistics
# -----------------------------
COHORT_FLOOR = 5

# 23 review-count cut points, p0 .. p99.9
RC_PERCENTILES: Tuple[float, ...] = (
    0, 1, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50,
    55, 60, 65, 70, 75, 80, 85, 90, 95, 99, 99.9,
)


# -----------------------------
# Scoring
# -----------------------------
LLM_BACKOFF_SECONDS: Tuple[float, ...] = (5.0, 15.0, 45.0)


def extraction_model() -> str:
    return env_str("DEALFLOW_EXTRACTION_MODEL", "gpt-4.1-mini") or "gpt-4.1-mini"


def scoring_model() -> str:
    return env_str("DEALFLOW_SCORING_MODEL", "gpt-4.1-mini") or "gpt-4.1-mini"


def debug_enabled() -> bool:
    return env_bool("DEALFLOW_DEBUG", False)
