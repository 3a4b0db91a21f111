"""Environment-driven settings for the Fizzy MCP server."""

import os

ENV_TOKEN = "FIZZY_TOKEN"
ENV_TOKEN_LEGACY = "FIZZY_ACCESS_TOKEN"  # older installs
ENV_BASE_URL = "FIZZY_BASE_URL"
ENV_ACCOUNT = "FIZZY_ACCOUNT"
ENV_LOG_LEVEL = "FIZZY_LOG_LEVEL"

DEFAULT_BASE_URL = "https://app.fizzy.do"
REQUEST_TIMEOUT = 30.0


def get_token() -> str:
    """Return the API token, preferring FIZZY_TOKEN over the legacy name."""
    return os.getenv(ENV_TOKEN) or os.getenv(ENV_TOKEN_LEGACY) or ""


def get_base_url() -> str:
    return (os.getenv(ENV_BASE_URL) or DEFAULT_BASE_URL).rstrip("/")


def get_log_level() -> str:
    return os.getenv(ENV_LOG_LEVEL, "INFO").upper()


def normalize_slug(slug: str) -> str:
    """Strip the leading slash Fizzy puts on account slugs (e.g. "/897362094")."""
    return slug.removeprefix("/")


def get_account_from_env() -> str | None:
    """Return the fallback account slug from FIZZY_ACCOUNT, or None when unset/empty."""
    raw = os.getenv(ENV_ACCOUNT, "").strip()
    if not raw:
        return None
    return normalize_slug(raw) or None
