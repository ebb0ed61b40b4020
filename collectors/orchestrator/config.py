"""Configuration for the chat and research orchestrator.

Environment Variables:
    ANTHROPIC_MODEL: Claude model used for chat answers, intent
        classification and research. Defaults to "claude-sonnet-4-20250514".
    TITLE_MODEL: Model used for chat session titles. Defaults to
        "claude-haiku-4-5-20251001".
    CHAT_HISTORY_LIMIT: Messages of history loaded per chat turn (default 20).
    RETAILER_CACHE_TTL_SECONDS: Retailer search cache lifetime (default 900).
    RETAILER_CACHE_MAX_ENTRIES: Retailer search cache capacity (default 256).
    RETAILER_HTTP_TIMEOUT_SECONDS: Retailer page fetch timeout (default 15).
    WEB_SEARCH_MAX_USES: Web searches allowed per LLM call (default 5).
    USE_AI_INTENT_CLASSIFIER: Classify chat intent with the model instead
        of keyword patterns ("true"/"1"/"yes"/"on"; default off).
"""

import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_TITLE_MODEL = "claude-haiku-4-5-20251001"

DEFAULT_CHAT_HISTORY_LIMIT = 20
DEFAULT_RETAILER_CACHE_TTL_SECONDS = 15 * 60
DEFAULT_RETAILER_CACHE_MAX_ENTRIES = 256
DEFAULT_RETAILER_HTTP_TIMEOUT_SECONDS = 15.0
DEFAULT_WEB_SEARCH_MAX_USES = 5


def _positive_number(name: str, default, cast=int):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Non-positive %s=%r, using default %s", name, raw, default)
        return default
    return value


def get_model() -> str:
    """Get the Claude model used for chat and research.

    Reads from ANTHROPIC_MODEL, falling back to the default Sonnet model.
    """
    return os.environ.get("ANTHROPIC_MODEL", DEFAULT_MODEL)


def get_title_model() -> str:
    """Get the model used for session title generation."""
    return os.environ.get("TITLE_MODEL", DEFAULT_TITLE_MODEL)


def get_chat_history_limit() -> int:
    return _positive_number("CHAT_HISTORY_LIMIT", DEFAULT_CHAT_HISTORY_LIMIT)


def get_retailer_cache_ttl() -> float:
    return _positive_number(
        "RETAILER_CACHE_TTL_SECONDS", DEFAULT_RETAILER_CACHE_TTL_SECONDS, float
    )


def get_retailer_cache_max_entries() -> int:
    return _positive_number(
        "RETAILER_CACHE_MAX_ENTRIES", DEFAULT_RETAILER_CACHE_MAX_ENTRIES
    )


def get_retailer_http_timeout() -> float:
    return _positive_number(
        "RETAILER_HTTP_TIMEOUT_SECONDS", DEFAULT_RETAILER_HTTP_TIMEOUT_SECONDS, float
    )


def get_web_search_max_uses() -> int:
    return _positive_number("WEB_SEARCH_MAX_USES", DEFAULT_WEB_SEARCH_MAX_USES)


def use_ai_intent_classifier() -> bool:
    raw = os.environ.get("USE_AI_INTENT_CLASSIFIER", "false").strip().lower()
    return raw in {"1", "true", "yes", "on"}
