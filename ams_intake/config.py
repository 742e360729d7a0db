"""Centralized configuration for the AMS Intake Assistant.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/ams-intake/<VARIABLE_NAME>``.

Every credential is optional.  A missing completion key is an expected
state during setup and makes the chat endpoint answer with a canned
"not configured" reply; missing search or EMR settings simply disable
those collaborators.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_ROOT = Path(__file__).resolve().parent.parent

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 (lazy: only needed on AWS)

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/ams-intake/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _optional_secret(name: str) -> str:
    """Return a secret from env-var or SSM, or ``""`` when it is not set."""
    value = (os.getenv(name) or "").strip()
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value.strip()

    return ""


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _optional_secret("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
LLM_TEMPERATURE: float = _env_float("LLM_TEMPERATURE", 1.0)
LLM_TIMEOUT_SECONDS: float = _env_float("LLM_TIMEOUT_SECONDS", 60.0)

# Client-requested output tokens never go below this floor
DEFAULT_MAX_COMPLETION_TOKENS: int = _env_int("DEFAULT_MAX_COMPLETION_TOKENS", 2048)
MAX_COMPLETION_TOKENS_CEILING: int = _env_int("MAX_COMPLETION_TOKENS_CEILING", 8192)

# ── Conversation ────────────────────────────────────────────────────
MAX_HISTORY_TURNS: int = _env_int("MAX_HISTORY_TURNS", 24)
NUDGE_MIN_QUESTIONS: int = _env_int("NUDGE_MIN_QUESTIONS", 3)

# ── Data artifacts ──────────────────────────────────────────────────
DATA_DIR: Path = Path(os.getenv("DATA_DIR", str(_ROOT / "data")))
PROVIDERS_FILE: str = os.getenv("PROVIDERS_FILE", "providers.txt")
SCHEDULE_FILE: str = os.getenv("SCHEDULE_FILE", "provider_schedule.txt")
PROMPTS_DIR: Path = Path(os.getenv("PROMPTS_DIR", str(_ROOT / "prompts")))
RELOAD_DATA_EACH_REQUEST: bool = os.getenv("RELOAD_DATA_EACH_REQUEST", "false").lower() == "true"

# ── Matching & context rendering ────────────────────────────────────
REFERENCE_TIMEZONE: str = os.getenv("REFERENCE_TIMEZONE", "America/Phoenix")
CONTEXT_CHAR_BUDGET: int = _env_int("CONTEXT_CHAR_BUDGET", 6000)
AVAILABILITY_INDEX_CHAR_BUDGET: int = _env_int("AVAILABILITY_INDEX_CHAR_BUDGET", 4000)
CONTEXT_MAX_PROVIDERS: int = _env_int("CONTEXT_MAX_PROVIDERS", 10)
PROVIDERS_PER_ROLE: int = _env_int("PROVIDERS_PER_ROLE", 4)
SLOTS_PER_PROVIDER: int = _env_int("SLOTS_PER_PROVIDER", 3)

# ── Optional semantic search (Azure AI Search) ──────────────────────
AZURE_SEARCH_ENDPOINT: str = os.getenv("AZURE_SEARCH_ENDPOINT", "").strip().rstrip("/")
AZURE_SEARCH_INDEX: str = os.getenv("AZURE_SEARCH_INDEX", "").strip()
AZURE_SEARCH_API_KEY: str = _optional_secret("AZURE_SEARCH_API_KEY")
AZURE_SEARCH_SEMANTIC_CONFIG: str = os.getenv("AZURE_SEARCH_SEMANTIC_CONFIG", "").strip()
AZURE_SEARCH_API_VERSION: str = os.getenv("AZURE_SEARCH_API_VERSION", "2023-11-01")

# ── Optional EMR directory service ──────────────────────────────────
EMR_BASE_URL: str = os.getenv("EMR_BASE_URL", "").strip().rstrip("/")
EMR_API_KEY: str = _optional_secret("EMR_API_KEY")
# Provider lists from the EMR are reused for this long
EMR_CACHE_TTL_SECONDS: int = _env_int("EMR_CACHE_TTL_SECONDS", 300)
EMR_CACHE_MAX_ENTRIES: int = _env_int("EMR_CACHE_MAX_ENTRIES", 128)

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = _env_int("SERVER_PORT", 8000)
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")


def llm_configured() -> bool:
    """True when the completion capability has credentials."""
    return bool(ANTHROPIC_API_KEY)


def search_configured() -> bool:
    """True when the optional retrieval capability is fully configured."""
    return bool(AZURE_SEARCH_ENDPOINT and AZURE_SEARCH_INDEX and AZURE_SEARCH_API_KEY)


def emr_configured() -> bool:
    """True when the live EMR directory service can be queried."""
    return bool(EMR_BASE_URL and EMR_API_KEY)
