"""HTTP client for the practice's EMR directory service.

Two read-only endpoints are used, both authenticated with a Bearer
token:

* ``GET /providers?insurance=&specialty=&location=`` - provider list
* ``GET /schedule?prov=``                             - open slots

The EMR is an optional, live alternative to the local data files.  Any
answer that is not a JSON list is treated as "no data" so callers fall
back to the parsed directory.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import httpx

from ams_intake import config
from ams_intake.services.cache import TTLCache
from ams_intake.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 10.0

# ── Cache key prefixes ──────────────────────────────────────────────
_CK_PROVIDERS = "emr_providers:"


class EMRAPIError(Exception):
    """Raised when an EMR API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class EMRClient:
    """Thin wrapper around the EMR REST API with automatic retries.

    Provider lists are cached per query in a :class:`TTLCache` for
    ``EMR_CACHE_TTL_SECONDS``; the schedule is **never** cached because
    openings change in real time.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        cache: TTLCache | None = None,
    ):
        self._base_url = (base_url or config.EMR_BASE_URL).rstrip("/")
        self._api_key = api_key or config.EMR_API_KEY
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        if cache is None:
            cache = TTLCache(config.EMR_CACHE_TTL_SECONDS, config.EMR_CACHE_MAX_ENTRIES)
        self._cache = cache

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(self, path: str, *, params: dict[str, str] | None = None) -> Any:
        """GET *path* with exponential-backoff retries on 5xx/timeouts."""
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = self._client.get(path, params=params)
                if response.status_code >= 400:
                    raise EMRAPIError(
                        f"EMR error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                return response.json()

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                logger.warning(
                    "EMR attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except EMRAPIError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning("EMR server error on attempt %d/%d", attempt, MAX_RETRIES)
                else:
                    raise  # 4xx errors are not retried
            except ValueError as exc:
                raise EMRAPIError(f"EMR returned a non-JSON body: {exc}") from exc

            if attempt < MAX_RETRIES:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise EMRAPIError(f"EMR request failed after {MAX_RETRIES} retries: {last_error}")

    # ── Public API methods ───────────────────────────────────────────

    def list_providers(self, params: dict[str, str] | None = None) -> list[dict[str, Any]] | None:
        """Providers matching *params* (cached), or ``None`` for a non-list answer.

        Empty parameter values are not sent.
        """
        query = {k: v for k, v in (params or {}).items() if v}
        cache_key = _CK_PROVIDERS + "&".join(f"{k}={query[k]}" for k in sorted(query))
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        with metrics.track("emr", "list_providers"):
            data = self._request("/providers", params=query)
        if not isinstance(data, list):
            logger.warning("EMR /providers returned %s, expected a list", type(data).__name__)
            return None

        self._cache.put(cache_key, data)
        return data

    def get_schedule(self, prov: str = "") -> list[dict[str, Any]] | None:
        """Open slots, optionally for one provider.  **Not cached.**"""
        params = {"prov": prov} if prov else None
        with metrics.track("emr", "get_schedule"):
            data = self._request("/schedule", params=params)
        if not isinstance(data, list):
            logger.warning("EMR /schedule returned %s, expected a list", type(data).__name__)
            return None
        return data

    def invalidate(self) -> int:
        """Drop cached provider lists."""
        return self._cache.invalidate_prefix(_CK_PROVIDERS)


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: EMRClient | None = None
_client_lock = threading.Lock()


def get_emr_client() -> EMRClient | None:
    """Return the shared client, or ``None`` when the EMR is not configured.

    Uses double-checked locking so that the lock is only acquired during
    the first initialisation.
    """
    global _client
    if not config.emr_configured():
        return None
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = EMRClient()
    return _client
