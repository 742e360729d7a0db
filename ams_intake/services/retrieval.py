"""Optional semantic retrieval over Azure AI Search.

``retrieve(query)`` returns a handful of ``{text, source, score}``
snippets used to ground answers about the practice.  The capability is
optional: without configuration no client is built and the assistant
runs without snippets.

Azure AI Search REST docs:
https://learn.microsoft.com/rest/api/searchservice/documents/search-post
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from ams_intake import config
from ams_intake.services.metrics import metrics

logger = logging.getLogger(__name__)

MAX_RETRIES = 2
INITIAL_BACKOFF_SECONDS = 0.5
REQUEST_TIMEOUT_SECONDS = 8.0
DEFAULT_TOP = 3

_TEXT_FIELDS = ("content", "chunk", "text", "body")
_SOURCE_FIELDS = ("source", "title", "metadata_storage_name", "url", "id")


class RetrievalError(Exception):
    """Raised when a search call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class Snippet:
    text: str
    source: str
    score: float


class SearchClient:
    """Thin wrapper around the Azure AI Search ``docs/search`` endpoint."""

    def __init__(
        self,
        endpoint: str,
        index: str,
        api_key: str,
        *,
        semantic_config: str = "",
        api_version: str = "2023-11-01",
        top: int = DEFAULT_TOP,
    ):
        self._index = index
        self._semantic_config = semantic_config
        self._api_version = api_version
        self._top = top
        self._client = httpx.Client(
            base_url=endpoint.rstrip("/"),
            headers={"api-key": api_key, "Content-Type": "application/json"},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    def _request(self, body: dict[str, Any]) -> dict[str, Any]:
        """POST a search with exponential-backoff retries on 5xx/timeouts."""
        path = f"/indexes/{self._index}/docs/search"
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = self._client.post(
                    path, params={"api-version": self._api_version}, json=body,
                )
                if response.status_code >= 400:
                    raise RetrievalError(
                        f"Search error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                return response.json()

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                logger.warning(
                    "Search attempt %d/%d failed (%s)", attempt, MAX_RETRIES, type(exc).__name__,
                )
            except RetrievalError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning("Search server error on attempt %d/%d", attempt, MAX_RETRIES)
                else:
                    raise

            if attempt < MAX_RETRIES:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise RetrievalError(f"Search failed after {MAX_RETRIES} attempts: {last_error}")

    def retrieve(self, query: str) -> list[Snippet]:
        """Return up to ``top`` snippets for *query*, best first."""
        query = (query or "").strip()
        if not query:
            return []

        body: dict[str, Any] = {"search": query, "top": self._top}
        if self._semantic_config:
            body.update({"queryType": "semantic", "semanticConfiguration": self._semantic_config})

        with metrics.track("azure_search", "docs/search"):
            data = self._request(body)

        snippets: list[Snippet] = []
        for doc in data.get("value", [])[: self._top]:
            text = next((str(doc[f]) for f in _TEXT_FIELDS if doc.get(f)), "")
            if not text.strip():
                continue
            source = next((str(doc[f]) for f in _SOURCE_FIELDS if doc.get(f)), "search")
            score = doc.get("@search.rerankerScore") or doc.get("@search.score") or 0.0
            snippets.append(Snippet(text=text.strip(), source=source, score=float(score)))
        return snippets


def build_search_client() -> SearchClient | None:
    """Client from configuration, or ``None`` when search is not set up."""
    if not config.search_configured():
        return None
    return SearchClient(
        config.AZURE_SEARCH_ENDPOINT,
        config.AZURE_SEARCH_INDEX,
        config.AZURE_SEARCH_API_KEY,
        semantic_config=config.AZURE_SEARCH_SEMANTIC_CONFIG,
        api_version=config.AZURE_SEARCH_API_VERSION,
    )
