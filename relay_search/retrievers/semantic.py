"""Client for the optional semantic (embedding) search source.

The semantic service answers ``POST {base_url}/api/v1/search`` with the same
result shape as the lexical index::

    {"results": [{"entity_type": "video", "entity_id": "...", "score": 0.82,
                  "snippet": "...", "created_at": 1700000000}]}

The query's structured filters are forwarded as ``filters``; the search
manager still checks semantic-only hits against the index store.

Calls are retried with exponential backoff behind a circuit breaker. Any
failure is logged and yields an empty list so hybrid search degrades to
lexical-only results.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import structlog

from ..models import EntityType, ParsedQuery, SearchResult
from .circuit_breaker import CircuitBreaker, CircuitBreakerError

logger = structlog.get_logger("retrievers.semantic")


class SemanticSourceError(Exception):
    """The semantic service returned an unusable response."""
    pass


def _parse_result(item: Dict[str, Any]) -> Optional[SearchResult]:
    entity_type = EntityType.from_value(item.get("entity_type"))
    entity_id = item.get("entity_id")
    if entity_type is None or entity_type is EntityType.ALL or not entity_id:
        return None
    return SearchResult(
        entity_type=entity_type,
        entity_id=str(entity_id),
        score=float(item.get("score") or 0.0),
        snippet=item.get("snippet"),
        match_fields=frozenset(item.get("match_fields") or ()),
        created_at=int(item.get("created_at") or 0),
    )


class SemanticSearchClient:
    """Ranked-result source backed by an external semantic search service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.25,
        retry_max_delay: float = 2.0,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.retry_attempts = max(retry_attempts, 1)
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            name="semantic_source",
            failure_threshold=5,
            recovery_timeout=30.0,
        )

    async def _call_with_retry(
        self,
        func: Callable[[], Awaitable[Any]],
        operation_name: str,
    ) -> Any:
        """Execute a coroutine-returning callable with retry and backoff."""
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await func()
            except CircuitBreakerError as cb_error:
                logger.warning(
                    "Circuit breaker open, aborting retries",
                    operation=operation_name,
                    error=str(cb_error)
                )
                raise
            except Exception as exc:
                if attempt == self.retry_attempts:
                    logger.error(
                        "Operation failed after retries",
                        operation=operation_name,
                        attempts=attempt,
                        error=str(exc)
                    )
                    raise

                delay = min(self.retry_base_delay * (2 ** (attempt - 1)), self.retry_max_delay)
                logger.warning(
                    "Operation failed, retrying",
                    operation=operation_name,
                    attempt=attempt,
                    max_attempts=self.retry_attempts,
                    delay_seconds=delay,
                    error=str(exc)
                )
                await asyncio.sleep(delay)

    async def _request(self, payload: Dict[str, Any]) -> List[SearchResult]:
        response = await self.http_client.post(f"{self.base_url}/api/v1/search", json=payload)
        if response.status_code != 200:
            raise SemanticSourceError(f"Semantic service returned status {response.status_code}")

        items = response.json().get("results", [])
        results = []
        for item in items:
            result = _parse_result(item)
            if result is not None:
                results.append(result)
        return results

    async def search(
        self,
        query: ParsedQuery,
        limit: int,
        entity_type: Optional[EntityType] = None,
    ) -> List[SearchResult]:
        """Return semantically ranked results, or ``[]`` on any failure."""
        text = " ".join(query.terms)
        if not text or limit <= 0:
            return []

        payload = {
            "query": text,
            "limit": limit,
            "entity_type": entity_type.value if entity_type else None,
            "filters": query.to_dict()["filters"],
        }

        try:
            results = await self._call_with_retry(
                lambda: self.circuit_breaker.call(lambda: self._request(payload)),
                operation_name="semantic_search",
            )
        except Exception as e:
            logger.error("Semantic search failed", error=str(e))
            return []

        logger.info("Semantic search completed", results_count=len(results))
        return results[:limit]

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()
