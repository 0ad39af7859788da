"""Search manager for relay search.

Turns a raw query string into one ordered result list:

1. parse the string into a ``ParsedQuery``
2. pick a strategy: a single entity type, or unified search across types
3. run the per-type lexical searches (concurrently for unified search)
4. adjust raw scores, merge and truncate
5. optionally fuse with the semantic source using Reciprocal Rank Fusion

A failing, empty or timed-out sub-search contributes nothing; the manager
always returns a (possibly empty) list.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Iterable, List, Optional

import structlog

from ..common.config import SearchConfig
from ..common.logging import log_performance
from ..common.metrics import MetricsCollector
from ..entities import UNIFIED_QUOTAS, get_descriptor, quota_limit
from ..index_store.base import IndexStore
from ..intelligence.query_parser import build_lexical_query, parse_query
from ..models import EntityType, ParsedQuery, SearchResult
from ..ranking.fusion import create_fusion_algorithm
from ..ranking.relevance import RelevanceAdjuster

logger = structlog.get_logger("search_service.search_manager")

UNIFIED = "unified"
SINGLE = "single"


@dataclass(frozen=True)
class SearchStrategy:
    """Which search path a query takes."""
    kind: str
    entity_type: Optional[EntityType] = None


def choose_strategy(query: ParsedQuery) -> SearchStrategy:
    """Pick single-type or unified search for a parsed query.

    Absent ``type:`` and ``type:all`` search every type. Unknown type values
    also fall back to unified search rather than returning nothing.
    """
    if query.entity_type is None:
        return SearchStrategy(UNIFIED)

    resolved = query.resolved_entity_type
    if resolved is EntityType.ALL:
        return SearchStrategy(UNIFIED)
    if resolved is None:
        logger.warning(
            "Unknown entity type, falling back to unified search",
            entity_type=query.entity_type
        )
        return SearchStrategy(UNIFIED)
    return SearchStrategy(SINGLE, resolved)


def rank_results(results: Iterable[SearchResult], limit: int) -> List[SearchResult]:
    """Sort by score, then recency, both descending; keep ``limit``."""
    ordered = sorted(results, key=lambda r: (r.score, r.created_at), reverse=True)
    return ordered[:max(limit, 0)]


class SearchManager:
    """Coordinates parsing, per-type searches, merging and fusion.

    Responsibilities
    - Hold the index store, the optional semantic source and the adjuster
    - Fan unified searches out under per-type quotas
    - Isolate backend failures per sub-search
    """

    def __init__(
        self,
        index_store: IndexStore,
        config: Optional[SearchConfig] = None,
        semantic_source=None,
        adjuster: Optional[RelevanceAdjuster] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Construct a search manager.

        Parameters
        - index_store: Lexical index store used for every entity type
        - config: ``SearchConfig`` with limits, fan-out and fusion settings
        - semantic_source: Optional source with an async ``search`` method
        - adjuster: Relevance adjuster; built on ``index_store`` if omitted
        - metrics: Optional ``MetricsCollector``
        """
        self.config = config or SearchConfig()
        self.index_store = index_store
        self.semantic_source = semantic_source
        self.adjuster = adjuster or RelevanceAdjuster(index_store)
        self.metrics = metrics
        self.fusion_algorithm = create_fusion_algorithm(
            "rrf",
            k=self.config.relay_search_rrf_k,
            secondary_boost=self.config.relay_search_semantic_boost,
        )

        max_concurrency = self.config.relay_search_max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency > 0 else None

    def _resolve_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            limit = self.config.relay_search_default_limit
        return max(min(limit, self.config.relay_search_max_limit), 0)

    async def search(
        self,
        raw_query: str,
        limit: Optional[int] = None,
        semantic: bool = False,
        timeout: Optional[float] = None,
    ) -> List[SearchResult]:
        """Parse ``raw_query`` and search it."""
        return await self.search_parsed(parse_query(raw_query), limit, semantic, timeout)

    async def search_parsed(
        self,
        query: ParsedQuery,
        limit: Optional[int] = None,
        semantic: bool = False,
        timeout: Optional[float] = None,
    ) -> List[SearchResult]:
        """Search an already parsed query.

        With ``semantic`` and a configured semantic source, twice ``limit``
        candidates are taken from each source before fusion. ``timeout``
        bounds every source; a source that misses it contributes nothing.
        """
        start_time = time.time()
        limit = self._resolve_limit(limit)
        if timeout is None:
            timeout = self.config.relay_search_timeout_seconds

        strategy = choose_strategy(query)
        if limit == 0:
            return []

        use_semantic = semantic and self.semantic_source is not None
        candidate_limit = limit * 2 if use_semantic else limit

        if strategy.kind == UNIFIED:
            lexical = self.unified_search(query, candidate_limit, timeout)
        else:
            lexical = self._with_deadline(
                self.search_entity_type(strategy.entity_type, query, candidate_limit),
                timeout,
                strategy.entity_type.value,
            )

        if use_semantic:
            results, semantic_results = await asyncio.gather(
                lexical,
                self._with_deadline(
                    self._semantic_search(query, candidate_limit, strategy.entity_type),
                    timeout,
                    "semantic",
                ),
            )
            semantic_results = await self._filter_secondary(
                query, strategy, semantic_results, results
            )
            results = self.fusion_algorithm.fuse_results(results, semantic_results, limit)
            if self.metrics:
                self.metrics.record_fusion(self.fusion_algorithm.name)
        else:
            results = (await lexical)[:limit]

        duration = time.time() - start_time
        if self.metrics:
            self.metrics.record_search(strategy.kind, duration, len(results))
        log_performance(
            "search",
            duration * 1000,
            strategy=strategy.kind,
            entity_type=strategy.entity_type.value if strategy.entity_type else None,
            semantic=use_semantic,
            results_count=len(results)
        )
        return results

    async def search_entity_type(
        self,
        entity_type: EntityType,
        query: ParsedQuery,
        limit: int,
    ) -> List[SearchResult]:
        """Search one entity type; backend errors yield ``[]``."""
        descriptor = get_descriptor(entity_type)
        if descriptor is None or limit <= 0:
            return []

        kind = query.filters.get("kind")
        if kind is not None and not descriptor.accepts_kind(kind):
            return []

        compiled_query = build_lexical_query(descriptor.query_terms(query))
        if not compiled_query:
            # No lexical constraint means no results, never a full scan
            return []

        try:
            hits = await self.index_store.search(descriptor, compiled_query, query.filters, limit)
            results = await self.adjuster.adjust(descriptor, hits)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Entity type search failed",
                entity_type=entity_type.value,
                query=compiled_query,
                error=str(e)
            )
            if self.metrics:
                self.metrics.record_subsearch_failure(entity_type.value, "error")
            return []

        logger.debug(
            "Entity type search completed",
            entity_type=entity_type.value,
            results_count=len(results)
        )
        ordered = sorted(results, key=descriptor.sort_key(query), reverse=True)
        return ordered[:limit]

    async def _with_deadline(
        self,
        search: Awaitable[List[SearchResult]],
        timeout: Optional[float],
        source: str,
    ) -> List[SearchResult]:
        if timeout is None:
            return await search
        try:
            return await asyncio.wait_for(search, timeout)
        except asyncio.TimeoutError:
            logger.warning("Search source timed out", source=source, timeout=timeout)
            if self.metrics:
                self.metrics.record_subsearch_failure(source, "timeout")
            return []

    async def _bounded(self, entity_type: EntityType, query: ParsedQuery, limit: int) -> List[SearchResult]:
        if self._semaphore is None:
            return await self.search_entity_type(entity_type, query, limit)
        async with self._semaphore:
            return await self.search_entity_type(entity_type, query, limit)

    async def unified_search(
        self,
        query: ParsedQuery,
        limit: int,
        timeout: Optional[float] = None,
    ) -> List[SearchResult]:
        """Search every quota-bearing entity type and merge.

        Each type gets ``ceil(limit * quota)`` results. Sub-searches run as
        independent tasks; those still pending after ``timeout`` seconds are
        cancelled and contribute nothing.
        """
        if limit <= 0:
            return []

        tasks: Dict[asyncio.Task, EntityType] = {}
        for entity_type, fraction in UNIFIED_QUOTAS.items():
            sub_limit = quota_limit(limit, fraction)
            if sub_limit > 0:
                task = asyncio.create_task(self._bounded(entity_type, query, sub_limit))
                tasks[task] = entity_type

        if not tasks:
            return []

        done, pending = await asyncio.wait(tasks.keys(), timeout=timeout)

        for task in pending:
            task.cancel()
            logger.warning(
                "Entity type search timed out",
                entity_type=tasks[task].value,
                timeout=timeout
            )
            if self.metrics:
                self.metrics.record_subsearch_failure(tasks[task].value, "timeout")
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        collected: List[SearchResult] = []
        per_type: Dict[str, int] = {}
        for task, entity_type in tasks.items():
            if task not in done or task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                logger.error(
                    "Entity type search raised",
                    entity_type=entity_type.value,
                    error=str(error)
                )
                continue
            results = task.result()
            per_type[entity_type.value] = len(results)
            collected.extend(results)

        merged = rank_results(collected, limit)

        logger.info(
            "Unified search completed",
            limit=limit,
            per_type=per_type,
            timed_out=len(pending),
            results_count=len(merged)
        )
        return merged

    async def _semantic_search(
        self,
        query: ParsedQuery,
        limit: int,
        entity_type: Optional[EntityType],
    ) -> List[SearchResult]:
        try:
            return await self.semantic_source.search(query, limit, entity_type=entity_type)
        except Exception as e:
            logger.error("Semantic search failed", error=str(e))
            if self.metrics:
                self.metrics.record_subsearch_failure("semantic", "error")
            return []

    async def _filter_secondary(
        self,
        query: ParsedQuery,
        strategy: SearchStrategy,
        results: List[SearchResult],
        lexical: List[SearchResult],
    ) -> List[SearchResult]:
        """Hold semantic hits to the query's type and structured filters.

        Hits the lexical side already returned have passed the filters. The
        rest are checked against the index store; anything that cannot be
        confirmed is dropped.
        """
        if strategy.entity_type is not None:
            results = [r for r in results if r.entity_type is strategy.entity_type]
        if not query.filters or not results:
            return results

        confirmed = {(r.entity_type, r.entity_id) for r in lexical}
        unconfirmed: Dict[EntityType, List[str]] = {}
        for result in results:
            if (result.entity_type, result.entity_id) not in confirmed:
                unconfirmed.setdefault(result.entity_type, []).append(result.entity_id)

        kind = query.filters.get("kind")
        for entity_type, entity_ids in unconfirmed.items():
            descriptor = get_descriptor(entity_type)
            if descriptor is None or (kind is not None and not descriptor.accepts_kind(kind)):
                continue
            try:
                matching = await self.index_store.filter_matching(descriptor, entity_ids, query.filters)
            except Exception as e:
                logger.warning(
                    "Filter check for semantic hits failed, dropping them",
                    entity_type=entity_type.value,
                    error=str(e)
                )
                continue
            confirmed.update((entity_type, entity_id) for entity_id in matching)

        kept = [r for r in results if (r.entity_type, r.entity_id) in confirmed]
        if len(kept) < len(results):
            logger.debug(
                "Dropped semantic hits failing filters",
                dropped=len(results) - len(kept)
            )
        return kept

    async def hydrate(self, results: List[SearchResult]) -> List[Optional[Dict[str, Any]]]:
        """Fetch full entity records for results, ``None`` where missing."""
        records: List[Optional[Dict[str, Any]]] = []
        for result in results:
            try:
                records.append(await self.index_store.get_entity(result.entity_id))
            except Exception as e:
                logger.warning("Entity lookup failed", entity_id=result.entity_id, error=str(e))
                records.append(None)
        return records

    async def health_check(self) -> bool:
        try:
            return await self.index_store.health_check()
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            return False

    async def cleanup(self) -> None:
        """Close the index store and semantic source."""
        try:
            await self.index_store.close()
        except Exception as e:
            logger.error("Index store close failed", error=str(e))

        if self.semantic_source is not None and hasattr(self.semantic_source, "close"):
            try:
                await self.semantic_source.close()
            except Exception as e:
                logger.error("Semantic source close failed", error=str(e))

        logger.info("Search manager cleanup completed")
