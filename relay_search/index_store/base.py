"""Base index store interface.

Defines the contract the search layer depends on, independent of the backing
full-text engine (in-memory, PostgreSQL, etc.). The store answers compiled
prefix-OR lexical queries per entity namespace and exposes the engagement and
hashtag usage signals used for relevance adjustment.

All methods are asynchronous to support high-throughput services.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from ..entities import EntityDescriptor
from ..models import EngagementSignals, IndexHit, TagUsage


class IndexStore(ABC):
    """Abstract base class for lexical index stores.

    Implementations must support prefix matching for the compiled query
    syntax (``term* OR term*``) and return hits ordered by descending raw
    relevance.
    """

    @abstractmethod
    async def search(
        self,
        descriptor: EntityDescriptor,
        compiled_query: str,
        filters: Mapping[str, Any],
        limit: int,
    ) -> List[IndexHit]:
        """Search one entity namespace.

        Returns
        - Up to ``limit`` hits sorted by descending raw score
        """
        pass

    @abstractmethod
    async def filter_matching(
        self,
        descriptor: EntityDescriptor,
        entity_ids: Iterable[str],
        filters: Mapping[str, Any],
    ) -> Set[str]:
        """Return the subset of ``entity_ids`` in the namespace that pass ``filters``.

        Used to hold results from other sources to the same structured
        filters as lexical hits.
        """
        pass

    @abstractmethod
    async def get_engagement_signals(self, entity_id: str) -> EngagementSignals:
        """Get interaction counters; unknown entities have zero counters."""
        pass

    @abstractmethod
    async def get_tag_usage(self, tag: str) -> Optional[TagUsage]:
        """Get usage counters for a hashtag, ``None`` when never seen."""
        pass

    @abstractmethod
    async def get_entity(self, entity_id: str) -> Optional[Dict[str, Any]]:
        """Get the full entity record by id."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the index store is healthy."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None


class IndexStoreError(Exception):
    """Base exception for index store operations."""
    pass


class IndexStoreConnectionError(IndexStoreError):
    """Connection error to the index store."""
    pass


class IndexStoreQueryError(IndexStoreError):
    """Query error in the index store."""
    pass
