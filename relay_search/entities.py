"""Entity type descriptors.

Every searchable entity type is described once here: the index namespace it
lives in, the fields that are matched, the event kinds it covers, how its raw
score is adjusted and how a hit is shaped into a ``SearchResult``. Search code
dispatches on the descriptor instead of keeping one routine per type.

Unified search splits its result budget across types using ``UNIFIED_QUOTAS``.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from .models import EntityType, IndexHit, ParsedQuery, SearchResult


class Adjustment(Enum):
    """Relevance adjustment applied to an entity type's raw scores."""
    NONE = "none"
    ENGAGEMENT = "engagement"
    TREND = "trend"


def _default_shape(descriptor: "EntityDescriptor", hit: IndexHit, score: float) -> SearchResult:
    return SearchResult(
        entity_type=descriptor.entity_type,
        entity_id=hit.entity_id,
        score=score,
        snippet=hit.snippet,
        match_fields=hit.match_fields or frozenset(descriptor.fields),
        created_at=hit.created_at,
    )


def _hashtag_shape(descriptor: "EntityDescriptor", hit: IndexHit, score: float) -> SearchResult:
    return SearchResult(
        entity_type=descriptor.entity_type,
        entity_id=hit.entity_id,
        score=score,
        snippet=hit.snippet or f"#{hit.entity_id}",
        match_fields=frozenset({"hashtag"}),
        created_at=hit.created_at,
    )


def _free_terms(query: ParsedQuery) -> List[str]:
    return list(query.terms)


def _hashtag_terms(query: ParsedQuery) -> List[str]:
    # Tags are indexed lower-cased; ``#bit`` autocompletes like a free term
    return [term.lower() for term in query.terms] + list(query.hashtags)


def _score_order(query: ParsedQuery) -> Callable[[SearchResult], Tuple]:
    return lambda result: (result.score, result.created_at)


def _hashtag_order(query: ParsedQuery) -> Callable[[SearchResult], Tuple]:
    # Exact tag, then prefix matches, then trend
    terms = _hashtag_terms(query)

    def key(result: SearchResult) -> Tuple:
        tag = result.entity_id
        return (
            tag in terms,
            any(tag.startswith(term) for term in terms),
            result.score,
            result.created_at,
        )

    return key


@dataclass(frozen=True)
class EntityDescriptor:
    """Static description of one searchable entity type."""
    entity_type: EntityType
    namespace: str
    fields: Tuple[str, ...]
    kinds: Tuple[int, ...] = ()
    adjustment: Adjustment = Adjustment.NONE
    shaper: Callable[["EntityDescriptor", IndexHit, float], SearchResult] = _default_shape
    term_extractor: Callable[[ParsedQuery], List[str]] = _free_terms
    ordering: Callable[[ParsedQuery], Callable[[SearchResult], Tuple]] = _score_order

    def shape(self, hit: IndexHit, score: float) -> SearchResult:
        return self.shaper(self, hit, score)

    def query_terms(self, query: ParsedQuery) -> List[str]:
        """Terms this entity type compiles into its lexical query."""
        return self.term_extractor(query)

    def accepts_kind(self, kind: int) -> bool:
        """Whether events of ``kind`` belong to this namespace."""
        return not self.kinds or kind in self.kinds

    def sort_key(self, query: ParsedQuery) -> Callable[[SearchResult], Tuple]:
        """Descending sort key for this type's results."""
        return self.ordering(query)


ENTITY_DESCRIPTORS: Dict[EntityType, EntityDescriptor] = {
    EntityType.USER: EntityDescriptor(
        entity_type=EntityType.USER,
        namespace="users_fts",
        fields=("name", "display_name", "about", "nip05"),
        kinds=(0,),
    ),
    EntityType.VIDEO: EntityDescriptor(
        entity_type=EntityType.VIDEO,
        namespace="videos_fts",
        fields=("title", "description", "summary", "content"),
        kinds=(34235, 34236),
        adjustment=Adjustment.ENGAGEMENT,
    ),
    EntityType.LIST: EntityDescriptor(
        entity_type=EntityType.LIST,
        namespace="lists_fts",
        fields=("name", "description", "content"),
        kinds=(10000, 10001, 10002, 10003, 30000, 30001, 30002, 30003),
    ),
    EntityType.HASHTAG: EntityDescriptor(
        entity_type=EntityType.HASHTAG,
        namespace="hashtags_fts",
        fields=("hashtag",),
        adjustment=Adjustment.TREND,
        shaper=_hashtag_shape,
        term_extractor=_hashtag_terms,
        ordering=_hashtag_order,
    ),
    EntityType.NOTE: EntityDescriptor(
        entity_type=EntityType.NOTE,
        namespace="notes_fts",
        fields=("content",),
        kinds=(1,),
        adjustment=Adjustment.ENGAGEMENT,
    ),
    EntityType.ARTICLE: EntityDescriptor(
        entity_type=EntityType.ARTICLE,
        namespace="articles_fts",
        fields=("title", "summary", "content"),
        kinds=(30023,),
        adjustment=Adjustment.ENGAGEMENT,
    ),
    EntityType.COMMUNITY: EntityDescriptor(
        entity_type=EntityType.COMMUNITY,
        namespace="communities_fts",
        fields=("name", "description"),
        kinds=(34550,),
    ),
}

# Share of the requested limit reserved per type in unified search
VIDEO_QUOTA = 0.35
NOTE_QUOTA = 0.25
USER_QUOTA = 0.15
LIST_QUOTA = 0.10
ARTICLE_QUOTA = 0.10
COMMUNITY_QUOTA = 0.05

UNIFIED_QUOTAS: Dict[EntityType, float] = {
    EntityType.VIDEO: VIDEO_QUOTA,
    EntityType.NOTE: NOTE_QUOTA,
    EntityType.USER: USER_QUOTA,
    EntityType.LIST: LIST_QUOTA,
    EntityType.ARTICLE: ARTICLE_QUOTA,
    EntityType.COMMUNITY: COMMUNITY_QUOTA,
}


def get_descriptor(entity_type: EntityType) -> Optional[EntityDescriptor]:
    return ENTITY_DESCRIPTORS.get(entity_type)


def quota_limit(limit: int, fraction: float) -> int:
    """Per-type sub-limit, always rounded up."""
    if limit <= 0 or fraction <= 0:
        return 0
    return math.ceil(round(limit * fraction, 9))
