"""Core value types shared by the parser, rankers and search manager.

Every type here is immutable once built. A ``ParsedQuery`` is created once per
incoming query string and ``SearchResult`` values live only for the duration
of one search request.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, FrozenSet, Mapping, Optional, Tuple


class EntityType(Enum):
    """Searchable entity types.

    The enum value is what clients write after ``type:``.
    """
    USER = "user"
    VIDEO = "video"
    LIST = "list"
    HASHTAG = "hashtag"
    NOTE = "note"
    ARTICLE = "article"
    COMMUNITY = "community"
    ALL = "all"

    @classmethod
    def from_value(cls, value: Optional[str]) -> Optional["EntityType"]:
        """Map a raw ``type:`` value onto the enum, ``None`` when unknown."""
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


_EMPTY_FILTERS: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class ParsedQuery:
    """Structured form of a raw search string.

    ``filters`` only holds keys that were supplied: ``author``, ``kind``,
    ``hashtags``, ``min_likes``, ``min_loops``, ``since`` and ``until``.
    ``entity_type`` is kept verbatim and may be outside ``EntityType``.
    """
    raw: str
    terms: Tuple[str, ...] = ()
    entity_type: Optional[str] = None
    filters: Mapping[str, Any] = field(default_factory=lambda: _EMPTY_FILTERS)

    @property
    def resolved_entity_type(self) -> Optional[EntityType]:
        return EntityType.from_value(self.entity_type)

    @property
    def hashtags(self) -> Tuple[str, ...]:
        return self.filters.get("hashtags", ())

    def to_dict(self) -> dict:
        return {
            "raw": self.raw,
            "terms": list(self.terms),
            "entity_type": self.entity_type,
            "filters": {
                key: list(value) if isinstance(value, tuple) else value
                for key, value in self.filters.items()
            },
        }


@dataclass(frozen=True)
class IndexHit:
    """One raw hit returned by an index store for a single namespace."""
    entity_id: str
    score: float
    snippet: Optional[str] = None
    match_fields: FrozenSet[str] = frozenset()
    created_at: int = 0


@dataclass(frozen=True)
class SearchResult:
    """A ranked reference to an entity.

    ``score`` is only comparable within one ranking pass. ``fusion_score`` is
    set once the result has been through hybrid fusion.
    """
    entity_type: EntityType
    entity_id: str
    score: float
    snippet: Optional[str] = None
    match_fields: FrozenSet[str] = frozenset()
    created_at: int = 0
    fusion_score: Optional[float] = None

    def with_scores(self, score: float, fusion_score: Optional[float] = None) -> "SearchResult":
        return replace(self, score=score, fusion_score=fusion_score)

    def to_dict(self) -> dict:
        return {
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "score": self.score,
            "snippet": self.snippet,
            "match_fields": sorted(self.match_fields),
            "created_at": self.created_at,
            "fusion_score": self.fusion_score,
        }


@dataclass(frozen=True)
class EngagementSignals:
    """Interaction counters for content-like entities."""
    likes: int = 0
    loops: int = 0


@dataclass(frozen=True)
class TagUsage:
    """Usage counters for a single hashtag."""
    tag: str
    usage_count: int = 0
    first_seen: int = 0
    last_seen: int = 0
