"""In-process implementation of the index store.

Documents are held per entity namespace and matched with the same prefix-OR
semantics a full-text engine applies to compiled lexical queries: a document
matches when any word in any searchable field starts with any query prefix.
The raw score counts matched prefixes, with a small bonus per matched field,
so multi-term matches rank first.

Used for local development, tests and small deployments.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

import structlog

from ..entities import ENTITY_DESCRIPTORS, EntityDescriptor
from ..intelligence.query_parser import split_lexical_query
from ..models import EngagementSignals, EntityType, IndexHit, TagUsage
from ..ranking.relevance import record_tag_usage
from .base import IndexStore, IndexStoreQueryError

logger = structlog.get_logger("index_store.memory")

_WORD = re.compile(r"\w+", re.UNICODE)

FIELD_MATCH_BONUS = 0.01
SNIPPET_WIDTH = 64


@dataclass
class IndexedDocument:
    """A document in one namespace, with the attributes filters look at."""
    entity_id: str
    fields: Dict[str, str]
    created_at: int = 0
    author: Optional[str] = None
    kind: Optional[int] = None
    hashtags: Tuple[str, ...] = ()
    record: Dict[str, Any] = field(default_factory=dict)


def _highlight(text: str, prefixes: List[str]) -> str:
    """Wrap the first matching word in ``<mark>`` and trim around it."""
    for match in _WORD.finditer(text):
        word = match.group(0)
        if any(word.lower().startswith(p) for p in prefixes):
            start = max(match.start() - SNIPPET_WIDTH // 2, 0)
            end = min(match.end() + SNIPPET_WIDTH // 2, len(text))
            snippet = f"{text[start:match.start()]}<mark>{word}</mark>{text[match.end():end]}"
            if start > 0:
                snippet = "..." + snippet
            if end < len(text):
                snippet = snippet + "..."
            return snippet
    return text[:SNIPPET_WIDTH]


class MemoryIndexStore(IndexStore):
    """Index store backed by plain dictionaries."""

    def __init__(self):
        self._documents: Dict[str, Dict[str, IndexedDocument]] = {
            descriptor.namespace: {} for descriptor in ENTITY_DESCRIPTORS.values()
        }
        self._engagement: Dict[str, EngagementSignals] = {}
        self._tag_usage: Dict[str, TagUsage] = {}

    def add_document(
        self,
        entity_type: EntityType,
        entity_id: str,
        fields: Mapping[str, str],
        created_at: int = 0,
        author: Optional[str] = None,
        kind: Optional[int] = None,
        hashtags: Tuple[str, ...] = (),
        likes: int = 0,
        loops: int = 0,
        record: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Index (or replace) a document for an entity type."""
        descriptor = ENTITY_DESCRIPTORS[entity_type]
        unknown = set(fields) - set(descriptor.fields)
        if unknown:
            raise ValueError(
                f"Fields {sorted(unknown)} are not searchable for {entity_type.value}"
            )
        if kind is not None and not descriptor.accepts_kind(kind):
            raise ValueError(f"Kind {kind} is not a {entity_type.value} kind")

        self._documents[descriptor.namespace][entity_id] = IndexedDocument(
            entity_id=entity_id,
            fields=dict(fields),
            created_at=created_at,
            author=author,
            kind=kind,
            hashtags=tuple(tag.lower() for tag in hashtags),
            record=dict(record or {}),
        )
        if likes or loops:
            self.set_engagement(entity_id, likes=likes, loops=loops)

    def remove_document(self, entity_type: EntityType, entity_id: str) -> bool:
        namespace = ENTITY_DESCRIPTORS[entity_type].namespace
        return self._documents[namespace].pop(entity_id, None) is not None

    def set_engagement(self, entity_id: str, likes: int = 0, loops: int = 0) -> None:
        self._engagement[entity_id] = EngagementSignals(likes=likes, loops=loops)

    def record_tag(self, tag: str, now: int) -> TagUsage:
        """Count one usage of ``tag`` and make it searchable."""
        tag = tag.lower()
        usage = record_tag_usage(self._tag_usage.get(tag), tag, now)
        self._tag_usage[tag] = usage

        namespace = ENTITY_DESCRIPTORS[EntityType.HASHTAG].namespace
        self._documents[namespace][tag] = IndexedDocument(
            entity_id=tag,
            fields={"hashtag": tag},
            created_at=usage.first_seen,
        )
        return usage

    def document_count(self, entity_type: Optional[EntityType] = None) -> int:
        if entity_type is not None:
            return len(self._documents[ENTITY_DESCRIPTORS[entity_type].namespace])
        return sum(len(docs) for docs in self._documents.values())

    def _passes_filters(
        self,
        descriptor: EntityDescriptor,
        document: IndexedDocument,
        filters: Mapping[str, Any],
    ) -> bool:
        if descriptor.entity_type is EntityType.HASHTAG:
            return True

        if "author" in filters and document.author != filters["author"]:
            return False
        if "kind" in filters and document.kind != filters["kind"]:
            return False
        if "hashtags" in filters and not set(filters["hashtags"]).issubset(document.hashtags):
            return False
        if "since" in filters and document.created_at < filters["since"]:
            return False
        if "until" in filters and document.created_at > filters["until"]:
            return False

        signals = self._engagement.get(document.entity_id, EngagementSignals())
        if "min_likes" in filters and signals.likes < filters["min_likes"]:
            return False
        if "min_loops" in filters and signals.loops < filters["min_loops"]:
            return False
        return True

    async def search(
        self,
        descriptor: EntityDescriptor,
        compiled_query: str,
        filters: Mapping[str, Any],
        limit: int,
    ) -> List[IndexHit]:
        """Prefix-OR search over one namespace."""
        if descriptor.namespace not in self._documents:
            raise IndexStoreQueryError(f"Unknown namespace: {descriptor.namespace}")

        prefixes = [p.lower() for p in split_lexical_query(compiled_query)]
        if not prefixes or limit <= 0:
            return []

        hits = []
        for document in self._documents[descriptor.namespace].values():
            if not self._passes_filters(descriptor, document, filters):
                continue

            matched_prefixes = set()
            matched_fields = set()
            snippet_source = None
            for name in descriptor.fields:
                words = [w.lower() for w in _WORD.findall(document.fields.get(name, ""))]
                field_hits = {p for p in prefixes if any(w.startswith(p) for w in words)}
                if field_hits:
                    matched_prefixes |= field_hits
                    matched_fields.add(name)
                    if snippet_source is None:
                        snippet_source = document.fields[name]

            if not matched_prefixes:
                continue

            hits.append(IndexHit(
                entity_id=document.entity_id,
                score=len(matched_prefixes) + FIELD_MATCH_BONUS * len(matched_fields),
                snippet=_highlight(snippet_source, prefixes),
                match_fields=frozenset(matched_fields),
                created_at=document.created_at,
            ))

        hits.sort(key=lambda h: (h.score, h.created_at), reverse=True)

        logger.debug(
            "Memory index search completed",
            namespace=descriptor.namespace,
            query=compiled_query,
            results_count=min(len(hits), limit)
        )
        return hits[:limit]

    async def filter_matching(
        self,
        descriptor: EntityDescriptor,
        entity_ids: Iterable[str],
        filters: Mapping[str, Any],
    ) -> Set[str]:
        documents = self._documents.get(descriptor.namespace, {})
        return {
            entity_id for entity_id in entity_ids
            if entity_id in documents
            and self._passes_filters(descriptor, documents[entity_id], filters)
        }

    async def get_engagement_signals(self, entity_id: str) -> EngagementSignals:
        return self._engagement.get(entity_id, EngagementSignals())

    async def get_tag_usage(self, tag: str) -> Optional[TagUsage]:
        return self._tag_usage.get(tag.lower())

    async def get_entity(self, entity_id: str) -> Optional[Dict[str, Any]]:
        for documents in self._documents.values():
            document = documents.get(entity_id)
            if document is not None:
                return dict(document.record) or {"id": entity_id, **document.fields}
        return None

    async def health_check(self) -> bool:
        return True
