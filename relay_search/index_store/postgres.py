"""PostgreSQL implementation of the index store.

Each entity namespace is a table named after the descriptor namespace
(``users_fts``, ``videos_fts``, ...) holding ``entity_id``, ``created_at``,
``pubkey``, ``kind``, ``hashtags text[]`` and one text column per searchable
field. Engagement counters live in ``engagement_stats(entity_id, likes,
loops)``, hashtag usage in ``hashtag_stats(hashtag, total_usage, first_seen,
last_seen)`` and full events in ``events``.

The compiled prefix-OR query (``bit* OR coin*``) is re-expressed as
``to_tsquery('simple', 'bit:* | coin:*')`` and ranked with ``ts_rank``.

Connection management
- A shared asyncpg pool is created on demand and reused across calls
- Queries are funneled through ``_execute_query`` for uniform error handling
"""

import json
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

import asyncpg
from asyncpg import Pool
import structlog

from ..entities import EntityDescriptor
from ..intelligence.query_parser import split_lexical_query
from ..models import EngagementSignals, EntityType, IndexHit, TagUsage
from .base import IndexStore, IndexStoreConnectionError, IndexStoreQueryError

logger = structlog.get_logger("index_store.postgres")

_NON_WORD = re.compile(r"[^\w]+", re.UNICODE)


def to_tsquery_expression(compiled_query: str) -> str:
    """Translate ``a* OR b*`` into the ``tsquery`` text ``a:* | b:*``.

    Characters with meaning in ``tsquery`` syntax are stripped from each
    prefix; prefixes left empty are skipped.
    """
    prefixes = []
    for prefix in split_lexical_query(compiled_query):
        cleaned = _NON_WORD.sub("", prefix).lower()
        if cleaned:
            prefixes.append(f"{cleaned}:*")
    return " | ".join(prefixes)


def _filter_clauses(
    descriptor: EntityDescriptor,
    filters: Mapping[str, Any],
    param_count: int,
) -> Tuple[str, List[Any]]:
    """Namespace kind constraint plus structured filter predicates.

    Filter parameters are numbered from ``param_count + 1``. Kinds come
    from the static descriptor and are inlined.
    """
    sql = ""
    params: List[Any] = []

    if descriptor.entity_type is EntityType.HASHTAG:
        return sql, params

    if descriptor.kinds:
        sql += " AND d.kind IN ({})".format(", ".join(str(kind) for kind in descriptor.kinds))

    clauses = (
        ("author", "d.pubkey = ${}"),
        ("kind", "d.kind = ${}"),
        ("hashtags", "d.hashtags @> ${}::text[]"),
        ("since", "d.created_at >= ${}"),
        ("until", "d.created_at <= ${}"),
        ("min_likes", "COALESCE(s.likes, 0) >= ${}"),
        ("min_loops", "COALESCE(s.loops, 0) >= ${}"),
    )
    for name, clause in clauses:
        if name in filters:
            param_count += 1
            sql += " AND " + clause.format(param_count)
            value = filters[name]
            params.append(list(value) if name == "hashtags" else value)

    return sql, params


def build_search_sql(
    descriptor: EntityDescriptor,
    filters: Mapping[str, Any],
) -> Tuple[str, List[Any]]:
    """Build the namespace query; ``$1`` is the tsquery, ``$2`` the limit.

    Table and column names come from the static descriptor, never from
    client input.
    """
    document = "concat_ws(' ', {})".format(", ".join(f"d.{name}" for name in descriptor.fields))
    sql = f"""
        SELECT d.entity_id,
               d.created_at,
               ts_rank(to_tsvector('simple', {document}), to_tsquery('simple', $1)) AS rank,
               ts_headline('simple', {document}, to_tsquery('simple', $1),
                           'StartSel=<mark>, StopSel=</mark>, MaxFragments=1, MaxWords=24') AS snippet
        FROM {descriptor.namespace} d
        LEFT JOIN engagement_stats s ON s.entity_id = d.entity_id
        WHERE to_tsvector('simple', {document}) @@ to_tsquery('simple', $1)
    """

    filter_sql, params = _filter_clauses(descriptor, filters, 2)
    sql += filter_sql

    sql += " ORDER BY rank DESC, d.created_at DESC LIMIT $2"
    return sql, params


def build_match_sql(
    descriptor: EntityDescriptor,
    filters: Mapping[str, Any],
) -> Tuple[str, List[Any]]:
    """Build the filter check for known ids; ``$1`` is the id array."""
    sql = f"""
        SELECT d.entity_id
        FROM {descriptor.namespace} d
        LEFT JOIN engagement_stats s ON s.entity_id = d.entity_id
        WHERE d.entity_id = ANY($1::text[])
    """
    filter_sql, params = _filter_clauses(descriptor, filters, 1)
    return sql + filter_sql, params


class PostgresIndexStore(IndexStore):
    """asyncpg-backed index store."""

    def __init__(
        self,
        dsn: str,
        pool_size: int = 10,
        command_timeout: int = 30,
    ):
        """Configure a PostgreSQL-backed index store.

        Parameters
        - dsn: PostgreSQL DSN including database and credentials
        - pool_size: Max size of asyncpg connection pool
        - command_timeout: Seconds to allow per DB command
        """
        self.dsn = dsn
        self.pool_size = pool_size
        self.command_timeout = command_timeout
        self._pool: Optional[Pool] = None

    async def _get_pool(self) -> Pool:
        """Get or create the connection pool lazily."""
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=1,
                    max_size=self.pool_size,
                    command_timeout=self.command_timeout,
                )
                logger.info("Created index store connection pool", pool_size=self.pool_size)
            except Exception as e:
                logger.error("Failed to create index store connection pool", error=str(e))
                raise IndexStoreConnectionError(f"Failed to create connection pool: {e}")

        return self._pool

    async def _execute_query(
        self,
        query: str,
        *args: Any,
        fetch: bool = False,
        fetch_one: bool = False
    ) -> Any:
        """Execute a query, wrapping failures in ``IndexStoreQueryError``."""
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                if fetch_one:
                    return await conn.fetchrow(query, *args)
                if fetch:
                    return await conn.fetch(query, *args)
                return await conn.execute(query, *args)
        except Exception as e:
            logger.error("Query execution failed", query=query, error=str(e))
            raise IndexStoreQueryError(f"Query failed: {e}")

    async def search(
        self,
        descriptor: EntityDescriptor,
        compiled_query: str,
        filters: Mapping[str, Any],
        limit: int,
    ) -> List[IndexHit]:
        tsquery = to_tsquery_expression(compiled_query)
        if not tsquery or limit <= 0:
            return []

        sql, params = build_search_sql(descriptor, filters)
        rows = await self._execute_query(sql, tsquery, limit, *params, fetch=True)

        return [
            IndexHit(
                entity_id=row["entity_id"],
                score=abs(float(row["rank"] or 0.0)),
                snippet=row["snippet"],
                created_at=int(row["created_at"] or 0),
            )
            for row in rows
        ]

    async def filter_matching(
        self,
        descriptor: EntityDescriptor,
        entity_ids: Iterable[str],
        filters: Mapping[str, Any],
    ) -> Set[str]:
        entity_ids = list(entity_ids)
        if not entity_ids:
            return set()

        sql, params = build_match_sql(descriptor, filters)
        rows = await self._execute_query(sql, entity_ids, *params, fetch=True)
        return {row["entity_id"] for row in rows}

    async def get_engagement_signals(self, entity_id: str) -> EngagementSignals:
        row = await self._execute_query(
            "SELECT likes, loops FROM engagement_stats WHERE entity_id = $1",
            entity_id,
            fetch_one=True,
        )
        if row is None:
            return EngagementSignals()
        return EngagementSignals(likes=row["likes"] or 0, loops=row["loops"] or 0)

    async def get_tag_usage(self, tag: str) -> Optional[TagUsage]:
        row = await self._execute_query(
            "SELECT hashtag, total_usage, first_seen, last_seen FROM hashtag_stats WHERE hashtag = $1",
            tag.lower(),
            fetch_one=True,
        )
        if row is None:
            return None
        return TagUsage(
            tag=row["hashtag"],
            usage_count=row["total_usage"] or 0,
            first_seen=row["first_seen"] or 0,
            last_seen=row["last_seen"] or 0,
        )

    async def get_entity(self, entity_id: str) -> Optional[Dict[str, Any]]:
        row = await self._execute_query(
            "SELECT id, pubkey, created_at, kind, tags, content, sig FROM events WHERE id = $1",
            entity_id,
            fetch_one=True,
        )
        if row is None:
            return None
        record = dict(row)
        if isinstance(record.get("tags"), str):
            record["tags"] = json.loads(record["tags"])
        return record

    async def health_check(self) -> bool:
        try:
            result = await self._execute_query("SELECT 1", fetch_one=True)
            return result is not None
        except Exception as e:
            logger.error("Index store health check failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Index store connection pool closed")
