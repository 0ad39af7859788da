"""Relevance adjustment for raw index scores.

Two adjustments exist:

- engagement boost for content-like entities, a log-dampened multiplier per
  interaction counter so popularity nudges but never dominates text relevance
- trend decay for hashtags, usage divided by smoothed age, recomputed on each
  usage event

Adjustment never fails. Missing signals count as zero.
"""

import math
import time
from typing import List, Optional, Sequence

import structlog

from ..entities import Adjustment, EntityDescriptor
from ..models import EngagementSignals, IndexHit, SearchResult, TagUsage

logger = structlog.get_logger("ranking.relevance")

LIKES_WEIGHT = 0.1
LOOPS_WEIGHT = 0.05

# One day; keeps freshly seen tags from dividing by ~0
TREND_SMOOTHING_SECONDS = 86400


def _engagement_factor(count: Optional[int], weight: float) -> float:
    if not count or count < 0:
        return 1.0
    return 1.0 + math.log(count + 1) * weight


def boost_engagement(
    raw_score: float,
    signals: Optional[EngagementSignals],
    likes_weight: float = LIKES_WEIGHT,
    loops_weight: float = LOOPS_WEIGHT,
) -> float:
    """Scale ``raw_score`` by ``(1 + ln(likes+1)*w_l) * (1 + ln(loops+1)*w_o)``."""
    if signals is None:
        return raw_score
    return (
        raw_score
        * _engagement_factor(signals.likes, likes_weight)
        * _engagement_factor(signals.loops, loops_weight)
    )


def trending_score(
    usage_count: int,
    first_seen: int,
    now: int,
    smoothing: int = TREND_SMOOTHING_SECONDS,
) -> float:
    """``usage_count / (now - first_seen + smoothing)``.

    The age term is clamped at zero so a ``first_seen`` in the future (clock
    skew between writers) cannot shrink the denominator below ``smoothing``.
    """
    if usage_count <= 0:
        return 0.0
    age = max(now - first_seen, 0)
    return usage_count / (age + smoothing)


def record_tag_usage(usage: Optional[TagUsage], tag: str, now: int) -> TagUsage:
    """Return the counters for ``tag`` after one more usage at ``now``."""
    if usage is None or usage.usage_count <= 0:
        return TagUsage(tag=tag, usage_count=1, first_seen=now, last_seen=now)
    return TagUsage(
        tag=tag,
        usage_count=usage.usage_count + 1,
        first_seen=usage.first_seen,
        last_seen=max(usage.last_seen, now),
    )


class RelevanceAdjuster:
    """Applies the descriptor-selected adjustment to a batch of index hits.

    Signal lookups go through the index store. A lookup failure is logged and
    the hit keeps its raw score.
    """

    def __init__(
        self,
        index_store,
        likes_weight: float = LIKES_WEIGHT,
        loops_weight: float = LOOPS_WEIGHT,
        clock=time.time,
    ):
        self.index_store = index_store
        self.likes_weight = likes_weight
        self.loops_weight = loops_weight
        self.clock = clock

    async def adjust(
        self,
        descriptor: EntityDescriptor,
        hits: Sequence[IndexHit],
    ) -> List[SearchResult]:
        """Turn raw hits into adjusted ``SearchResult`` values (input order)."""
        results = []
        now = int(self.clock())

        for hit in hits:
            score = hit.score
            if descriptor.adjustment is Adjustment.ENGAGEMENT:
                score = await self._engagement_score(hit, score)
            elif descriptor.adjustment is Adjustment.TREND:
                score = await self._trend_score(hit, score, now)
            results.append(descriptor.shape(hit, score))

        return results

    async def _engagement_score(self, hit: IndexHit, score: float) -> float:
        try:
            signals = await self.index_store.get_engagement_signals(hit.entity_id)
        except Exception as e:
            logger.warning(
                "Engagement lookup failed, using raw score",
                entity_id=hit.entity_id,
                error=str(e)
            )
            return score
        return boost_engagement(score, signals, self.likes_weight, self.loops_weight)

    async def _trend_score(self, hit: IndexHit, score: float, now: int) -> float:
        try:
            usage = await self.index_store.get_tag_usage(hit.entity_id)
        except Exception as e:
            logger.warning(
                "Tag usage lookup failed, using raw score",
                tag=hit.entity_id,
                error=str(e)
            )
            return score
        if usage is None:
            return 0.0
        return trending_score(usage.usage_count, usage.first_seen, now)
