"""Tests for engagement boosting and hashtag trend decay."""

import math

import pytest

from relay_search.entities import ENTITY_DESCRIPTORS
from relay_search.index_store.memory import MemoryIndexStore
from relay_search.models import EngagementSignals, EntityType, IndexHit
from relay_search.ranking.relevance import (
    LIKES_WEIGHT,
    LOOPS_WEIGHT,
    TREND_SMOOTHING_SECONDS,
    RelevanceAdjuster,
    boost_engagement,
    record_tag_usage,
    trending_score,
)


def test_zero_engagement_leaves_score_unchanged():
    assert boost_engagement(2.5, EngagementSignals()) == 2.5
    assert boost_engagement(2.5, None) == 2.5


def test_engagement_boost_formula():
    boosted = boost_engagement(1.0, EngagementSignals(likes=9, loops=99))
    expected = (1 + math.log(10) * LIKES_WEIGHT) * (1 + math.log(100) * LOOPS_WEIGHT)
    assert boosted == pytest.approx(expected)


def test_negative_counters_count_as_zero():
    assert boost_engagement(3.0, EngagementSignals(likes=-5, loops=-1)) == 3.0


def test_engagement_boost_is_monotonic():
    previous = 0.0
    for likes in range(0, 1000, 37):
        score = boost_engagement(1.0, EngagementSignals(likes=likes, loops=3))
        assert score >= previous
        previous = score

    previous = 0.0
    for loops in range(0, 1000, 41):
        score = boost_engagement(1.0, EngagementSignals(likes=3, loops=loops))
        assert score >= previous
        previous = score


def test_trending_score_formula():
    assert trending_score(10, 0, 0) == pytest.approx(10 / TREND_SMOOTHING_SECONDS)
    assert trending_score(10, 1000, 4600) == pytest.approx(10 / (3600 + TREND_SMOOTHING_SECONDS))


def test_trending_score_decays_with_time():
    scores = [trending_score(50, 1000, now) for now in range(1000, 500000, 25000)]
    assert all(a > b for a, b in zip(scores, scores[1:]))


def test_trending_score_grows_with_usage():
    scores = [trending_score(usage, 1000, 90000) for usage in range(1, 50)]
    assert all(a < b for a, b in zip(scores, scores[1:]))


def test_trending_score_handles_clock_skew_and_zero_usage():
    assert trending_score(5, 100, 50) == pytest.approx(5 / TREND_SMOOTHING_SECONDS)
    assert trending_score(0, 0, 100) == 0.0


def test_record_tag_usage():
    first = record_tag_usage(None, "nostr", 100)
    assert (first.usage_count, first.first_seen, first.last_seen) == (1, 100, 100)

    second = record_tag_usage(first, "nostr", 250)
    assert (second.usage_count, second.first_seen, second.last_seen) == (2, 100, 250)


@pytest.mark.asyncio
async def test_adjuster_boosts_engaging_videos():
    store = MemoryIndexStore()
    store.set_engagement("popular", likes=500, loops=10000)
    adjuster = RelevanceAdjuster(store)

    hits = [IndexHit("quiet", 1.0), IndexHit("popular", 1.0)]
    results = await adjuster.adjust(ENTITY_DESCRIPTORS[EntityType.VIDEO], hits)

    assert [r.entity_id for r in results] == ["quiet", "popular"]
    assert results[0].score == 1.0
    assert results[1].score > 1.0
    assert results[1].entity_type is EntityType.VIDEO


@pytest.mark.asyncio
async def test_adjuster_leaves_users_alone():
    store = MemoryIndexStore()
    store.set_engagement("someone", likes=500)
    adjuster = RelevanceAdjuster(store)

    results = await adjuster.adjust(ENTITY_DESCRIPTORS[EntityType.USER], [IndexHit("someone", 2.0)])
    assert results[0].score == 2.0


@pytest.mark.asyncio
async def test_adjuster_scores_hashtags_by_trend():
    store = MemoryIndexStore()
    store.record_tag("nostr", now=1000)
    store.record_tag("nostr", now=1000)
    adjuster = RelevanceAdjuster(store, clock=lambda: 1000)

    results = await adjuster.adjust(
        ENTITY_DESCRIPTORS[EntityType.HASHTAG],
        [IndexHit("nostr", 1.0), IndexHit("unseen", 1.0)],
    )

    assert results[0].score == pytest.approx(2 / TREND_SMOOTHING_SECONDS)
    assert results[0].snippet == "#nostr"
    assert results[1].score == 0.0


class _BrokenSignalsStore(MemoryIndexStore):
    async def get_engagement_signals(self, entity_id):
        raise RuntimeError("stats table unavailable")


@pytest.mark.asyncio
async def test_adjuster_never_fails_on_lookup_errors():
    adjuster = RelevanceAdjuster(_BrokenSignalsStore())
    results = await adjuster.adjust(ENTITY_DESCRIPTORS[EntityType.NOTE], [IndexHit("n1", 1.5)])
    assert results[0].score == 1.5
