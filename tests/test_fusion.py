"""Tests for reciprocal rank fusion."""

import pytest

from relay_search.models import EntityType, SearchResult
from relay_search.ranking.fusion import (
    ReciprocalRankFusion,
    create_fusion_algorithm,
    fuse_results,
)


def _result(entity_id, score=1.0, entity_type=EntityType.VIDEO):
    return SearchResult(entity_type=entity_type, entity_id=entity_id, score=score)


def test_overlapping_entity_ranks_first():
    primary = [_result("a", 4.0), _result("b", 3.0)]
    secondary = [_result("c", 0.9), _result("a", 2.0)]

    fused = fuse_results(primary, secondary, limit=10)

    assert fused[0].entity_id == "a"
    assert fused[0].score == pytest.approx(3.0)
    assert fused[0].fusion_score == pytest.approx(1 / 61 + 1.5 / 62)


def test_single_source_entities_keep_their_score():
    fused = fuse_results([_result("a", 4.0)], [_result("b", 0.7)], limit=10)
    by_id = {r.entity_id: r for r in fused}

    assert by_id["a"].score == 4.0
    assert by_id["a"].fusion_score == pytest.approx(1 / 61)
    assert by_id["b"].score == 0.7
    assert by_id["b"].fusion_score == pytest.approx(1.5 / 61)
    # Secondary contributions are boosted
    assert [r.entity_id for r in fused] == ["b", "a"]


def test_consensus_beats_single_boosted_hit():
    primary = [_result("x"), _result("shared")]
    secondary = [_result("y"), _result("shared")]

    fused = fuse_results(primary, secondary, limit=10)

    assert fused[0].entity_id == "shared"
    assert fused[0].fusion_score > 1.5 / 61


def test_fusion_truncates_to_limit():
    primary = [_result(f"p{i}") for i in range(10)]
    secondary = [_result(f"s{i}") for i in range(10)]

    assert len(fuse_results(primary, secondary, limit=5)) == 5
    assert fuse_results(primary, secondary, limit=0) == []


def test_duplicate_ids_keep_first_rank():
    primary = [_result("a", 5.0), _result("b", 4.0), _result("a", 1.0)]
    fused = fuse_results(primary, [], limit=10)

    assert [r.entity_id for r in fused] == ["a", "b"]
    assert fused[0].score == 5.0
    assert fused[0].fusion_score == pytest.approx(1 / 61)


def test_empty_inputs():
    assert fuse_results([], [], limit=10) == []


def test_ties_keep_primary_order():
    fused = fuse_results([_result("a"), _result("b")], [], limit=10)
    assert [r.entity_id for r in fused] == ["a", "b"]


def test_custom_parameters():
    rrf = ReciprocalRankFusion(k=10, secondary_boost=1.0)
    fused = rrf.fuse_results([_result("a")], [_result("a")], limit=1)
    assert fused[0].fusion_score == pytest.approx(2 / 11)


def test_create_fusion_algorithm():
    algorithm = create_fusion_algorithm("rrf", k=30)
    assert isinstance(algorithm, ReciprocalRankFusion)
    assert algorithm.k == 30
    assert algorithm.secondary_boost == 1.5

    with pytest.raises(ValueError):
        create_fusion_algorithm("bogus")
