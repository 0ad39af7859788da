"""Result fusion for hybrid (lexical + semantic) search."""

from typing import Dict, List, Sequence

import structlog

from ..models import SearchResult

logger = structlog.get_logger("search_fusion")

DEFAULT_RRF_K = 60
DEFAULT_SECONDARY_BOOST = 1.5


class RankFusionAlgorithm:
    """Base class for rank fusion algorithms."""

    name = "base"

    def fuse_results(
        self,
        primary: Sequence[SearchResult],
        secondary: Sequence[SearchResult],
        limit: int,
    ) -> List[SearchResult]:
        """Fuse two ranked result lists into one."""
        raise NotImplementedError


class ReciprocalRankFusion(RankFusionAlgorithm):
    """Reciprocal Rank Fusion (RRF) with an asymmetric boost.

    Each result contributes ``1 / (k + rank + 1)`` (0-based rank) from the
    list it appears in; contributions from the secondary list are multiplied
    by ``secondary_boost``. An entity found by both lists sums its two
    contributions and reports the mean of the two relevance scores.
    """

    name = "rrf"

    def __init__(self, k: int = DEFAULT_RRF_K, secondary_boost: float = DEFAULT_SECONDARY_BOOST):
        self.k = k
        self.secondary_boost = secondary_boost

    def _ranked(self, results: Sequence[SearchResult], weight: float) -> Dict[str, Dict]:
        ranked: Dict[str, Dict] = {}
        for rank, result in enumerate(results):
            # Keep the best rank if a source repeats an entity
            if result.entity_id in ranked:
                continue
            ranked[result.entity_id] = {
                "rank": rank,
                "fusion": weight / (self.k + rank + 1),
                "result": result,
            }
        return ranked

    def fuse_results(
        self,
        primary: Sequence[SearchResult],
        secondary: Sequence[SearchResult],
        limit: int,
    ) -> List[SearchResult]:
        """Fuse results using RRF, truncated to ``limit``."""
        primary_map = self._ranked(primary, 1.0)
        secondary_map = self._ranked(secondary, self.secondary_boost)

        # Primary entities first so ties keep lexical order
        entity_ids = list(primary_map)
        entity_ids.extend(eid for eid in secondary_map if eid not in primary_map)

        fused_results = []
        overlap = 0
        for entity_id in entity_ids:
            lexical = primary_map.get(entity_id)
            semantic = secondary_map.get(entity_id)

            if lexical and semantic:
                overlap += 1
                fusion_score = lexical["fusion"] + semantic["fusion"]
                score = (lexical["result"].score + semantic["result"].score) / 2.0
                base = lexical["result"]
            elif lexical:
                fusion_score = lexical["fusion"]
                score = lexical["result"].score
                base = lexical["result"]
            else:
                fusion_score = semantic["fusion"]
                score = semantic["result"].score
                base = semantic["result"]

            fused_results.append(base.with_scores(score, fusion_score))

        fused_results.sort(key=lambda r: r.fusion_score, reverse=True)
        final_results = fused_results[:max(limit, 0)]

        logger.info(
            "RRF fusion completed",
            primary_count=len(primary),
            secondary_count=len(secondary),
            overlap_count=overlap,
            fused_count=len(final_results),
            k_parameter=self.k,
            secondary_boost=self.secondary_boost
        )

        return final_results


def fuse_results(
    primary: Sequence[SearchResult],
    secondary: Sequence[SearchResult],
    limit: int,
    k: int = DEFAULT_RRF_K,
    secondary_boost: float = DEFAULT_SECONDARY_BOOST,
) -> List[SearchResult]:
    """Convenience wrapper around ``ReciprocalRankFusion``."""
    return ReciprocalRankFusion(k=k, secondary_boost=secondary_boost).fuse_results(
        primary, secondary, limit
    )


def create_fusion_algorithm(algorithm: str = "rrf", **params) -> RankFusionAlgorithm:
    """Create a fusion algorithm instance."""

    if algorithm == "rrf":
        return ReciprocalRankFusion(
            k=params.get("k", DEFAULT_RRF_K),
            secondary_boost=params.get("secondary_boost", DEFAULT_SECONDARY_BOOST),
        )

    raise ValueError(f"Unknown fusion algorithm: {algorithm}")
