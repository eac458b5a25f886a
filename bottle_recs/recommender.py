from __future__ import annotations

"""
Collection-wide recommendation aggregation.

Runs the per-bottle matcher concurrently for every bottle the user owns,
concatenates the rankings, dedups by bottle id and truncates to the cap.
This is the only recovery boundary of the pipeline: any failure below it
is logged and replaced by the fixed fallback pair.
"""

import argparse
import asyncio
import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from loguru import logger

from .catalog import exclude_bottle, load_catalog
from .config import (
    CATALOG_PATH,
    DEFAULT_MATCH_LIMIT,
    RECOMMENDATION_CAP,
    Bottle,
    ProviderSettings,
    Recommendation,
)
from .embedding import EmbeddingResolver
from .matcher import find_similar_bottles


# -----------------------
# Fallback set
# -----------------------

FALLBACK_RECOMMENDATIONS: List[Recommendation] = [
    Recommendation(
        bottle=Bottle(
            id=158,
            name="Weller Antique 107",
            size=750,
            proof=None,
            abv=53.5,
            spirit_type="Bourbon",
            brand_id=156,
            popularity=100266,
            image_url="https://d1w35me0y6a2bb.cloudfront.net/newproducts/rec8X36afthvgqzO9",
            avg_msrp=56.35,
            fair_price=116.66,
            shelf_price=109.89,
            total_score=40001,
            wishlist_count=8098,
            vote_count=13989,
            bar_count=17914,
            ranking=5,
        ),
        reason="Based on similar price range, same spirit type (Bourbon)",
    ),
    Recommendation(
        bottle=Bottle(
            id=2803,
            name="Weller Special Reserve",
            size=750,
            proof=None,
            abv=45,
            spirit_type="Bourbon",
            brand_id=156,
            popularity=100328,
            image_url="https://d1w35me0y6a2bb.cloudfront.net/newproducts/rec3BbLSm2nodYUyX",
            avg_msrp=29.49,
            fair_price=58.63,
            shelf_price=64.99,
            total_score=39429,
            wishlist_count=3810,
            vote_count=9769,
            bar_count=25850,
            ranking=6,
        ),
        reason="Based on same brand, same spirit type (Bourbon)",
    ),
]


def fallback_recommendations() -> List[Recommendation]:
    # Deep copies so callers can't mutate the module-level set.
    return [r.model_copy(deep=True) for r in FALLBACK_RECOMMENDATIONS]


# -----------------------
# Aggregation
# -----------------------

def merge_recommendations(
    per_seed: Sequence[Sequence[Recommendation]],
    cap: int = RECOMMENDATION_CAP,
) -> List[Recommendation]:
    """
    Flatten per-seed rankings and dedup by bottle id.

    On a collision the later entry's reason wins but the bottle keeps the
    position where it was first seen (insertion-ordered map semantics).
    """
    merged: Dict[int, Recommendation] = {}
    for ranking in per_seed:
        for rec in ranking:
            merged[rec.bottle.id] = rec
    return list(merged.values())[: max(0, cap)]


async def _collect(
    user_bottles: Sequence[Bottle],
    catalog: Sequence[Bottle],
    resolver: EmbeddingResolver,
    limit: int,
) -> List[List[Recommendation]]:
    return await asyncio.gather(
        *(
            find_similar_bottles(b, exclude_bottle(catalog, b.id), resolver, limit=limit)
            for b in user_bottles
        )
    )


async def get_recommendations(
    user_bottles: Sequence[Bottle],
    catalog: Sequence[Bottle],
    resolver: Optional[EmbeddingResolver] = None,
    limit: int = DEFAULT_MATCH_LIMIT,
    cap: int = RECOMMENDATION_CAP,
) -> List[Recommendation]:
    """
    Recommend bottles for a whole collection.  Never raises.

    When ``resolver`` is omitted a short-lived one is built from the
    environment.  Any failure (provider error, degenerate vector, bad
    settings) degrades to :data:`FALLBACK_RECOMMENDATIONS`, as does a run
    that produces no candidates at all.
    """
    if not user_bottles:
        logger.info("Empty collection; returning fallback recommendations")
        return fallback_recommendations()

    try:
        if resolver is None:
            async with EmbeddingResolver(ProviderSettings.from_env()) as owned:
                per_seed = await _collect(user_bottles, catalog, owned, limit)
        else:
            per_seed = await _collect(user_bottles, catalog, resolver, limit)
        recommendations = merge_recommendations(per_seed, cap=cap)
    except Exception:
        logger.exception("Error getting recommendations; returning fallback set")
        return fallback_recommendations()

    if not recommendations:
        logger.info("No candidates matched {} bottles; returning fallback set", len(user_bottles))
        return fallback_recommendations()

    logger.info(
        "Built {} recommendations from {} collection bottles",
        len(recommendations), len(user_bottles),
    )
    return recommendations


def recommend(
    user_bottles: Sequence[Bottle],
    catalog: Sequence[Bottle],
    resolver: Optional[EmbeddingResolver] = None,
) -> List[Recommendation]:
    """Blocking wrapper for scripts; do not call from a running event loop."""
    return asyncio.run(get_recommendations(user_bottles, catalog, resolver))


# -----------------------
# CLI convenience
# -----------------------

def _load_user_bottles(path: Path) -> List[Bottle]:
    with path.open("r", encoding="utf-8") as f:
        raw = json.load(f)
    if isinstance(raw, dict):
        raw = raw.get("bottles", [])
    return [Bottle(**item) for item in raw]


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Recommend bottles for a collection")
    parser.add_argument("--bottles", type=Path, required=True, help="JSON file with the user's bottles")
    parser.add_argument("--catalog", type=Path, default=CATALOG_PATH)
    args = parser.parse_args(argv)

    user_bottles = _load_user_bottles(args.bottles)
    catalog = load_catalog(args.catalog)
    recs = recommend(user_bottles, catalog)
    print(json.dumps([r.model_dump() for r in recs], indent=2))


if __name__ == "__main__":
    # python -m bottle_recs.recommender --bottles my_bar.json
    main()
