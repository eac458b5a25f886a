from __future__ import annotations

"""
Per-bottle matching: rank a catalog against one seed bottle.

The seed is embedded first; then every candidate is embedded and scored
concurrently with ``asyncio.gather``.  The first failure propagates and the
remaining results are simply not awaited further, so a seed yields either a
complete ranking or an exception, never a partial list.
"""

import asyncio
from typing import List, Sequence

import numpy as np  # type: ignore
from loguru import logger

from .config import DEFAULT_MATCH_LIMIT, Bottle, Recommendation
from .embedding import EmbeddingResolver
from .pipeline_types import ScoredCandidate
from .reasons import generate_reason
from .similarity import cosine_similarity


async def _score_one(
    seed: Bottle,
    seed_vec: np.ndarray,
    candidate: Bottle,
    resolver: EmbeddingResolver,
) -> ScoredCandidate:
    vec = await resolver.embed(candidate)
    return ScoredCandidate(
        bottle=candidate,
        similarity=cosine_similarity(seed_vec, vec),
        reason=generate_reason(seed, candidate),
    )


async def score_candidates(
    seed: Bottle,
    catalog: Sequence[Bottle],
    resolver: EmbeddingResolver,
    limit: int = DEFAULT_MATCH_LIMIT,
) -> List[ScoredCandidate]:
    """
    Score every catalog bottle against ``seed`` and keep the top ``limit``.

    The caller is expected to have removed the seed from ``catalog``.
    Ties keep catalog order.
    """
    seed_vec = await resolver.embed(seed)

    scored = await asyncio.gather(
        *(_score_one(seed, seed_vec, c, resolver) for c in catalog)
    )

    ranked = sorted(scored, key=lambda c: c.similarity, reverse=True)[: max(0, limit)]
    logger.debug(
        "Seed {} ({}): scored {} candidates, kept {}",
        seed.id, seed.name, len(scored), len(ranked),
    )
    return ranked


async def find_similar_bottles(
    seed: Bottle,
    catalog: Sequence[Bottle],
    resolver: EmbeddingResolver,
    limit: int = DEFAULT_MATCH_LIMIT,
) -> List[Recommendation]:
    """Ranked ``{bottle, reason}`` pairs for one seed, best first."""
    ranked = await score_candidates(seed, catalog, resolver, limit=limit)
    return [Recommendation(bottle=c.bottle, reason=c.reason) for c in ranked]
