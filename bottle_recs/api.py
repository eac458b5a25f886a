from __future__ import annotations

"""
FastAPI application for the bottle recommender.

- Catalog and embedding resolver are created once at startup; the
  resolver's LRU cache therefore lives for the whole process
- /recommend never fails because of the embedding provider: the
  aggregator degrades to its fallback pair
- /recommend/{username} pulls the bar from the bar-tracking service first
"""

from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .bar_fetch import fetch_user_bar
from .catalog import load_catalog
from .config import (
    LOG_DIR,
    Bottle,
    HealthResponse,
    ProviderSettings,
    RecommendRequest,
    RecommendResponse,
)
from .embedding import EmbeddingResolver
from .recommender import get_recommendations


# -----------------------
# FastAPI app + startup
# -----------------------

app = FastAPI()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_catalog: Optional[List[Bottle]] = None
_resolver: Optional[EmbeddingResolver] = None


@app.on_event("startup")
async def startup_event() -> None:
    global _catalog, _resolver
    LOG_DIR.mkdir(exist_ok=True)
    logger.add(LOG_DIR / "api.log", rotation="10 MB", retention=5)
    logger.info("Starting app warmup...")

    _catalog = load_catalog()
    settings = ProviderSettings.from_env()
    if not settings.api_key:
        logger.warning("OPENAI_API_KEY not set; every request will get fallback recommendations")
    _resolver = EmbeddingResolver(settings)
    logger.info("Warmup complete.")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    global _resolver
    if _resolver is not None:
        logger.info("Embedding cache at shutdown: {}", _resolver.cache_stats())
        await _resolver.aclose()
        _resolver = None


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="healthy")


async def _recommend_for(bottles: List[Bottle]) -> RecommendResponse:
    if _catalog is None or _resolver is None:
        raise HTTPException(status_code=500, detail="Catalog not loaded")
    recs = await get_recommendations(bottles, _catalog, _resolver)
    return RecommendResponse(recommendations=recs)


@app.post("/recommend", response_model=RecommendResponse)
async def recommend(req: RecommendRequest) -> RecommendResponse:
    return await _recommend_for(req.bottles)


@app.get("/recommend/{username}", response_model=RecommendResponse)
async def recommend_for_user(username: str) -> RecommendResponse:
    name = username.strip()
    if not name:
        raise HTTPException(status_code=422, detail="Username must be non-empty")
    bottles = await fetch_user_bar(name)
    if bottles is None:
        raise HTTPException(status_code=502, detail=f"Could not fetch bar for {name}")
    return await _recommend_for(bottles)
