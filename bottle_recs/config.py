from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------
# Paths
# ---------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = PROJECT_ROOT / "data"
CATALOG_PATH = Path(os.getenv("CATALOG_PATH", str(DATA_DIR / "bottles.json")))

LOG_DIR = PROJECT_ROOT / "logs"


# ---------------------------
# Embedding provider (pinned)
# ---------------------------

EMBEDDING_MODEL = "text-embedding-ada-002"
EMBEDDING_API_BASE = "https://api.openai.com/v1"

# 0 disables the cache
DEFAULT_EMBEDDING_CACHE_SIZE = 1024


# ---------------------------
# Matching policy
# ---------------------------

DEFAULT_MATCH_LIMIT = 5      # per seed bottle
RECOMMENDATION_CAP = 6       # after merge + dedup

PRICE_RANGE_THRESHOLD = 30.0  # currency units, strict <
PROOF_THRESHOLD = 10.0        # degrees, strict <


# ---------------------------
# HTTP hardening
# ---------------------------

HTTP_CONNECT_TIMEOUT = 3.0
HTTP_READ_TIMEOUT = 20.0

BAR_API_BASE = os.getenv("BAR_API_BASE", "https://services.baxus.co/api/bar/user/")

HTTP_USER_AGENT = "bottle-recs/1.0"


class ProviderSettings(BaseModel):
    """
    Connection settings for the embedding provider.

    Built once by the process entry point and handed to the resolver;
    nothing reads the credential from module state.
    """

    api_key: Optional[str] = None
    base_url: str = EMBEDDING_API_BASE
    model: str = EMBEDDING_MODEL
    connect_timeout: float = HTTP_CONNECT_TIMEOUT
    read_timeout: float = HTTP_READ_TIMEOUT
    cache_size: int = Field(default=DEFAULT_EMBEDDING_CACHE_SIZE, ge=0)

    @classmethod
    def from_env(cls) -> "ProviderSettings":
        return cls(
            api_key=os.getenv("OPENAI_API_KEY") or None,
            base_url=os.getenv("EMBEDDING_API_BASE", EMBEDDING_API_BASE),
            model=os.getenv("EMBEDDING_MODEL", EMBEDDING_MODEL),
            cache_size=int(os.getenv("EMBEDDING_CACHE_SIZE", str(DEFAULT_EMBEDDING_CACHE_SIZE))),
        )


# ---------------------------
# Pydantic models shared around the app
# ---------------------------

class Bottle(BaseModel):
    """
    A spirits product, either owned by the user or a catalog candidate.

    ``id`` is the only identity used for exclusion and dedup. Nullable
    numeric fields mean "unknown" and stay ``None``.
    """

    id: int
    name: str
    size: Optional[int] = None
    proof: Optional[float] = None
    abv: Optional[float] = None
    spirit_type: str = ""
    brand_id: Optional[int] = None
    popularity: Optional[float] = None
    image_url: str = ""
    avg_msrp: Optional[float] = None
    fair_price: Optional[float] = None
    shelf_price: Optional[float] = None
    total_score: int = 0
    wishlist_count: int = 0
    vote_count: int = 0
    bar_count: int = 0
    ranking: int = 0

    @field_validator(
        "total_score", "wishlist_count", "vote_count", "bar_count", "ranking",
        mode="before",
    )
    @classmethod
    def _unknown_counter_is_zero(cls, value):
        return 0 if value is None else value


class Recommendation(BaseModel):
    """A recommended bottle plus the sentence explaining why."""

    bottle: Bottle
    reason: str


class RecommendRequest(BaseModel):
    """
    Request body for POST /recommend.
    """

    bottles: List[Bottle] = Field(..., min_length=1)


class RecommendResponse(BaseModel):
    """
    Response body for the /recommend endpoints.
    """

    recommendations: List[Recommendation]


class HealthResponse(BaseModel):
    """
    Response body for GET /health.
    """

    status: str
