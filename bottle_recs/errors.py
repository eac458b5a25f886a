"""Error kinds raised inside the recommendation pipeline."""

from __future__ import annotations


class RecommendationError(Exception):
    """Base class for failures the aggregator recovers from."""


class ProviderError(RecommendationError):
    """The embedding provider was unreachable, rate-limited or returned garbage."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DegenerateVectorError(RecommendationError):
    """A zero-magnitude vector makes cosine similarity undefined."""
