"""Typed containers shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass

from .config import Bottle


@dataclass
class ScoredCandidate:
    """Catalog bottle scored against one seed bottle."""

    bottle: Bottle
    similarity: float
    reason: str
