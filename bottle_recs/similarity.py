from __future__ import annotations

from typing import Sequence

import numpy as np  # type: ignore

from .errors import DegenerateVectorError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between two equal-length vectors.

    Raises ``DegenerateVectorError`` when either vector has zero magnitude
    instead of letting a NaN leak into the ranking.
    """
    va = np.asarray(a, dtype="float64").ravel()
    vb = np.asarray(b, dtype="float64").ravel()
    if va.shape != vb.shape:
        raise ValueError(f"Vector length mismatch: {va.shape[0]} != {vb.shape[0]}")

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        raise DegenerateVectorError("Cannot compare a zero-magnitude vector")

    return float(np.dot(va, vb) / (norm_a * norm_b))
