from __future__ import annotations

from typing import List

from .config import PRICE_RANGE_THRESHOLD, PROOF_THRESHOLD, Bottle


def _or_zero(value) -> float:
    return float(value) if value is not None else 0.0


def reason_clauses(seed: Bottle, candidate: Bottle) -> List[str]:
    """
    Clauses explaining why ``candidate`` resembles ``seed``.

    Evaluated in a fixed order: spirit type, price, proof, brand.  Missing
    prices and proofs count as 0 here; that only affects the wording.
    """
    clauses: List[str] = []
    if candidate.spirit_type == seed.spirit_type:
        clauses.append(f"same spirit type ({candidate.spirit_type})")
    if abs(_or_zero(candidate.avg_msrp) - _or_zero(seed.avg_msrp)) < PRICE_RANGE_THRESHOLD:
        clauses.append("similar price range")
    if abs(_or_zero(candidate.proof) - _or_zero(seed.proof)) < PROOF_THRESHOLD:
        clauses.append("similar proof")
    if candidate.brand_id is not None and candidate.brand_id == seed.brand_id:
        clauses.append("same brand")
    return clauses


def generate_reason(seed: Bottle, candidate: Bottle) -> str:
    # No clauses yields "Based on  as <name>"; kept as-is.
    return f"Based on {', '.join(reason_clauses(seed, candidate))} as {seed.name}"
