from fakes import make_bottle

from bottle_recs.reasons import generate_reason, reason_clauses


def test_all_four_clauses_in_fixed_order():
    seed = make_bottle(1, "Seed", spirit_type="Bourbon", avg_msrp=56, proof=100, brand_id=5)
    cand = make_bottle(2, "Cand", spirit_type="Bourbon", avg_msrp=58, proof=105, brand_id=5)

    reason = generate_reason(seed, cand)
    assert reason == (
        "Based on same spirit type (Bourbon), similar price range, similar proof, "
        "same brand as Seed"
    )


def test_thresholds_are_strict():
    seed = make_bottle(1, spirit_type="Rye", avg_msrp=50, proof=100)
    cand = make_bottle(2, spirit_type="Scotch", avg_msrp=80, proof=110)
    assert reason_clauses(seed, cand) == []

    near = make_bottle(3, spirit_type="Scotch", avg_msrp=79.99, proof=109.9)
    assert reason_clauses(seed, near) == ["similar price range", "similar proof"]


def test_spirit_type_match_is_case_sensitive():
    seed = make_bottle(1, spirit_type="Bourbon", avg_msrp=500, proof=50)
    cand = make_bottle(2, spirit_type="bourbon", avg_msrp=10, proof=120)
    assert reason_clauses(seed, cand) == []


def test_missing_price_and_proof_count_as_zero():
    seed = make_bottle(1, spirit_type="Rum", avg_msrp=None, proof=None)
    cand = make_bottle(2, spirit_type="Gin", avg_msrp=20, proof=5)
    assert reason_clauses(seed, cand) == ["similar price range", "similar proof"]


def test_same_brand_needs_both_ids():
    seed = make_bottle(1, spirit_type="Rum", avg_msrp=500, proof=50, brand_id=None)
    cand = make_bottle(2, spirit_type="Gin", avg_msrp=10, proof=120, brand_id=None)
    assert "same brand" not in reason_clauses(seed, cand)


def test_zero_clause_reason_keeps_degenerate_wording():
    seed = make_bottle(1, "Seed", spirit_type="Rum", avg_msrp=500, proof=50)
    cand = make_bottle(2, "Cand", spirit_type="Gin", avg_msrp=10, proof=120)
    assert generate_reason(seed, cand) == "Based on  as Seed"
