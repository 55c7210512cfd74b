"""
Tests for rule-based advertiser mapping:
  - scoring rules (category gate, subcategory, keywords, medications, priority)
  - min_score / max_results / ordering
  - score cap and deterministic tie-break
"""
from __future__ import annotations

import pytest

from conftest import area, kb_from, make_classification
from sponsormatch.pipeline.category_mapper import (
    MAX_MAPPING_SCORE,
    MappingOptions,
    map_to_advertisers,
    targeting_advertisers,
    targeting_treatment_areas,
)
from sponsormatch.pipeline.errors import ConfigurationError


# ═══════════════════════════════════════════════════════════════════
# 1. SCORING RULES
# ═══════════════════════════════════════════════════════════════════

def test_category_subcategory_and_medication_score_95():
    kb = kb_from(("acme", [area("acme_onc", keywords=["breast cancer", "adjuvant"], meds=["Palbociclib"])]))
    cls = make_classification(keywords=["HER2", "metastatic"], medications=["palbociclib"])

    result = map_to_advertisers(cls, kb, MappingOptions(min_score=0))

    top = result.top_match
    assert top is not None
    assert top.raw_score == 95.0
    assert top.matched_keywords == ()
    assert top.matched_medications == ("palbociclib",)
    assert top.matched_category is True
    assert top.matched_subcategory is True


def test_keyword_match_is_case_insensitive_and_worth_five():
    kb = kb_from(("acme", [area("acme_onc", subcategories=["lung_cancer"], keywords=["breast cancer", "HER2"])]))
    cls = make_classification(keywords=["Breast Cancer", "her2", "metastatic"])

    top = map_to_advertisers(cls, kb, MappingOptions(min_score=0)).top_match

    assert top.raw_score == 60.0
    assert top.matched_keywords == ("Breast Cancer", "her2")
    assert top.matched_subcategory is False


def test_category_mismatch_is_skipped_even_with_keyword_and_medication_overlap():
    kb = kb_from(("acme", [area("acme_rheum", category="rheumatology", keywords=["HER2"], meds=["Palbociclib"])]))
    cls = make_classification(keywords=["HER2"], medications=["Palbociclib"])

    result = map_to_advertisers(cls, kb, MappingOptions(min_score=0))

    assert result.matches == ()
    assert result.top_match is None
    assert result.total_matches == 0


@pytest.mark.parametrize("weight, expected", [(1.0, 80.0), (0.5, 40.0), (1.1, 88.0)])
def test_priority_weight_multiplies_score(weight, expected):
    kb = kb_from(("acme", [area("acme_onc", weight=weight)]))
    top = map_to_advertisers(make_classification(), kb, MappingOptions(min_score=0)).top_match
    assert top.raw_score == pytest.approx(expected)


def test_score_is_capped_after_priority_weight():
    kb = kb_from(("acme", [area("acme_onc", meds=["Palbociclib"], weight=1.5)]))
    cls = make_classification(medications=["Palbociclib"])

    top = map_to_advertisers(cls, kb, MappingOptions(min_score=0)).top_match

    # (50 + 30 + 15) * 1.5 = 142.5
    assert top.raw_score == MAX_MAPPING_SCORE


# ═══════════════════════════════════════════════════════════════════
# 2. FILTERING AND ORDERING
# ═══════════════════════════════════════════════════════════════════

def test_matches_below_min_score_are_dropped():
    kb = kb_from(("acme", [area("acme_onc", subcategories=["lung_cancer"])]))

    result = map_to_advertisers(make_classification(), kb, MappingOptions(min_score=60))

    assert result.matches == ()
    assert result.min_score == 60


def test_bundled_catalogue_ranking(knowledge_base):
    cls = make_classification(medications=["Herceptin", "Ibrance"])

    result = map_to_advertisers(cls, knowledge_base)

    assert [m.treatment_area.id for m in result.matches] == ["genentech_oncology", "pfizer_oncology"]
    assert result.matches[0].raw_score == 100.0
    assert result.matches[1].raw_score == pytest.approx(99.75)
    assert result.total_matches == 2


def test_results_sorted_bounded_and_above_min_score(knowledge_base):
    cls = make_classification(
        category="rheumatology",
        subcategory="rheumatoid_arthritis",
        keywords=["rheumatoid arthritis", "autoimmune"],
    )
    opts = MappingOptions(min_score=40, max_results=2)

    result = map_to_advertisers(cls, knowledge_base, opts)

    scores = [m.raw_score for m in result.matches]
    assert len(result.matches) <= 2
    assert scores == sorted(scores, reverse=True)
    assert all(s >= opts.min_score for s in scores)
    assert result.total_matches == 3


def test_max_results_truncates(knowledge_base):
    cls = make_classification(medications=["Herceptin", "Ibrance"])
    result = map_to_advertisers(cls, knowledge_base, MappingOptions(max_results=1))
    assert len(result.matches) == 1
    assert result.top_match.treatment_area.id == "genentech_oncology"


def test_mapping_is_deterministic(knowledge_base):
    cls = make_classification(keywords=["breast cancer", "metastatic"], medications=["Herceptin"])
    first = map_to_advertisers(cls, knowledge_base)
    second = map_to_advertisers(cls, knowledge_base)
    assert first == second


# ═══════════════════════════════════════════════════════════════════
# 3. TIE-BREAK
# ═══════════════════════════════════════════════════════════════════

def test_equal_scores_keep_advertiser_insertion_order():
    kb = kb_from(
        ("zeta", [area("zeta_onc")]),
        ("alpha", [area("alpha_onc")]),
    )
    result = map_to_advertisers(make_classification(), kb, MappingOptions(min_score=0))

    assert [m.advertiser.id for m in result.matches] == ["zeta", "alpha"]
    assert result.matches[0].raw_score == result.matches[1].raw_score


def test_equal_scores_prefer_subcategory_match():
    kb = kb_from(
        # 50 + 2 keywords = 60
        ("first", [area("first_onc", subcategories=["lung_cancer"], keywords=["HER2", "metastatic"])]),
        # (50 + 30) * 0.75 = 60
        ("second", [area("second_onc", weight=0.75)]),
    )
    cls = make_classification(keywords=["HER2", "metastatic"])

    result = map_to_advertisers(cls, kb, MappingOptions(min_score=0))

    assert [m.raw_score for m in result.matches] == [60.0, 60.0]
    assert result.matches[0].treatment_area.id == "second_onc"


# ═══════════════════════════════════════════════════════════════════
# 4. OPTIONS AND TARGETING
# ═══════════════════════════════════════════════════════════════════

@pytest.mark.parametrize(
    "kwargs",
    [{"min_score": -1}, {"min_score": float("nan")}, {"min_score": float("inf")}, {"max_results": 0}],
)
def test_invalid_mapping_options_raise(kwargs):
    with pytest.raises(ConfigurationError):
        MappingOptions(**kwargs)


def test_targeting_helpers(knowledge_base):
    cls = make_classification(
        category="rheumatology",
        subcategory="rheumatoid_arthritis",
        keywords=["rheumatoid arthritis"],
    )
    result = map_to_advertisers(cls, knowledge_base, MappingOptions(max_results=5))

    assert targeting_treatment_areas(result) == [m.treatment_area.id for m in result.matches]
    assert sorted(targeting_advertisers(result)) == ["gsk", "lilly", "pfizer"]
