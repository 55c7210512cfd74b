from __future__ import annotations

import pytest

from conftest import area, kb_from, make_classification
from sponsormatch.pipeline.category_mapper import MappingOptions, map_to_advertisers
from sponsormatch.pipeline.decision import HIGH_CONFIDENCE_FLOOR, decide
from sponsormatch.pipeline.errors import ConfigurationError
from sponsormatch.pipeline.models import ConfidenceFactors, ConfidenceTier, EnhancedMatch


def _enhanced(confidence: float) -> EnhancedMatch:
    kb = kb_from(("acme", [area("acme_onc")]))
    match = map_to_advertisers(make_classification(), kb, MappingOptions(min_score=0)).top_match
    factors = ConfidenceFactors(confidence, None, confidence, confidence, confidence, confidence)
    return EnhancedMatch(match=match, factors=factors, overall_confidence=confidence)


def test_no_match_is_tier_none():
    verdict = decide(None)
    assert verdict.show_ad is False
    assert verdict.tier == ConfidenceTier.NONE
    assert verdict.confidence == 0.0


@pytest.mark.parametrize(
    "confidence, show_ad, tier",
    [
        (0.0, False, ConfidenceTier.LOW),
        (0.6499, False, ConfidenceTier.LOW),
        (0.65, True, ConfidenceTier.MEDIUM),
        (0.7461, True, ConfidenceTier.MEDIUM),
        (HIGH_CONFIDENCE_FLOOR, True, ConfidenceTier.HIGH),
        (1.0, True, ConfidenceTier.HIGH),
    ],
)
def test_tiers_at_default_threshold(confidence, show_ad, tier):
    verdict = decide(_enhanced(confidence))
    assert verdict.show_ad is show_ad
    assert verdict.tier == tier
    assert verdict.threshold == 0.65


def test_custom_threshold_moves_low_cutoff():
    verdict = decide(_enhanced(0.55), threshold=0.5)
    assert verdict.show_ad is True
    assert verdict.tier == ConfidenceTier.MEDIUM


def test_threshold_above_high_floor_still_reports_high():
    verdict = decide(_enhanced(0.85), threshold=0.8)
    assert verdict.show_ad is True
    assert verdict.tier == ConfidenceTier.HIGH


def test_decide_is_pure():
    enhanced = _enhanced(0.7)
    assert decide(enhanced) == decide(enhanced)


@pytest.mark.parametrize("threshold", [-0.1, 1.01])
def test_invalid_threshold_raises(threshold):
    with pytest.raises(ConfigurationError):
        decide(None, threshold=threshold)
