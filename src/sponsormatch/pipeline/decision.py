# src/sponsormatch/pipeline/decision.py
from __future__ import annotations

from typing import Optional

from sponsormatch.pipeline.errors import ConfigurationError
from sponsormatch.pipeline.models import ConfidenceTier, EnhancedMatch, Verdict

DEFAULT_THRESHOLD = 0.65
HIGH_CONFIDENCE_FLOOR = 0.75


def decide(enhanced: Optional[EnhancedMatch], threshold: float = DEFAULT_THRESHOLD) -> Verdict:
    """
    The only place display policy lives. Pure: no I/O, no state.

    No match              -> show_ad=False, tier=none
    confidence < threshold -> show_ad=False, tier=low
    confidence < 0.75      -> show_ad=True,  tier=medium
    otherwise              -> show_ad=True,  tier=high
    """
    if not 0.0 <= threshold <= 1.0:
        raise ConfigurationError(f"threshold must be within [0, 1], got {threshold}")

    if enhanced is None:
        return Verdict(show_ad=False, tier=ConfidenceTier.NONE, match=None, threshold=threshold)

    confidence = enhanced.overall_confidence
    if confidence < threshold:
        return Verdict(show_ad=False, tier=ConfidenceTier.LOW, match=enhanced, threshold=threshold)

    tier = ConfidenceTier.HIGH if confidence >= HIGH_CONFIDENCE_FLOOR else ConfidenceTier.MEDIUM
    return Verdict(show_ad=True, tier=tier, match=enhanced, threshold=threshold)
