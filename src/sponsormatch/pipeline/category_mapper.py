# src/sponsormatch/pipeline/category_mapper.py
"""
Rule-based scoring of (advertiser, treatment area) pairs against a classification.

    +50  category match (qualification gate, required)
    +30  subcategory is one of the area's subcategories
    +5   per classification keyword in the area keyword set
    +15  per classification medication in the area flagship set
    x    area priority_weight, capped at MAX_MAPPING_SCORE

Ranking is deterministic: score desc, subcategory match first, then
knowledge-base insertion order (advertiser, then treatment area).
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List

import pandas as pd

from sponsormatch.pipeline.errors import ConfigurationError
from sponsormatch.pipeline.knowledge_base import KnowledgeBase
from sponsormatch.pipeline.models import (
    Advertiser,
    CandidateMatch,
    MappingResult,
    MedicalClassification,
    TreatmentArea,
)

_log = logging.getLogger("sponsormatch.category_mapper")

CATEGORY_MATCH_POINTS = 50.0
SUBCATEGORY_MATCH_POINTS = 30.0
KEYWORD_MATCH_POINTS = 5.0
MEDICATION_MATCH_POINTS = 15.0
MAX_MAPPING_SCORE = 100.0

DEFAULT_MIN_SCORE = 40.0
DEFAULT_MAX_RESULTS = 3


@dataclass(frozen=True)
class MappingOptions:
    min_score: float = DEFAULT_MIN_SCORE
    max_results: int = DEFAULT_MAX_RESULTS

    def __post_init__(self) -> None:
        if not math.isfinite(self.min_score) or self.min_score < 0:
            raise ConfigurationError(f"min_score must be finite and non-negative, got {self.min_score}")
        if self.max_results < 1:
            raise ConfigurationError(f"max_results must be at least 1, got {self.max_results}")


def score_treatment_area(
    classification: MedicalClassification,
    advertiser: Advertiser,
    area: TreatmentArea,
) -> CandidateMatch | None:
    """Score one pair; None when the area's category does not match."""
    if area.category_id != classification.primary_category.id:
        return None

    score = CATEGORY_MATCH_POINTS

    matched_subcategory = classification.subcategory.id in area.subcategory_ids
    if matched_subcategory:
        score += SUBCATEGORY_MATCH_POINTS

    area_keywords = {k.lower() for k in area.keywords}
    matched_keywords = tuple(k for k in classification.keywords if k.lower() in area_keywords)
    score += KEYWORD_MATCH_POINTS * len(matched_keywords)

    flagship = {m.lower() for m in area.flagship_medications}
    matched_medications = tuple(m for m in classification.medications if m.lower() in flagship)
    score += MEDICATION_MATCH_POINTS * len(matched_medications)

    score = min(MAX_MAPPING_SCORE, round(score * area.priority_weight, 2))

    return CandidateMatch(
        advertiser=advertiser,
        treatment_area=area,
        raw_score=max(0.0, score),
        matched_keywords=matched_keywords,
        matched_medications=matched_medications,
        matched_category=True,
        matched_subcategory=matched_subcategory,
    )


def map_to_advertisers(
    classification: MedicalClassification,
    knowledge_base: KnowledgeBase,
    options: MappingOptions | None = None,
) -> MappingResult:
    opts = options or MappingOptions()

    candidates: List[CandidateMatch] = []
    rows = []
    for adv_order, advertiser in enumerate(knowledge_base.advertisers):
        for area_order, area in enumerate(advertiser.treatment_areas):
            match = score_treatment_area(classification, advertiser, area)
            if match is None:
                continue
            rows.append(
                {
                    "idx": len(candidates),
                    "score": match.raw_score,
                    "subcategory": match.matched_subcategory,
                    "adv_order": adv_order,
                    "area_order": area_order,
                }
            )
            candidates.append(match)

    if not rows:
        _log.info("no treatment area qualifies for category=%s", classification.primary_category.id)
        return MappingResult(
            matches=(),
            min_score=opts.min_score,
            max_results=opts.max_results,
            classification=classification,
            total_matches=0,
        )

    df = pd.DataFrame(rows)
    df = df[df["score"] >= opts.min_score]
    df = df.sort_values(
        by=["score", "subcategory", "adv_order", "area_order"],
        ascending=[False, False, True, True],
        kind="mergesort",
    )

    total = int(len(df))
    ranked = tuple(candidates[int(i)] for i in df["idx"].head(opts.max_results))

    _log.info(
        "mapped category=%s qualified=%d above_min=%d returned=%d top=%s",
        classification.primary_category.id,
        len(candidates),
        total,
        len(ranked),
        ranked[0].treatment_area.id if ranked else None,
    )

    return MappingResult(
        matches=ranked,
        min_score=opts.min_score,
        max_results=opts.max_results,
        classification=classification,
        total_matches=total,
    )


def targeting_treatment_areas(result: MappingResult) -> List[str]:
    return [m.treatment_area.id for m in result.matches]


def targeting_advertisers(result: MappingResult) -> List[str]:
    seen: List[str] = []
    for m in result.matches:
        if m.advertiser.id not in seen:
            seen.append(m.advertiser.id)
    return seen
