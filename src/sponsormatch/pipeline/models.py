# src/sponsormatch/pipeline/models.py
"""
Immutable values passed between pipeline stages.

    text -> MedicalClassification -> MappingResult -> EnhancedMatch -> Verdict

Every stage builds a new value; nothing here is mutated after construction.
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from sponsormatch.pipeline.errors import ConfigurationError


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    v = float(value)
    if math.isnan(v):
        raise ValueError("cannot clamp NaN")
    return max(lower, min(upper, v))


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class PipelineStage(str, Enum):
    RECEIVED = "RECEIVED"
    CLASSIFIED = "CLASSIFIED"
    MAPPED = "MAPPED"
    SCORED = "SCORED"
    DECIDED = "DECIDED"
    AD_SHOWN = "AD_SHOWN"
    NO_AD = "NO_AD"


# ----------------------------
# Classification
# ----------------------------

@dataclass(frozen=True)
class CategoryScore:
    id: str
    name: str
    confidence: float


@dataclass(frozen=True)
class MedicalClassification:
    primary_category: CategoryScore
    subcategory: CategoryScore
    keywords: Tuple[str, ...]
    question: str
    medications: Tuple[str, ...] = ()
    possible_intents: Tuple[str, ...] = ()
    age_groups: Tuple[str, ...] = ()
    gender: Optional[str] = None


# ----------------------------
# Knowledge base
# ----------------------------

@dataclass(frozen=True)
class TreatmentArea:
    id: str
    advertiser_id: str
    category_id: str
    subcategory_ids: Tuple[str, ...]
    keywords: Tuple[str, ...]
    flagship_medications: Tuple[str, ...]
    priority_weight: float = 1.0

    def __post_init__(self) -> None:
        if not math.isfinite(self.priority_weight) or self.priority_weight < 0:
            raise ConfigurationError(
                f"priority_weight for treatment area {self.id!r} must be finite and non-negative, "
                f"got {self.priority_weight}"
            )

    def description(self) -> str:
        """Text embedded for semantic comparison against the question."""
        parts = [self.category_id, *self.subcategory_ids, *self.keywords, *self.flagship_medications]
        return " ".join(p for p in parts if p)


@dataclass(frozen=True)
class Advertiser:
    id: str
    name: str
    treatment_areas: Tuple[TreatmentArea, ...]
    keywords: Tuple[str, ...] = ()
    logo_url: Optional[str] = None


# ----------------------------
# Mapping
# ----------------------------

@dataclass(frozen=True)
class CandidateMatch:
    advertiser: Advertiser
    treatment_area: TreatmentArea
    raw_score: float
    matched_keywords: Tuple[str, ...]
    matched_medications: Tuple[str, ...]
    matched_category: bool
    matched_subcategory: bool


@dataclass(frozen=True)
class MappingResult:
    matches: Tuple[CandidateMatch, ...]
    min_score: float
    max_results: int
    classification: Optional[MedicalClassification] = None
    total_matches: int = 0

    @property
    def top_match(self) -> Optional[CandidateMatch]:
        return self.matches[0] if self.matches else None


# ----------------------------
# Confidence
# ----------------------------

@dataclass(frozen=True)
class ConfidenceFactors:
    category_match: float
    semantic_similarity: Optional[float]
    specificity: float
    clinical_context: float
    keyword_relevance: float
    medication_match: float

    def active(self) -> Dict[str, float]:
        """Factors that carry a value; a None factor drops out of the weighting."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class EnhancedMatch:
    match: CandidateMatch
    factors: ConfidenceFactors
    overall_confidence: float
    weights: Dict[str, float] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return self.factors.semantic_similarity is None


# ----------------------------
# Decision
# ----------------------------

@dataclass(frozen=True)
class Verdict:
    show_ad: bool
    tier: ConfidenceTier
    match: Optional[EnhancedMatch]
    threshold: float

    @property
    def confidence(self) -> float:
        return self.match.overall_confidence if self.match else 0.0


@dataclass(frozen=True)
class AdContent:
    treatment_area_id: str
    advertiser_id: str
    headline: str
    body: str
    cta_text: str
    cta_url: str


@dataclass(frozen=True)
class PipelineOutcome:
    verdict: Verdict
    stage: PipelineStage
    stages: Tuple[PipelineStage, ...]
    classification: Optional[MedicalClassification] = None
    mapping: Optional[MappingResult] = None
    enhanced: Optional[EnhancedMatch] = None
    ad_content: Optional[AdContent] = None
    elapsed_ms: float = 0.0
