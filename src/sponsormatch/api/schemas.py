# src/sponsormatch/api/schemas.py
from __future__ import annotations

from dataclasses import asdict
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, confloat, field_validator

from sponsormatch.pipeline.models import MedicalClassification, PipelineOutcome


class HistoryMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class QuestionRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=4000, description="Physician question text")
    history: List[HistoryMessage] = Field(default_factory=list, max_length=20)

    @field_validator("question")
    @classmethod
    def strip_question(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("question must not be blank")
        return v

    def history_dicts(self) -> List[Dict[str, str]]:
        return [m.model_dump() for m in self.history]


class CategoryOut(BaseModel):
    id: str
    name: str
    confidence: confloat(ge=0, le=1)


class ClassificationOut(BaseModel):
    primary_category: CategoryOut
    subcategory: CategoryOut
    keywords: List[str]
    medications: List[str]
    possible_intents: List[str] = Field(default_factory=list)
    age_groups: List[str] = Field(default_factory=list)
    gender: Optional[str] = None

    @classmethod
    def from_classification(cls, c: MedicalClassification) -> "ClassificationOut":
        return cls(
            primary_category=CategoryOut(**asdict(c.primary_category)),
            subcategory=CategoryOut(**asdict(c.subcategory)),
            keywords=list(c.keywords),
            medications=list(c.medications),
            possible_intents=list(c.possible_intents),
            age_groups=list(c.age_groups),
            gender=c.gender,
        )


class ClassifyResponse(BaseModel):
    classification: Optional[ClassificationOut] = None
    request_id: Optional[str] = None


class AdContentOut(BaseModel):
    headline: str
    body: str
    cta_text: str
    cta_url: str


class DecisionResponse(BaseModel):
    show_ad: bool
    tier: Literal["high", "medium", "low", "none"]
    confidence: confloat(ge=0, le=1)
    threshold: confloat(ge=0, le=1)
    stage: str
    advertiser_id: Optional[str] = None
    advertiser_name: Optional[str] = None
    treatment_area_id: Optional[str] = None
    raw_score: Optional[float] = None
    factors: Dict[str, Optional[float]] = Field(default_factory=dict)
    degraded: Optional[bool] = None
    ad: Optional[AdContentOut] = None
    request_id: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: PipelineOutcome, request_id: Optional[str]) -> "DecisionResponse":
        verdict = outcome.verdict
        enhanced = verdict.match
        match = enhanced.match if enhanced else None
        ad = outcome.ad_content

        return cls(
            show_ad=verdict.show_ad,
            tier=verdict.tier.value,
            confidence=verdict.confidence,
            threshold=verdict.threshold,
            stage=outcome.stage.value,
            advertiser_id=match.advertiser.id if match else None,
            advertiser_name=match.advertiser.name if match else None,
            treatment_area_id=match.treatment_area.id if match else None,
            raw_score=match.raw_score if match else None,
            factors=asdict(enhanced.factors) if enhanced else {},
            degraded=enhanced.degraded if enhanced else None,
            ad=(
                AdContentOut(headline=ad.headline, body=ad.body, cta_text=ad.cta_text, cta_url=ad.cta_url)
                if ad
                else None
            ),
            request_id=request_id,
        )
