# src/sponsormatch/pipeline/confidence.py
"""
Multi-factor confidence for candidate matches.

Formula: overall = sum(w_i * f_i) / sum(w_i) over the ACTIVE factors.

A factor whose compute function returns None (semantic similarity when the
embedding provider is disabled or fails) drops out, and the remaining weights
are re-normalised so the result is still a convex combination in [0, 1].
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from sponsormatch.pipeline.embedding import (
    DEFAULT_EMBEDDING_TIMEOUT_S,
    EmbeddingProvider,
    cosine_similarity,
    embed_text,
)
from sponsormatch.pipeline.errors import ConfigurationError, EmbeddingError
from sponsormatch.pipeline.models import (
    CandidateMatch,
    ConfidenceFactors,
    EnhancedMatch,
    MappingResult,
    MedicalClassification,
    clamp,
)

_log = logging.getLogger("sponsormatch.confidence")

DEFAULT_CONFIDENCE_THRESHOLD = 0.65
SUBCATEGORY_PARTIAL_CREDIT = 0.6

SPECIFICITY_INDICATORS = (
    "specific", "exact", "precise", "particular", "detailed",
    "dosage", "protocol", "regimen", "guideline", "procedure",
)

GENERALITY_INDICATORS = (
    "general", "overview", "broad", "basics", "introduction",
    "summary", "primer", "background", "fundamentals",
)

CLINICAL_CONTEXT_INDICATORS = (
    "treatment", "therapy", "medication", "drug", "dose",
    "diagnosis", "prognosis", "management", "care", "patient",
    "clinical", "trial", "evidence", "study", "guideline",
    "contraindication", "side effect", "adverse", "efficacy",
    "effectiveness", "prescription", "administer", "therapeutic",
    "regimen",
)


def _term_re(term: str) -> re.Pattern[str]:
    # prefix match: "dose" hits "doses", "care" does not hit "healthcare"
    return re.compile(r"\b" + re.escape(term), re.IGNORECASE)


_SPECIFIC_RE = {t: _term_re(t) for t in SPECIFICITY_INDICATORS}
_GENERAL_RE = {t: _term_re(t) for t in GENERALITY_INDICATORS}
_CLINICAL_RE = {t: _term_re(t) for t in CLINICAL_CONTEXT_INDICATORS}


@dataclass(frozen=True)
class ConfidenceOptions:
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    semantic_analysis: bool = True
    embedding_timeout: float = DEFAULT_EMBEDDING_TIMEOUT_S
    score_all_matches: bool = False

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ConfigurationError(
                f"confidence_threshold must be within [0, 1], got {self.confidence_threshold}"
            )
        if not math.isfinite(self.embedding_timeout) or self.embedding_timeout <= 0:
            raise ConfigurationError(f"embedding_timeout must be finite and positive, got {self.embedding_timeout}")


@dataclass(frozen=True)
class FactorContext:
    match: CandidateMatch
    classification: MedicalClassification
    question: str
    semantic_similarity: Optional[float] = None


# ----------------------------
# Factor computations
# ----------------------------

def category_match_score(ctx: FactorContext) -> float:
    credit = 1.0 if ctx.match.matched_subcategory else SUBCATEGORY_PARTIAL_CREDIT
    return clamp(ctx.classification.primary_category.confidence * credit)


def semantic_similarity_score(ctx: FactorContext) -> Optional[float]:
    if ctx.semantic_similarity is None:
        return None
    return clamp(ctx.semantic_similarity)


def specificity_score(ctx: FactorContext) -> float:
    score = 0.5
    score += 0.1 * sum(1 for rx in _SPECIFIC_RE.values() if rx.search(ctx.question))
    score -= 0.1 * sum(1 for rx in _GENERAL_RE.values() if rx.search(ctx.question))

    word_count = len(ctx.question.split())
    if word_count > 20:
        score += 0.1
    elif word_count < 5:
        score -= 0.1

    score += (ctx.classification.primary_category.confidence - 0.5) * 0.2
    score += (ctx.classification.subcategory.confidence - 0.5) * 0.2
    return clamp(score)


def clinical_context_score(ctx: FactorContext) -> float:
    score = 0.1 * sum(1 for rx in _CLINICAL_RE.values() if rx.search(ctx.question))
    if ctx.classification.medications:
        score += 0.3
    return clamp(score)


def keyword_relevance_score(ctx: FactorContext) -> float:
    area_keywords = ctx.match.treatment_area.keywords
    if not area_keywords:
        return 0.0
    return clamp(len(ctx.match.matched_keywords) / len(area_keywords))


def medication_match_score(ctx: FactorContext) -> float:
    if not ctx.classification.medications:
        return 0.5
    matched = len(ctx.match.matched_medications)
    if matched == 0:
        return 0.1
    flagship = len(ctx.match.treatment_area.flagship_medications) or 1
    return clamp(1.5 * matched / flagship)


@dataclass(frozen=True)
class FactorSpec:
    name: str
    weight: float
    compute: Callable[[FactorContext], Optional[float]]


FACTOR_TABLE: Tuple[FactorSpec, ...] = (
    FactorSpec("category_match", 0.25, category_match_score),
    FactorSpec("semantic_similarity", 0.20, semantic_similarity_score),
    FactorSpec("specificity", 0.15, specificity_score),
    FactorSpec("clinical_context", 0.20, clinical_context_score),
    FactorSpec("keyword_relevance", 0.10, keyword_relevance_score),
    FactorSpec("medication_match", 0.10, medication_match_score),
)

FACTOR_WEIGHTS: Dict[str, float] = {spec.name: spec.weight for spec in FACTOR_TABLE}


def validate_factor_table(table: Tuple[FactorSpec, ...] = FACTOR_TABLE) -> None:
    for spec in table:
        if not 0.0 <= spec.weight <= 1.0:
            raise ConfigurationError(f"factor weight out of range: {spec.name}={spec.weight}")
    total = sum(spec.weight for spec in table)
    if not math.isclose(total, 1.0, abs_tol=1e-9):
        raise ConfigurationError(f"factor weights must sum to 1.0, got {total}")


validate_factor_table()


def effective_weights(active: List[str]) -> Dict[str, float]:
    """Re-normalise the table weights over the active factor names."""
    total = sum(FACTOR_WEIGHTS[name] for name in active)
    if total <= 0:
        return {}
    return {name: FACTOR_WEIGHTS[name] / total for name in active}


def combine_factors(factors: ConfidenceFactors) -> Tuple[float, Dict[str, float]]:
    active = factors.active()
    weights = effective_weights(list(active))
    overall = sum(weights[name] * value for name, value in active.items())
    return clamp(overall), weights


def compute_factors(ctx: FactorContext) -> ConfidenceFactors:
    values = {spec.name: spec.compute(ctx) for spec in FACTOR_TABLE}
    return ConfidenceFactors(**values)


def score_match(ctx: FactorContext) -> EnhancedMatch:
    factors = compute_factors(ctx)
    overall, weights = combine_factors(factors)
    return EnhancedMatch(
        match=ctx.match,
        factors=factors,
        overall_confidence=round(overall, 6),
        weights=weights,
    )


# ----------------------------
# Semantic similarity
# ----------------------------

async def _semantic_similarities(
    matches: Tuple[CandidateMatch, ...],
    question: str,
    embedder: Optional[EmbeddingProvider],
    options: ConfidenceOptions,
) -> Dict[str, Optional[float]]:
    sims: Dict[str, Optional[float]] = {m.treatment_area.id: None for m in matches}
    if not options.semantic_analysis or embedder is None or not matches:
        return sims

    try:
        question_vec: np.ndarray = await embed_text(embedder, question, timeout=options.embedding_timeout)
    except EmbeddingError as exc:
        _log.warning("question embedding failed, semantic factor omitted: %s", exc)
        return sims

    for match in matches:
        area = match.treatment_area
        if sims.get(area.id) is not None:
            continue
        try:
            area_vec = await embed_text(embedder, area.description(), timeout=options.embedding_timeout)
            sims[area.id] = cosine_similarity(question_vec, area_vec)
        except EmbeddingError as exc:
            _log.warning("embedding failed for area=%s, semantic factor omitted: %s", area.id, exc)
    return sims


# ----------------------------
# Public entrypoints
# ----------------------------

async def enhance_matches(
    mapping_result: MappingResult,
    question: str,
    embedder: Optional[EmbeddingProvider] = None,
    options: ConfidenceOptions | None = None,
    classification: MedicalClassification | None = None,
) -> Tuple[EnhancedMatch, ...]:
    """Enhance every candidate, ordered by overall confidence (ties keep mapping rank)."""
    opts = options or ConfidenceOptions()
    cls = classification or mapping_result.classification
    if cls is None or not mapping_result.matches:
        return ()

    sims = await _semantic_similarities(mapping_result.matches, question, embedder, opts)
    enhanced = [
        score_match(
            FactorContext(
                match=m,
                classification=cls,
                question=question,
                semantic_similarity=sims.get(m.treatment_area.id),
            )
        )
        for m in mapping_result.matches
    ]
    enhanced.sort(key=lambda e: -e.overall_confidence)
    return tuple(enhanced)


async def enhance_confidence(
    mapping_result: MappingResult,
    question: str,
    embedder: Optional[EmbeddingProvider] = None,
    options: ConfidenceOptions | None = None,
    classification: MedicalClassification | None = None,
) -> Optional[EnhancedMatch]:
    opts = options or ConfidenceOptions()
    top = mapping_result.top_match
    if top is None:
        return None

    target = mapping_result if opts.score_all_matches else replace(mapping_result, matches=(top,))
    ranked = await enhance_matches(target, question, embedder, opts, classification)
    best = ranked[0] if ranked else None

    if best is not None:
        _log.info(
            "confidence area=%s overall=%.3f degraded=%s above_threshold=%s",
            best.match.treatment_area.id,
            best.overall_confidence,
            best.degraded,
            best.overall_confidence >= opts.confidence_threshold,
        )
    return best
