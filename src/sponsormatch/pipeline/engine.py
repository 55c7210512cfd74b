# src/sponsormatch/pipeline/engine.py
"""
Request-scoped staged pipeline.

    RECEIVED -> CLASSIFIED -> MAPPED -> SCORED -> DECIDED -> AD_SHOWN | NO_AD

Any per-request failure ends in NO_AD. Only ConfigurationError escapes, and it
can only be raised while the pipeline is being built. asyncio.CancelledError
is never caught: an abandoned request leaves no decision-log entry.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

from sponsormatch.config import Settings
from sponsormatch.core.logging import stage_ctx
from sponsormatch.pipeline.ad_content import AdContentResolver, StaticAdContentResolver
from sponsormatch.pipeline.category_mapper import MappingOptions, map_to_advertisers
from sponsormatch.pipeline.classifier import (
    DEFAULT_CLASSIFICATION_TIMEOUT_S,
    ClassificationProvider,
    OpenAIClassificationProvider,
    classify_question,
)
from sponsormatch.pipeline.confidence import ConfidenceOptions, enhance_confidence
from sponsormatch.pipeline.decision import decide
from sponsormatch.pipeline.decision_log import DecisionLogger
from sponsormatch.pipeline.embedding import EmbeddingProvider, OpenAIEmbeddingProvider
from sponsormatch.pipeline.errors import ConfigurationError
from sponsormatch.pipeline.knowledge_base import KnowledgeBase, load_knowledge_base
from sponsormatch.pipeline.models import (
    AdContent,
    EnhancedMatch,
    MappingResult,
    MedicalClassification,
    PipelineOutcome,
    PipelineStage,
    Verdict,
)

_log = logging.getLogger("sponsormatch.pipeline")

ENGINE_VERSION = "relevance-pipeline-v1"


@dataclass
class _Trace:
    stages: List[PipelineStage]
    started: float

    def enter(self, stage: PipelineStage) -> None:
        self.stages.append(stage)
        stage_ctx.set(stage.value)

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000.0


class AdRelevancePipeline:
    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        classifier: ClassificationProvider,
        embedder: Optional[EmbeddingProvider] = None,
        mapping_options: MappingOptions | None = None,
        confidence_options: ConfidenceOptions | None = None,
        ad_resolver: Optional[AdContentResolver] = None,
        decision_logger: Optional[DecisionLogger] = None,
        classification_timeout: float = DEFAULT_CLASSIFICATION_TIMEOUT_S,
    ) -> None:
        self.knowledge_base = knowledge_base
        self.classifier = classifier
        self.embedder = embedder
        self.mapping_options = mapping_options or MappingOptions()
        self.confidence_options = confidence_options or ConfidenceOptions()
        self.ad_resolver = ad_resolver
        self.decision_logger = decision_logger
        self.classification_timeout = classification_timeout

        if not math.isfinite(classification_timeout) or classification_timeout <= 0:
            raise ConfigurationError(
                f"classification_timeout must be finite and positive, got {classification_timeout}"
            )

    @property
    def threshold(self) -> float:
        return self.confidence_options.confidence_threshold

    @classmethod
    def from_settings(cls, settings: Settings, knowledge_base: KnowledgeBase | None = None) -> "AdRelevancePipeline":
        kb = knowledge_base or load_knowledge_base(settings.KNOWLEDGE_BASE_PATH)
        embedder = (
            OpenAIEmbeddingProvider(
                api_key=settings.OPENAI_API_KEY,
                model=settings.EMBEDDING_MODEL,
                timeout=settings.EMBEDDING_TIMEOUT_S,
            )
            if settings.SEMANTIC_ANALYSIS_ENABLED
            else None
        )
        return cls(
            knowledge_base=kb,
            classifier=OpenAIClassificationProvider(
                api_key=settings.OPENAI_API_KEY,
                model=settings.CLASSIFIER_MODEL,
                timeout=settings.CLASSIFICATION_TIMEOUT_S,
            ),
            embedder=embedder,
            mapping_options=MappingOptions(
                min_score=settings.MIN_MAPPING_SCORE,
                max_results=settings.MAX_MAPPING_RESULTS,
            ),
            confidence_options=ConfidenceOptions(
                confidence_threshold=settings.MIN_CONFIDENCE_THRESHOLD,
                semantic_analysis=settings.SEMANTIC_ANALYSIS_ENABLED,
                embedding_timeout=settings.EMBEDDING_TIMEOUT_S,
                score_all_matches=settings.SCORE_ALL_MATCHES,
            ),
            ad_resolver=StaticAdContentResolver(kb),
            decision_logger=(
                DecisionLogger(settings.DECISION_LOG_PATH, engine_version=ENGINE_VERSION)
                if settings.DECISION_LOG_PATH
                else None
            ),
            classification_timeout=settings.CLASSIFICATION_TIMEOUT_S,
        )

    # ----------------------------
    # Stages
    # ----------------------------

    async def classify(
        self, question: str, history: Sequence[Mapping[str, str]] = ()
    ) -> Optional[MedicalClassification]:
        return await classify_question(
            question, self.classifier, history=history, timeout=self.classification_timeout
        )

    def map(self, classification: MedicalClassification) -> MappingResult:
        return map_to_advertisers(classification, self.knowledge_base, self.mapping_options)

    async def score(self, mapping: MappingResult, question: str) -> Optional[EnhancedMatch]:
        return await enhance_confidence(mapping, question, self.embedder, self.confidence_options)

    async def resolve(self, verdict: Verdict) -> Optional[AdContent]:
        if not verdict.show_ad or verdict.match is None or self.ad_resolver is None:
            return None
        return await self.ad_resolver.resolve(verdict.match)

    # ----------------------------
    # Full run
    # ----------------------------

    async def run(self, question: str, history: Sequence[Mapping[str, str]] = ()) -> PipelineOutcome:
        trace = _Trace(stages=[], started=time.perf_counter())
        trace.enter(PipelineStage.RECEIVED)

        classification: Optional[MedicalClassification] = None
        mapping: Optional[MappingResult] = None
        enhanced: Optional[EnhancedMatch] = None
        ad_content: Optional[AdContent] = None

        try:
            classification = await self.classify(question, history)
            if classification is not None:
                trace.enter(PipelineStage.CLASSIFIED)
                mapping = self.map(classification)
                trace.enter(PipelineStage.MAPPED)
                if mapping.top_match is not None:
                    enhanced = await self.score(mapping, question.strip())
                    trace.enter(PipelineStage.SCORED)

            verdict = decide(enhanced, self.threshold)
            trace.enter(PipelineStage.DECIDED)

            if verdict.show_ad:
                ad_content = await self.resolve(verdict)
        except Exception:
            _log.exception("pipeline stage failed after %s (no ad)", trace.stages[-1].value)
            verdict = decide(None, self.threshold)

        terminal = PipelineStage.AD_SHOWN if verdict.show_ad else PipelineStage.NO_AD
        trace.enter(terminal)

        outcome = PipelineOutcome(
            verdict=verdict,
            stage=terminal,
            stages=tuple(trace.stages),
            classification=classification,
            mapping=mapping,
            enhanced=enhanced,
            ad_content=ad_content,
            elapsed_ms=trace.elapsed_ms,
        )

        _log.info(
            "decided show_ad=%s tier=%s confidence=%.3f area=%s ms=%.2f",
            verdict.show_ad,
            verdict.tier.value,
            verdict.confidence,
            verdict.match.match.treatment_area.id if verdict.match else None,
            outcome.elapsed_ms,
            extra={"fields": {"stages": [s.value for s in outcome.stages]}},
        )

        if self.decision_logger is not None:
            self.decision_logger.log(question, outcome)

        return outcome
