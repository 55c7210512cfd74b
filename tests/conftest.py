from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest

from sponsormatch.config import DEFAULT_KNOWLEDGE_BASE_PATH
from sponsormatch.pipeline.knowledge_base import KnowledgeBase, load_knowledge_base
from sponsormatch.pipeline.models import CategoryScore, MedicalClassification


# ── Stub providers ────────────────────────────────────────────────────────────

class StubClassifier:
    """Returns a fixed payload (or raises) and records every call."""

    def __init__(self, payload: Optional[Dict[str, Any]] = None, exc: Exception | None = None,
                 delay: float = 0.0) -> None:
        self.payload = payload
        self.exc = exc
        self.delay = delay
        self.calls: List[tuple[str, list]] = []

    async def classify(self, question: str, history: Sequence[Mapping[str, str]] = ()) -> Dict[str, Any]:
        self.calls.append((question, list(history)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return copy.deepcopy(self.payload)


class StubEmbedder:
    """Deterministic vectors: per-text overrides, else a shared default."""

    def __init__(self, default: Sequence[float] = (1.0, 0.0, 0.0),
                 by_text: Optional[Dict[str, Sequence[float]]] = None) -> None:
        self.default = list(default)
        self.by_text = dict(by_text or {})
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        return list(self.by_text.get(text, self.default))


class FailingEmbedder:
    def __init__(self, exc: Exception | None = None, delay: float = 0.0) -> None:
        self.exc = exc or RuntimeError("embedding service unavailable")
        self.delay = delay
        self.calls = 0

    async def embed(self, text: str) -> List[float]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        raise self.exc


# ── Builders ─────────────────────────────────────────────────────────────────

def make_classification(
    category: str = "oncology",
    category_confidence: float = 0.9,
    subcategory: str = "breast_cancer",
    subcategory_confidence: float = 0.9,
    keywords: Sequence[str] = (),
    medications: Sequence[str] = (),
    question: str = "test question",
) -> MedicalClassification:
    return MedicalClassification(
        primary_category=CategoryScore(category, category.title(), category_confidence),
        subcategory=CategoryScore(subcategory, subcategory.replace("_", " ").title(), subcategory_confidence),
        keywords=tuple(keywords),
        question=question,
        medications=tuple(medications),
    )


def classification_payload(
    category: str = "oncology",
    category_confidence: float = 0.95,
    subcategory: str = "breast_cancer",
    subcategory_confidence: float = 0.92,
    keywords: Sequence[str] = ("breast cancer", "HER2", "metastatic"),
    medications: Sequence[str] = ("Herceptin",),
) -> Dict[str, Any]:
    return {
        "primaryCategory": {"id": category, "name": category.title(), "confidence": category_confidence},
        "subcategory": {"id": subcategory, "name": subcategory.title(), "confidence": subcategory_confidence},
        "keywords": list(keywords),
        "relevantMedications": list(medications),
    }


def area(area_id: str, category: str = "oncology", subcategories: Sequence[str] = ("breast_cancer",),
         keywords: Sequence[str] = (), meds: Sequence[str] = (), weight: float = 1.0) -> Dict[str, Any]:
    return {
        "id": area_id,
        "category": category,
        "subcategories": list(subcategories),
        "keywords": list(keywords),
        "flagship_medications": list(meds),
        "priority_weight": weight,
    }


def kb_from(*advertisers: tuple[str, list]) -> KnowledgeBase:
    return KnowledgeBase.from_dict(
        {"advertisers": [{"id": adv_id, "name": adv_id.title(), "treatment_areas": areas}
                         for adv_id, areas in advertisers]}
    )


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def knowledge_base() -> KnowledgeBase:
    return load_knowledge_base(DEFAULT_KNOWLEDGE_BASE_PATH)


@pytest.fixture
def breast_cancer_question() -> str:
    return (
        "What is the recommended dosage regimen of Herceptin for a patient with "
        "HER2-positive metastatic breast cancer after adjuvant therapy?"
    )
