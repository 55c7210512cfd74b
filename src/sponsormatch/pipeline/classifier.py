# src/sponsormatch/pipeline/classifier.py
"""
Question text -> MedicalClassification.

The provider is injected. Any provider failure, timeout, malformed payload or
unknown category becomes a ClassificationError at this boundary; the public
``classify_question`` logs it and returns None so the request ends in NO_AD.
"""
from __future__ import annotations

import asyncio
import json
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from sponsormatch.pipeline.errors import ClassificationError
from sponsormatch.pipeline.models import CategoryScore, MedicalClassification, clamp

_log = logging.getLogger("sponsormatch.classifier")

DEFAULT_CLASSIFICATION_TIMEOUT_S = 10.0

UNKNOWN_CATEGORY = "unknown"

MEDICAL_CATEGORIES: Dict[str, Dict[str, Any]] = {
    "cardiology": {
        "name": "Cardiology",
        "subcategories": {
            "hypertension": "Hypertension",
            "arrhythmia": "Arrhythmia",
            "heart_failure": "Heart Failure",
            "coronary_artery_disease": "Coronary Artery Disease",
            "valvular_disease": "Valvular Heart Disease",
        },
    },
    "dermatology": {
        "name": "Dermatology",
        "subcategories": {
            "acne": "Acne",
            "psoriasis": "Psoriasis",
            "eczema": "Eczema",
            "melanoma": "Melanoma",
            "rosacea": "Rosacea",
        },
    },
    "endocrinology": {
        "name": "Endocrinology",
        "subcategories": {
            "diabetes": "Diabetes",
            "thyroid_disorders": "Thyroid Disorders",
            "adrenal_disorders": "Adrenal Disorders",
            "osteoporosis": "Osteoporosis",
            "pituitary_disorders": "Pituitary Disorders",
        },
    },
    "gastroenterology": {
        "name": "Gastroenterology",
        "subcategories": {
            "ibs": "Irritable Bowel Syndrome",
            "gerd": "Gastroesophageal Reflux Disease",
            "inflammatory_bowel_disease": "Inflammatory Bowel Disease",
            "hepatitis": "Hepatitis",
            "pancreatitis": "Pancreatitis",
        },
    },
    "neurology": {
        "name": "Neurology",
        "subcategories": {
            "migraine": "Migraine",
            "epilepsy": "Epilepsy",
            "multiple_sclerosis": "Multiple Sclerosis",
            "parkinsons": "Parkinson's Disease",
            "stroke": "Stroke",
        },
    },
    "oncology": {
        "name": "Oncology",
        "subcategories": {
            "breast_cancer": "Breast Cancer",
            "lung_cancer": "Lung Cancer",
            "prostate_cancer": "Prostate Cancer",
            "colorectal_cancer": "Colorectal Cancer",
            "pancreatic_cancer": "Pancreatic Cancer",
        },
    },
    "pulmonology": {
        "name": "Pulmonology",
        "subcategories": {
            "asthma": "Asthma",
            "copd": "COPD",
            "pneumonia": "Pneumonia",
            "pulmonary_fibrosis": "Pulmonary Fibrosis",
            "sleep_apnea": "Sleep Apnea",
        },
    },
    "rheumatology": {
        "name": "Rheumatology",
        "subcategories": {
            "rheumatoid_arthritis": "Rheumatoid Arthritis",
            "osteoarthritis": "Osteoarthritis",
            "lupus": "Lupus",
            "gout": "Gout",
            "fibromyalgia": "Fibromyalgia",
        },
    },
    "psychiatry": {
        "name": "Psychiatry",
        "subcategories": {
            "depression": "Depression",
            "anxiety": "Anxiety",
            "bipolar": "Bipolar Disorder",
            "schizophrenia": "Schizophrenia",
            "adhd": "ADHD",
        },
    },
    "infectious_diseases": {
        "name": "Infectious Diseases",
        "subcategories": {
            "covid19": "COVID-19",
            "hiv": "HIV/AIDS",
            "tuberculosis": "Tuberculosis",
            "lyme_disease": "Lyme Disease",
            "hepatitis_c": "Hepatitis C",
        },
    },
}


class ClassificationProvider(Protocol):
    async def classify(
        self, question: str, history: Sequence[Mapping[str, str]] = ()
    ) -> Dict[str, Any]:
        """Return the raw classification payload; raise on any failure."""
        ...


def build_prompt(question: str) -> str:
    category_lines: List[str] = []
    for cat_id, cat in MEDICAL_CATEGORIES.items():
        subs = "\n".join(f"    - {name} ({sub_id})" for sub_id, name in cat["subcategories"].items())
        category_lines.append(f"- {cat['name']} ({cat_id})\n  Subcategories:\n{subs}")

    return f"""
As a medical question classifier for a physician-focused platform, analyze the following medical question.

QUESTION: "{question}"

Provide a classification in JSON format with the following structure:
{{
  "primaryCategory": {{"id": "category_id", "name": "Category Name", "confidence": 0.95}},
  "subcategory": {{"id": "subcategory_id", "name": "Subcategory Name", "confidence": 0.85}},
  "keywords": ["keyword1", "keyword2", "keyword3"],
  "relevantMedications": ["medication1", "medication2"],
  "possibleIntents": ["treatment options", "dosing"],
  "demographicRelevance": {{"ageGroups": ["adult"], "gender": "any"}}
}}

Available medical categories with subcategories:
{chr(10).join(category_lines)}

Instructions:
1. Choose the most relevant primary category and specific subcategory
2. If the question doesn't clearly match a category, select the most probable one with lower confidence
3. Extract 3-5 relevant medical keywords from the question
4. If medications are mentioned or implied, include them in relevantMedications
5. List the likely clinical intents behind the question in possibleIntents
6. Fill demographicRelevance only with age groups or gender the question implies
7. Confidence scores: 0.9+ very certain, 0.6-0.8 moderately certain, below 0.6 uncertain

Your response must be valid JSON with the exact structure shown above.
"""


class OpenAIClassificationProvider:
    """Chat-completions classifier in JSON mode. The client is created on first use."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o",
        temperature: float = 0.1,
        max_tokens: int = 800,
        timeout: float = DEFAULT_CLASSIFICATION_TIMEOUT_S,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self.api_key or None, timeout=self.timeout)
        return self._client

    async def classify(
        self, question: str, history: Sequence[Mapping[str, str]] = ()
    ) -> Dict[str, Any]:
        client = self._get_client()
        messages = [{"role": m["role"], "content": m["content"]} for m in history]
        messages.append({"role": "system", "content": build_prompt(question)})

        response = await client.chat.completions.create(
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            messages=messages,
            response_format={"type": "json_object"},
        )

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ClassificationError("no content in classification response")

        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ClassificationError(f"classification response is not JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise ClassificationError("classification response is not a JSON object")
        return payload


# ----------------------------
# Payload parsing
# ----------------------------

def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _category(raw: Any, field_name: str) -> CategoryScore:
    if not isinstance(raw, Mapping):
        raise ClassificationError(f"{field_name} missing or not an object")

    cat_id = str(raw.get("id") or "").strip()
    if not cat_id:
        raise ClassificationError(f"{field_name} has empty id")

    try:
        confidence = float(raw.get("confidence", 0.0))
    except (TypeError, ValueError) as exc:
        raise ClassificationError(f"{field_name} confidence is not numeric") from exc
    if not math.isfinite(confidence):
        raise ClassificationError(f"{field_name} confidence is not finite")
    confidence = clamp(confidence)

    return CategoryScore(id=cat_id, name=str(raw.get("name") or cat_id), confidence=confidence)


def _terms(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        raise ClassificationError("term list is not an array")

    seen: set[str] = set()
    out: List[str] = []
    for item in raw:
        term = str(item).strip()
        if term and term.lower() not in seen:
            seen.add(term.lower())
            out.append(term)
    return tuple(out)


def parse_classification(payload: Mapping[str, Any], question: str) -> MedicalClassification:
    """Convert a provider payload (camelCase or snake_case) into a MedicalClassification."""
    if not isinstance(payload, Mapping):
        raise ClassificationError("classification payload is not an object")

    primary = _category(_pick(payload, "primaryCategory", "primary_category"), "primaryCategory")
    if primary.id.lower() == UNKNOWN_CATEGORY:
        raise ClassificationError("classification returned unknown category")

    sub_raw = _pick(payload, "subcategory", "subCategory")
    subcategory = (
        _category(sub_raw, "subcategory")
        if sub_raw
        else CategoryScore(id=UNKNOWN_CATEGORY, name="Unknown", confidence=0.0)
    )

    demographics = _pick(payload, "demographicRelevance", "demographic_relevance") or {}
    gender = demographics.get("gender") if isinstance(demographics, Mapping) else None

    return MedicalClassification(
        primary_category=primary,
        subcategory=subcategory,
        keywords=_terms(_pick(payload, "keywords")),
        question=question,
        medications=_terms(_pick(payload, "relevantMedications", "medications", "relevant_medications")),
        possible_intents=_terms(_pick(payload, "possibleIntents", "possible_intents")),
        age_groups=_terms(demographics.get("ageGroups")) if isinstance(demographics, Mapping) else (),
        gender=str(gender) if gender else None,
    )


# ----------------------------
# Public entrypoints
# ----------------------------

async def run_classification(
    question: str,
    provider: ClassificationProvider,
    history: Sequence[Mapping[str, str]] = (),
    timeout: float = DEFAULT_CLASSIFICATION_TIMEOUT_S,
) -> MedicalClassification:
    """Classify or raise ClassificationError."""
    text = (question or "").strip()
    if not text:
        raise ClassificationError("question is empty")

    try:
        payload = await asyncio.wait_for(provider.classify(text, history), timeout=timeout)
    except ClassificationError:
        raise
    except asyncio.TimeoutError as exc:
        raise ClassificationError(f"classification timed out after {timeout:.1f}s") from exc
    except Exception as exc:
        raise ClassificationError(f"classification provider failed: {exc}") from exc

    return parse_classification(payload, text)


async def classify_question(
    question: str,
    provider: ClassificationProvider,
    history: Sequence[Mapping[str, str]] = (),
    timeout: float = DEFAULT_CLASSIFICATION_TIMEOUT_S,
) -> Optional[MedicalClassification]:
    try:
        return await run_classification(question, provider, history=history, timeout=timeout)
    except ClassificationError as exc:
        _log.warning("classification failed (no ad): %s", exc)
        return None
