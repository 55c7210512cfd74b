# src/sponsormatch/pipeline/knowledge_base.py
"""
Static advertiser catalogue.

Loaded once at process start from a JSON file and never mutated afterwards;
concurrent requests share it read-only.

Expected JSON shape:
    {
      "advertisers": [
        {
          "id": "...", "name": "...", "keywords": [...], "logo_url": "...",
          "treatment_areas": [
            {"id": "...", "category": "...", "subcategories": [...],
             "keywords": [...], "flagship_medications": [...],
             "priority_weight": 1.0, "creative": {...}}
          ]
        }
      ]
    }
"""
from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sponsormatch.pipeline.errors import ConfigurationError
from sponsormatch.pipeline.models import AdContent, Advertiser, TreatmentArea

_log = logging.getLogger("sponsormatch.knowledge_base")


class KnowledgeBase:
    def __init__(
        self,
        advertisers: List[Advertiser] | Tuple[Advertiser, ...],
        creatives: Dict[str, AdContent] | None = None,
        version: str = "",
    ) -> None:
        self._advertisers: Tuple[Advertiser, ...] = tuple(advertisers)
        self._by_id: Dict[str, Advertiser] = {a.id: a for a in self._advertisers}
        self._creatives: Dict[str, AdContent] = dict(creatives or {})
        self.version = version

        if len(self._by_id) != len(self._advertisers):
            raise ConfigurationError("duplicate advertiser id in knowledge base")

    # ----------------------------
    # Loading
    # ----------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KnowledgeBase":
        advertisers: List[Advertiser] = []
        creatives: Dict[str, AdContent] = {}

        for raw in data.get("advertisers", []):
            adv_id = str(raw["id"])
            areas: List[TreatmentArea] = []
            for ta in raw.get("treatment_areas", []):
                weight = float(ta.get("priority_weight", 1.0))
                if not math.isfinite(weight) or weight < 0:
                    raise ConfigurationError(
                        f"priority_weight must be finite and non-negative for treatment area {ta.get('id')!r}"
                    )

                area = TreatmentArea(
                    id=str(ta["id"]),
                    advertiser_id=adv_id,
                    category_id=str(ta["category"]),
                    subcategory_ids=tuple(str(s) for s in ta.get("subcategories", [])),
                    keywords=tuple(str(k) for k in ta.get("keywords", [])),
                    flagship_medications=tuple(str(m) for m in ta.get("flagship_medications", [])),
                    priority_weight=weight,
                )
                areas.append(area)

                creative = ta.get("creative")
                if creative:
                    creatives[area.id] = AdContent(
                        treatment_area_id=area.id,
                        advertiser_id=adv_id,
                        headline=str(creative.get("headline", "")),
                        body=str(creative.get("body", "")),
                        cta_text=str(creative.get("cta_text", "")),
                        cta_url=str(creative.get("cta_url", "")),
                    )

            advertisers.append(
                Advertiser(
                    id=adv_id,
                    name=str(raw.get("name", adv_id)),
                    treatment_areas=tuple(areas),
                    keywords=tuple(str(k) for k in raw.get("keywords", [])),
                    logo_url=raw.get("logo_url"),
                )
            )

        return cls(advertisers, creatives=creatives, version=str(data.get("version", "")))

    @classmethod
    def from_json(cls, path: str | Path) -> "KnowledgeBase":
        p = Path(path)
        if not p.exists():
            raise ConfigurationError(f"knowledge base not found: {p}")

        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"knowledge base is not valid JSON: {exc}") from exc

        try:
            kb = cls.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"knowledge base malformed: {exc}") from exc

        _log.info(
            "knowledge base loaded path=%s advertisers=%d treatment_areas=%d",
            p,
            len(kb.advertisers),
            kb.treatment_area_count,
        )
        return kb

    # ----------------------------
    # Queries
    # ----------------------------

    @property
    def advertisers(self) -> Tuple[Advertiser, ...]:
        return self._advertisers

    @property
    def treatment_area_count(self) -> int:
        return sum(len(a.treatment_areas) for a in self._advertisers)

    def iter_treatment_areas(self) -> Iterator[Tuple[Advertiser, TreatmentArea]]:
        """Yield (advertiser, area) in insertion order."""
        for advertiser in self._advertisers:
            for area in advertiser.treatment_areas:
                yield advertiser, area

    def get_advertiser(self, advertiser_id: str) -> Optional[Advertiser]:
        return self._by_id.get(advertiser_id)

    def treatment_areas_for_category(self, category_id: str) -> List[TreatmentArea]:
        return [area for _, area in self.iter_treatment_areas() if area.category_id == category_id]

    def advertisers_for_category(self, category_id: str) -> List[Advertiser]:
        return [
            a for a in self._advertisers
            if any(area.category_id == category_id for area in a.treatment_areas)
        ]

    def creative_for(self, treatment_area_id: str) -> Optional[AdContent]:
        return self._creatives.get(treatment_area_id)


def load_knowledge_base(path: str | Path) -> KnowledgeBase:
    return KnowledgeBase.from_json(path)
