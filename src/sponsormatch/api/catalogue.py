# src/sponsormatch/api/catalogue.py
"""
Read-only views over the advertiser catalogue.

GET /catalogue/categories/{category_id}   advertisers and treatment areas competing for a category
GET /catalogue/advertisers/{advertiser_id} one advertiser with its treatment areas
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from sponsormatch.api.deps import get_pipeline
from sponsormatch.pipeline.engine import AdRelevancePipeline
from sponsormatch.pipeline.models import Advertiser, TreatmentArea

router = APIRouter(prefix="/catalogue", tags=["catalogue"])


class TreatmentAreaOut(BaseModel):
    id: str
    advertiser_id: str
    category_id: str
    subcategory_ids: List[str]
    keywords: List[str]
    flagship_medications: List[str]
    priority_weight: float

    @classmethod
    def from_area(cls, area: TreatmentArea) -> "TreatmentAreaOut":
        return cls(
            id=area.id,
            advertiser_id=area.advertiser_id,
            category_id=area.category_id,
            subcategory_ids=list(area.subcategory_ids),
            keywords=list(area.keywords),
            flagship_medications=list(area.flagship_medications),
            priority_weight=area.priority_weight,
        )


class AdvertiserOut(BaseModel):
    id: str
    name: str
    logo_url: Optional[str] = None
    treatment_areas: List[TreatmentAreaOut]

    @classmethod
    def from_advertiser(cls, advertiser: Advertiser) -> "AdvertiserOut":
        return cls(
            id=advertiser.id,
            name=advertiser.name,
            logo_url=advertiser.logo_url,
            treatment_areas=[TreatmentAreaOut.from_area(a) for a in advertiser.treatment_areas],
        )


class CategoryCatalogueOut(BaseModel):
    category_id: str
    advertiser_ids: List[str]
    treatment_areas: List[TreatmentAreaOut]


@router.get("/categories/{category_id}", response_model=CategoryCatalogueOut)
async def category_catalogue(category_id: str, pipeline: AdRelevancePipeline = Depends(get_pipeline)):
    kb = pipeline.knowledge_base
    return CategoryCatalogueOut(
        category_id=category_id,
        advertiser_ids=[a.id for a in kb.advertisers_for_category(category_id)],
        treatment_areas=[TreatmentAreaOut.from_area(a) for a in kb.treatment_areas_for_category(category_id)],
    )


@router.get("/advertisers/{advertiser_id}", response_model=AdvertiserOut)
async def advertiser_detail(advertiser_id: str, pipeline: AdRelevancePipeline = Depends(get_pipeline)):
    advertiser = pipeline.knowledge_base.get_advertiser(advertiser_id)
    if advertiser is None:
        raise HTTPException(status_code=404, detail=f"Unknown advertiser {advertiser_id!r}")
    return AdvertiserOut.from_advertiser(advertiser)
