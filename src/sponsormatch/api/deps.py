from __future__ import annotations

from fastapi import HTTPException, Request

from sponsormatch.pipeline.engine import AdRelevancePipeline


def get_pipeline(request: Request) -> AdRelevancePipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Relevance pipeline not initialised")
    return pipeline
