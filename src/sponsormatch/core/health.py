"""
src/sponsormatch/core/health.py

GET /health/live    liveness: always 200 (process is alive)
GET /health/ready  readiness: 200 only when a pipeline with a non-empty
                    knowledge base is attached to the app, else 503
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

_log = logging.getLogger("sponsormatch.health")

router = APIRouter(tags=["health"])


@router.get("/health/live")
async def health_live() -> JSONResponse:
    return JSONResponse(status_code=200, content={"status": "ok", "probe": "live"})


@router.get("/health/ready")
async def health_ready(request: Request) -> JSONResponse:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        _log.error("health_ready: pipeline not initialised")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "probe": "ready", "knowledge_base": "missing"},
        )

    areas = pipeline.knowledge_base.treatment_area_count
    if areas == 0:
        _log.error("health_ready: knowledge base is empty")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "probe": "ready", "knowledge_base": "empty"},
        )

    return JSONResponse(
        status_code=200,
        content={
            "status": "ok",
            "probe": "ready",
            "knowledge_base": "loaded",
            "treatment_areas": areas,
        },
    )
