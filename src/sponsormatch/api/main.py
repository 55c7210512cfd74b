# src/sponsormatch/api/main.py
from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Request

from sponsormatch.api.catalogue import router as catalogue_router
from sponsormatch.api.deps import get_pipeline
from sponsormatch.api.schemas import (
    ClassificationOut,
    ClassifyResponse,
    DecisionResponse,
    QuestionRequest,
)
from sponsormatch.config import Settings, get_settings
from sponsormatch.core.error_handlers import register_error_handlers
from sponsormatch.core.health import router as health_router
from sponsormatch.core.logging import setup_json_logging
from sponsormatch.core.middleware import RequestIDMiddleware
from sponsormatch.pipeline.engine import ENGINE_VERSION, AdRelevancePipeline

log = logging.getLogger("sponsormatch.api")

APP_VERSION = "0.1.0"


def create_app(
    settings: Settings | None = None,
    pipeline: AdRelevancePipeline | None = None,
) -> FastAPI:
    """Build the app. ConfigurationError from settings or the knowledge base aborts startup."""
    settings = settings or get_settings()
    setup_json_logging(settings.LOG_LEVEL)

    app = FastAPI(title=settings.APP_NAME, version=APP_VERSION)
    app.state.settings = settings
    app.state.pipeline = pipeline or AdRelevancePipeline.from_settings(settings)

    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(catalogue_router)

    @app.get("/version")
    async def version():
        return {"api_version": APP_VERSION, "engine_version": ENGINE_VERSION}

    @app.post("/classify", response_model=ClassifyResponse)
    async def classify(
        req: QuestionRequest,
        request: Request,
        pipeline: AdRelevancePipeline = Depends(get_pipeline),
    ):
        classification = await pipeline.classify(req.question, req.history_dicts())
        return ClassifyResponse(
            classification=(
                ClassificationOut.from_classification(classification) if classification else None
            ),
            request_id=getattr(request.state, "request_id", None),
        )

    @app.post("/decide", response_model=DecisionResponse)
    async def decide(
        req: QuestionRequest,
        request: Request,
        pipeline: AdRelevancePipeline = Depends(get_pipeline),
    ):
        outcome = await pipeline.run(req.question, req.history_dicts())
        return DecisionResponse.from_outcome(outcome, getattr(request.state, "request_id", None))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("sponsormatch.api.main:app", host="0.0.0.0", port=8000)
