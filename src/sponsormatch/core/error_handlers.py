"""
src/sponsormatch/core/error_handlers.py

Error responses for the SponsorMatch API share one body:

    {"error": "<short message>", "request_id": "<id | null>", "code": <http status>}

Validation failures add ``detail`` outside production. Tracebacks never reach a
response. Per-request pipeline failures are already a no-ad verdict by the time
the route returns, so the PipelineError handler only sees configuration faults.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sponsormatch.pipeline.errors import PipelineError

_log = logging.getLogger("sponsormatch.errors")

_PRODUCTION_ENVS = {"production", "prod"}


def _is_production(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None)
    env = getattr(settings, "APP_ENV", "development")
    return str(env).lower() in _PRODUCTION_ENVS


def _error(request: Request, status: int, message: str, **extra) -> JSONResponse:
    body = {
        "error": message,
        "request_id": getattr(request.state, "request_id", None),
        "code": status,
    }
    body.update(extra)
    return JSONResponse(status_code=status, content=body)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = str(exc.detail) if exc.detail else "Request error"
        if exc.status_code >= 500:
            _log.error("HTTP %d on %s: %s", exc.status_code, request.url.path, message)
        return _error(request, exc.status_code, message)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        _log.warning("rejected request body on %s", request.url.path)
        extra = {} if _is_production(request) else {"detail": jsonable_encoder(exc.errors())}
        return _error(request, 422, "Invalid request body or parameters", **extra)

    @app.exception_handler(PipelineError)
    async def pipeline_error(request: Request, exc: PipelineError) -> JSONResponse:
        _log.error("pipeline error %s on %s: %s", exc.code, request.url.path, exc)
        return _error(request, 500, "Relevance pipeline misconfigured", error_code=exc.code)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        _log.exception("unhandled exception on %s", request.url.path)
        return _error(request, 500, "Unexpected server error")
