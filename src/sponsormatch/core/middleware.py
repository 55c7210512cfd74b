"""
src/sponsormatch/core/middleware.py

Request ID middleware for the SponsorMatch API.

- Reuses a client X-Request-ID when it is short and printable, else mints a UUID4
- Binds it to request_id_ctx so pipeline logs and decision-log entries share it
- Starts every request with an empty stage_ctx
- Echoes X-Request-ID on the response and writes one access log line
"""
from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from sponsormatch.core.logging import request_id_ctx, stage_ctx

_log = logging.getLogger("sponsormatch.access")

_CLIENT_ID_RE = re.compile(r"[A-Za-z0-9._:-]{1,64}")


def resolve_request_id(header_value: str | None) -> str:
    candidate = (header_value or "").strip()
    if _CLIENT_ID_RE.fullmatch(candidate):
        return candidate
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request.headers.get("X-Request-ID"))
        request.state.request_id = request_id
        rid_token = request_id_ctx.set(request_id)
        stage_token = stage_ctx.set("")

        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            _log.error(
                "request aborted %s %s",
                request.method,
                request.url.path,
                extra={"fields": {"duration_ms": round((time.perf_counter() - start) * 1000.0, 2)}},
            )
            raise
        finally:
            stage_ctx.reset(stage_token)
            request_id_ctx.reset(rid_token)

        response.headers["X-Request-ID"] = request_id
        _log.info(
            "%s %s %d",
            request.method,
            request.url.path,
            response.status_code,
            extra={
                "fields": {
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - start) * 1000.0, 2),
                }
            },
        )
        return response
