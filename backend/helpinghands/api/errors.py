"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from helpinghands.domain.events.exceptions import ParticipationError
from helpinghands.obs import logging as obs_logging

_LOG = logging.getLogger(__name__)


def get_request_id(request: Request) -> Optional[str]:
    rid = getattr(request.state, "request_id", None)
    return rid or request.headers.get("X-Request-Id") or obs_logging.current_request_id()


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ParticipationError)
    async def participation_exc_handler(request: Request, exc: ParticipationError):  # type: ignore[override]
        rid = get_request_id(request)
        if exc.status_code >= 500:
            _LOG.warning("api.store_unavailable", extra={"detail": exc.detail, "path": request.url.path})
        payload = {"detail": exc.detail, "request_id": rid, "retryable": exc.retryable}
        headers = {"Retry-After": "1"} if exc.status_code == 503 else None
        return JSONResponse(status_code=exc.status_code, content=payload, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": exc.detail, "request_id": rid, "retryable": False}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {
            "detail": "validation_error",
            "errors": jsonable_errors(exc),
            "request_id": rid,
            "retryable": False,
        }
        return JSONResponse(status_code=422, content=payload)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    errors = []
    for error in exc.errors():
        errors.append({"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")})
    return errors


__all__ = ["get_request_id", "install_error_handlers"]
