"""Request middleware: request ids, log context, HTTP metrics and access logs."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from helpinghands.obs import logging as obs_logging
from helpinghands.obs import metrics

REQUEST_ID_HEADER = "X-Request-Id"

_LOG = obs_logging.get_logger("helpinghands.http")


def _route_label(request: Request) -> str:
	"""Path template (``/api/events/{event_id}``) so metric labels stay bounded."""
	route = request.scope.get("route")
	template = getattr(route, "path", None)
	return template or "unmatched"


class ObservabilityMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
		request.state.request_id = request_id
		client = request.client
		token = obs_logging.bind_context(
			request_id=request_id,
			user_id=request.headers.get("X-User-Id"),
			client_ip=client.host if client else None,
		)
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			_LOG.exception("http_request_failed", extra={"method": request.method, "path": request.url.path})
			raise
		finally:
			elapsed = time.perf_counter() - started
			route = _route_label(request)
			metrics.observe_request(route, request.method, status_code, elapsed)
			route_token = obs_logging.bind_context(route=route)
			_LOG.info(
				"http_request",
				extra={
					"method": request.method,
					"status": status_code,
					"latency_ms": round(elapsed * 1000, 3),
				},
			)
			obs_logging.reset_context(route_token)
			obs_logging.reset_context(token)
		response.headers.setdefault(REQUEST_ID_HEADER, request_id)
		return response


def install(app: FastAPI) -> None:
	app.add_middleware(ObservabilityMiddleware)


__all__ = ["ObservabilityMiddleware", "REQUEST_ID_HEADER", "install"]
