"""JSON logging with per-request context.

Request-scoped fields (request id, route, caller) live in a single context
variable so every record emitted while handling a request carries them,
including records from the stores and the coordinator.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from helpinghands.settings import settings

_CONTEXT_FIELDS = ("request_id", "route", "user_id", "client_ip")
_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("helpinghands_log_context", default={})

# gateway identity fields and credentials
_REDACTED_KEYS = ("email", "display_name", "avatar", "token", "secret", "authorization", "password")
_MAX_TEXT = 256
_MAX_ITEMS = 10

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Merge ``fields`` into the logging context; returns a token for ``reset_context``."""
	unknown = set(fields) - set(_CONTEXT_FIELDS)
	if unknown:
		raise ValueError(f"unknown log context fields: {sorted(unknown)}")
	merged = dict(_CONTEXT.get())
	merged.update({key: value for key, value in fields.items() if value})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_context() -> Mapping[str, str]:
	return _CONTEXT.get()


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def _scrub(key: str, value: Any) -> Any:
	if any(marker in key.lower() for marker in _REDACTED_KEYS):
		return "[redacted]"
	if isinstance(value, str):
		return value if len(value) <= _MAX_TEXT else value[:_MAX_TEXT] + "…"
	if isinstance(value, Mapping):
		items = list(value.items())
		scrubbed = {str(k): _scrub(str(k), v) for k, v in items[:_MAX_ITEMS]}
		if len(items) > _MAX_ITEMS:
			scrubbed["…"] = f"+{len(items) - _MAX_ITEMS} keys"
		return scrubbed
	if isinstance(value, (list, tuple, set, frozenset)):
		items = [_scrub(key, v) for v in list(value)[:_MAX_ITEMS]]
		if len(value) > _MAX_ITEMS:
			items.append("…")
		return items
	return value


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per record: service metadata, request context, then extras."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (logging api)
		payload: dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(_CONTEXT.get())
		for key, value in vars(record).items():
			if key not in _STANDARD_ATTRS:
				payload[key] = _scrub(key, value)
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Drop a share of INFO records; anything louder always passes."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = min(1.0, max(0.0, settings.obs_log_sampling_rate_info))
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers = [handler]
	root.setLevel(settings.obs_log_level)
	# route uvicorn records through the JSON handler
	for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
		logging.getLogger(name).handlers = []
		logging.getLogger(name).propagate = True
	return logging.getLogger("helpinghands")


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or "helpinghands")


__all__ = [
	"JSONLogFormatter",
	"InfoSamplingFilter",
	"bind_context",
	"configure_logging",
	"current_context",
	"current_request_id",
	"get_logger",
	"reset_context",
]
