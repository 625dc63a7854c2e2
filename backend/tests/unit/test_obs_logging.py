from __future__ import annotations

import json
import logging

from helpinghands.obs import logging as obs_logging


def _record(**extra) -> logging.LogRecord:
	record = logging.LogRecord(
		name="helpinghands.test",
		level=logging.WARNING,
		pathname=__file__,
		lineno=1,
		msg="participation.user_index_failed",
		args=(),
		exc_info=None,
	)
	for key, value in extra.items():
		setattr(record, key, value)
	return record


def test_json_formatter_includes_context_and_redacts_sensitive_fields():
	tokens = obs_logging.bind_context(request_id="req-1", route="/api/events/{event_id}/join", user_id="user-a")
	try:
		line = obs_logging.JSONLogFormatter().format(
			_record(event_id="e-1", user_email="a@example.com", action="add")
		)
	finally:
		obs_logging.reset_context(tokens)

	payload = json.loads(line)
	assert payload["msg"] == "participation.user_index_failed"
	assert payload["level"] == "warning"
	assert payload["request_id"] == "req-1"
	assert payload["route"] == "/api/events/{event_id}/join"
	assert payload["event_id"] == "e-1"
	assert payload["action"] == "add"
	assert payload["user_email"] == "[redacted]"
	assert obs_logging.current_request_id() is None


def test_long_values_are_truncated():
	line = obs_logging.JSONLogFormatter().format(_record(note="x" * 1000))
	payload = json.loads(line)
	assert len(payload["note"]) < 300
	assert payload["note"].endswith("…")


def test_sampling_filter_keeps_warnings(monkeypatch):
	monkeypatch.setattr(obs_logging.settings, "obs_log_sampling_rate_info", 0.0)
	sampler = obs_logging.InfoSamplingFilter()
	info = _record()
	info.levelno = logging.INFO
	assert sampler.filter(_record()) is True
	assert sampler.filter(info) is False
