"""Unit tests for the structured logging configuration.

Verifies that secret-bearing keys are redacted before rendering, that the
``request_id_var`` context variable and the service name are stamped on
records, and that ``configure_logging()`` renders JSON outside DEBUG.
"""

from __future__ import annotations

import json
import logging
from io import StringIO

from chatter_observatory.core.logging_config import (
    _inject_request_id,
    _redact_secrets,
    _service_tagger,
    configure_logging,
    request_id_var,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _capture_log_output(log_level: str, message: str, service: str) -> str:
    """Emit one stdlib record after ``configure_logging()`` and return the text."""
    configure_logging(log_level, service=service)

    buffer = StringIO()
    root = logging.getLogger()
    original_streams = []
    for handler in root.handlers:
        if hasattr(handler, "stream"):
            original_streams.append((handler, handler.stream))
            handler.stream = buffer

    logging.getLogger("test.logging_config").warning(message)

    for handler, stream in original_streams:
        handler.flush()
        handler.stream = stream

    return buffer.getvalue()


# ---------------------------------------------------------------------------
# _redact_secrets
# ---------------------------------------------------------------------------


class TestRedactSecrets:
    def test_access_token_is_redacted(self) -> None:
        """Worker and gateway log lines never carry the OAuth token."""
        event = {"event": "capture_started", "access_token": "abc123", "broadcaster_id": "42"}

        result = _redact_secrets(None, "info", event)

        assert result["access_token"] == "[REDACTED]"
        assert result["broadcaster_id"] == "42"

    def test_key_match_is_case_insensitive(self) -> None:
        event = {"Authorization": "Bearer abc123"}

        result = _redact_secrets(None, "info", event)

        assert result["Authorization"] == "[REDACTED]"

    def test_nested_dict_values_are_redacted_one_level_deep(self) -> None:
        """Secrets inside a params or headers dict are redacted too."""
        event = {"params": {"access_token": "abc123", "user_id": "99"}}

        result = _redact_secrets(None, "info", event)

        assert result["params"] == {"access_token": "[REDACTED]", "user_id": "99"}

    def test_non_secret_keys_pass_through(self) -> None:
        event = {"event": "job_done", "job_id": 7, "elapsed_ms": 12.5}

        result = _redact_secrets(None, "info", dict(event))

        assert result == event


# ---------------------------------------------------------------------------
# Context processors
# ---------------------------------------------------------------------------


class TestContextProcessors:
    def test_request_id_is_injected_when_set(self) -> None:
        token = request_id_var.set("req-1")
        try:
            result = _inject_request_id(None, "info", {"event": "x"})
        finally:
            request_id_var.reset(token)

        assert result["request_id"] == "req-1"

    def test_request_id_absent_outside_a_request(self) -> None:
        result = _inject_request_id(None, "info", {"event": "x"})

        assert "request_id" not in result

    def test_service_tagger_adds_service_name(self) -> None:
        processor = _service_tagger("worker")

        result = processor(None, "info", {"event": "x"})

        assert result["service"] == "worker"

    def test_service_tagger_without_service_leaves_record_unchanged(self) -> None:
        processor = _service_tagger(None)

        result = processor(None, "info", {"event": "x"})

        assert "service" not in result


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_info_level_renders_json_with_service(self) -> None:
        """Outside DEBUG every record is one JSON object tagged with the service."""
        output = _capture_log_output("INFO", "proxy started", service="twitch_proxy")

        record = json.loads(output.strip().splitlines()[-1])
        assert record["event"] == "proxy started"
        assert record["service"] == "twitch_proxy"
        assert record["level"] == "warning"

    def test_root_level_follows_argument(self) -> None:
        configure_logging("WARNING", service="gateway")

        assert logging.getLogger().level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self) -> None:
        configure_logging("NOT_A_LEVEL")

        assert logging.getLogger().level == logging.INFO
