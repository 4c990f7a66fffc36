"""Unit tests for keytally/utils/logger.py."""

from __future__ import annotations

import structlog

from keytally.utils.logger import clear_request_id, mask_api_keys, set_request_id


def test_plaintext_key_masked() -> None:
    key = "kt_" + "A" * 43
    event = mask_api_keys(None, "info", {"event": "x", "api_key": key})  # type: ignore[arg-type]
    assert event["api_key"] == "kt_AAAA***"
    assert key not in event.values()


def test_other_fields_untouched() -> None:
    event = {"event": "usage_event_recorded", "key_fp": "ab12cd34ef56", "count": 3}
    assert mask_api_keys(None, "info", dict(event)) == event  # type: ignore[arg-type]


def test_request_id_bound_and_cleared() -> None:
    set_request_id("01JREQUEST")
    assert structlog.contextvars.get_contextvars()["request_id"] == "01JREQUEST"
    clear_request_id()
    assert "request_id" not in structlog.contextvars.get_contextvars()
