from __future__ import annotations

import json
import logging

import structlog

from lnos_utm.common import observability
from lnos_utm.common.observability import PrefixedConsoleRenderer


def test_configure_logging_emits_json(caplog, monkeypatch):
    monkeypatch.setattr(observability, "_logging_configured", False)

    observability.configure_logging("lnos-utm.test", "INFO", json_logs=True)
    logger = structlog.get_logger("lnos_utm.test.logger")

    with caplog.at_level(logging.INFO):
        logger.info("structured-event", foo="bar")

    record = caplog.records[-1]
    payload = json.loads(record.message)
    assert payload["message"] == "structured-event"
    assert payload["foo"] == "bar"
    assert payload["service"] == "lnos-utm.test"
    assert payload["level"] == "info"


def test_configure_logging_console_prefixes(caplog, monkeypatch):
    monkeypatch.setattr(observability, "_logging_configured", False)

    observability.configure_logging("lnos-utm.test", "INFO", colors=False)
    logger = structlog.get_logger("lnos_utm.test.logger")

    with caplog.at_level(logging.INFO):
        logger.warning("disk missing", path="/tmp/disk0.qcow2")
        logger.debug("hidden")

    messages = [record.message for record in caplog.records]
    assert messages == ["[WARNING] disk missing path=/tmp/disk0.qcow2"]


def test_renderer_step_and_colours():
    renderer = PrefixedConsoleRenderer(colors=True)

    line = renderer(None, "info", {"event": "Step 1: Open UTM", "step": True, "service": "x"})

    assert line == "\033[0;34m[STEP]\033[0m Step 1: Open UTM"


def test_renderer_plain_error():
    renderer = PrefixedConsoleRenderer(colors=False)

    assert renderer(None, "error", {"event": "boom", "code": 1}) == "[ERROR] boom code=1"
