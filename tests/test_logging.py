import json
import logging

import pytest

from sitegenie.observability.logging import ColoredFormatter, JSONFormatter, get_structured_logger, log_duration


def make_record(message="Knowledge base indexed", **extra):
    record = logging.LogRecord("sitegenie.pipelines.ingest", logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context():
    output = JSONFormatter("sitegenie").format(make_record(ctx_chatbot_id="abc123", ctx_chunks_stored=4))
    payload = json.loads(output)

    assert payload["message"] == "Knowledge base indexed"
    assert payload["level"] == "INFO"
    assert payload["service"] == "sitegenie"
    assert payload["ctx_chatbot_id"] == "abc123"
    assert payload["ctx_chunks_stored"] == 4


def test_colored_formatter_plain_output():
    output = ColoredFormatter(use_colors=False).format(make_record(ctx_chatbot_id="abc123"))

    assert "Knowledge base indexed" in output
    assert "chatbot_id=abc123" in output


def test_structured_logger_binds_context(caplog):
    log = get_structured_logger("sitegenie.test", chatbot_id="abc123").bind(url="https://example.com")

    with caplog.at_level(logging.INFO, logger="sitegenie.test"):
        log.info("Chatbot record created", pages=2)

    record = caplog.records[-1]
    assert record.ctx_chatbot_id == "abc123"
    assert record.ctx_url == "https://example.com"
    assert record.ctx_pages == 2


def test_json_formatter_groups_context():
    payload = json.loads(JSONFormatter().format(make_record(ctx_chatbot_id="abc123")))

    assert payload["context"] == {"chatbot_id": "abc123"}
    assert payload["location"].startswith("test_logging:")


def test_log_duration_warns_when_slow(caplog):
    log = get_structured_logger("sitegenie.timing", chatbot_id="abc123")

    with caplog.at_level(logging.DEBUG, logger="sitegenie.timing"):
        with log_duration(log, "crawl", slow_after=-1.0):
            pass

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.ctx_operation == "crawl"
    assert record.ctx_chatbot_id == "abc123"


def test_log_duration_reraises(caplog):
    log = get_structured_logger("sitegenie.timing")

    with pytest.raises(RuntimeError):
        with log_duration(log, "page indexing"):
            raise RuntimeError("embedding outage")
