"""
Tests for the logging helpers.
"""

import logging

from config.logging import QuietLogFilter, TagColorFormatter, parse_log_level


def make_record(name, level, message):
    return logging.LogRecord(name, level, __file__, 1, message, None, None)


def test_parse_log_level():
    assert parse_log_level("debug") == logging.DEBUG
    assert parse_log_level("WARNING") == logging.WARNING
    assert parse_log_level("verbose") == logging.INFO


def test_tag_is_colored_when_enabled():
    record = make_record("services.vector.store", logging.INFO, "[VECTOR] Store opened")
    output = TagColorFormatter(colorize=True).format(record)
    assert "\033[92m[VECTOR]\033[0m Store opened" in output
    assert record.levelname == "INFO"


def test_plain_output_when_disabled():
    record = make_record("services.vector.search", logging.ERROR, "[SEARCH] failed")
    output = TagColorFormatter(colorize=False).format(record)
    assert "\033[" not in output
    assert output.endswith("| ERROR    | services.vector.search | [SEARCH] failed")


def test_quiet_filter():
    quiet = QuietLogFilter()
    assert not quiet.filter(make_record("httpx", logging.INFO, "HTTP Request: POST /embeddings"))
    assert quiet.filter(make_record("httpx", logging.WARNING, "retrying"))
    assert not quiet.filter(make_record("uvicorn.access", logging.INFO, "GET /health"))
    assert quiet.filter(make_record("services.vector.store", logging.DEBUG, "[VECTOR] x"))
