"""Tests for structured logging and correlation IDs."""

import json
import logging

from codetrace.observability import correlation_scope, get_correlation_id, setup_logging
from codetrace.observability.logging import JSONFormatter, TextFormatter, correlation_id


def _record(msg="hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("codetrace.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "codetrace.test"
        assert entry["message"] == "hello"
        assert "correlation_id" not in entry

    def test_correlation_id_included(self):
        token = correlation_id.set("run-42")
        try:
            entry = json.loads(JSONFormatter().format(_record()))
            assert entry["correlation_id"] == "run-42"
            assert get_correlation_id() == "run-42"
        finally:
            correlation_id.reset(token)
        assert get_correlation_id() == ""

    def test_ingestion_extras(self):
        record = _record(source="municipal_code", chapter="Chapter 591", state="recorded", provisions=2, duration_ms=15)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["source"] == "municipal_code"
        assert entry["chapter"] == "Chapter 591"
        assert entry["state"] == "recorded"
        assert entry["provisions"] == 2
        assert entry["duration_ms"] == 15

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            import sys

            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in entry["exception"]


class TestSetupLogging:
    def test_json_handler(self):
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            setup_logging(json_format=True, level="debug")
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
            assert logging.getLogger("pdfminer").level == logging.WARNING
            assert logging.getLogger("aiosqlite").level == logging.WARNING
        finally:
            root.handlers[:], root.level = saved

    def test_text_handler(self):
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            setup_logging(json_format=False)
            assert isinstance(root.handlers[0].formatter, TextFormatter)
        finally:
            root.handlers[:], root.level = saved


class TestCorrelationScope:
    def test_fresh_id_reset_on_exit(self):
        with correlation_scope() as run_id:
            assert len(run_id) == 12
            assert get_correlation_id() == run_id
        assert get_correlation_id() == ""

    def test_nested_scope_keeps_run_id(self):
        with correlation_scope("outer") as outer:
            with correlation_scope() as inner:
                assert inner == outer == "outer"
            with correlation_scope("explicit") as explicit:
                assert explicit == "explicit"
            assert get_correlation_id() == "outer"


class TestTextFormatter:
    def test_run_id_in_line(self):
        with correlation_scope("run-7"):
            line = TextFormatter().format(_record("indexed"))
        assert "codetrace.test [run-7]: indexed" in line

    def test_no_run_id(self):
        line = TextFormatter().format(_record("indexed"))
        assert "codetrace.test: indexed" in line
