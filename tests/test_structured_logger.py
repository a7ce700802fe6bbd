"""Tests for JSON logging and the orchestrator's log setup."""

import json
import logging
import sys

import pytest

from hub_checks.link_audit import document_audit
from hub_checks.link_audit.orchestrate import setup_logging
from hub_checks.link_audit.structured_logger import JSONFormatter, StructuredLogger


def read_json_lines(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def detach_new_handlers(logger, before):
    for handler in list(logger.handlers):
        if handler not in before:
            logger.removeHandler(handler)
            handler.close()


@pytest.fixture()
def structured(tmp_path, request):
    structured = StructuredLogger(f"tests.structured.{request.node.name}")
    structured.logger.setLevel(logging.DEBUG)
    log_file = tmp_path / "events.json"
    structured.setup_json_logging(log_file)
    yield structured, log_file
    detach_new_handlers(structured.logger, [])


class TestJSONFormatter:

    def test_record_fields(self):
        record = logging.LogRecord("hub", logging.WARNING, __file__, 1, "broken %s", ("README.md",), None)
        record.extra_data = {"event_type": "reference_checked", "line": 12}

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["logger"] == "hub"
        assert data["message"] == "broken README.md"
        assert data["event_type"] == "reference_checked"
        assert data["line"] == 12
        assert data["timestamp"].endswith("Z")
        assert "exception" not in data

    def test_exception_included(self):
        try:
            raise ValueError("bad manifest")
        except ValueError:
            record = logging.LogRecord("hub", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        assert "ValueError: bad manifest" in data["exception"]


class TestStructuredLogger:

    def test_document_and_run_events(self, structured):
        logger, log_file = structured

        logger.log_document_complete(document="README.md", total_refs=10, ok_refs=8, broken_refs=1,
                                     skipped_refs=1, ignored_refs=0, duration_sec=0.1234)
        logger.log_run_complete(total_documents=2, failed_documents=1, total_refs=12, broken_refs=1,
                                external_urls_checked=5, external_urls_cached=3, orphan_images=0,
                                duration_sec=1.5)

        document, run = read_json_lines(log_file)
        assert document["event_type"] == "document_complete"
        assert document["document"] == "README.md"
        assert document["duration_seconds"] == 0.12
        assert document["success"] is False
        assert run["event_type"] == "run_complete"
        assert run["external_urls_cached"] == 3
        assert run["level"] == "INFO"

    def test_reference_levels(self, structured):
        logger, log_file = structured

        logger.log_reference_checked("README.md", 3, "#top", "anchor", "ok")
        logger.log_reference_checked("README.md", 9, "https://x.example.com", "external", "broken",
                                     status_code=404, error="HTTP 404")

        ok, broken = read_json_lines(log_file)
        assert ok["level"] == "DEBUG"
        assert broken["level"] == "WARNING"
        assert broken["status_code"] == 404
        assert broken["event_type"] == "reference_checked"


def test_setup_logging_creates_both_files(tmp_path):
    root = logging.getLogger()
    root_level = root.level
    root_before = list(root.handlers)
    audit_before = list(document_audit.structured_logger.logger.handlers)
    orchestrator_before = list(logging.getLogger("orchestrator").handlers)

    try:
        log_file, json_log_file = setup_logging(logs_dir=tmp_path / "logs")

        assert log_file.exists()
        assert json_log_file.exists()
        assert log_file.parent == json_log_file.parent == tmp_path / "logs"

        document_audit.structured_logger.log_reference_checked(
            "README.md", 4, "missing.md", "local", "broken", error="file not found: missing.md"
        )
        events = [e for e in read_json_lines(json_log_file) if e.get("event_type") == "reference_checked"]
        assert events[0]["target"] == "missing.md"
    finally:
        detach_new_handlers(root, root_before)
        detach_new_handlers(document_audit.structured_logger.logger, audit_before)
        detach_new_handlers(logging.getLogger("orchestrator"), orchestrator_before)
        root.setLevel(root_level)
