# ABOUTME: Unit tests for logging utilities
# ABOUTME: Tests correlation IDs, configure_logging, and AuditLogger class

import json
import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from foxops_mcp.utils.logging import (
    AuditLogger,
    add_correlation_id,
    configure_logging,
    correlation_id,
    get_correlation_id,
    incarnation_summary,
    set_correlation_id,
)
from foxops_mcp.utils.models import Incarnation


@pytest.mark.unit
class TestCorrelationId:
    """Tests for correlation ID generation and context management."""

    def test_generates_when_empty(self):
        """Test that an 8 character hex ID is generated when none is set."""
        correlation_id.set("")

        cid = get_correlation_id()

        assert len(cid) == 8
        int(cid, 16)

    def test_generated_id_is_kept(self):
        """Test that a generated ID is reused by later calls."""
        correlation_id.set("")

        assert get_correlation_id() == get_correlation_id()

    def test_set_correlation_id(self):
        """Test that set_correlation_id sets the correlation ID."""
        set_correlation_id("req-42")

        assert correlation_id.get() == "req-42"
        assert get_correlation_id() == "req-42"

    def test_processor_adds_id(self):
        """Test the structlog processor adds the current ID."""
        set_correlation_id("proc1234")

        event = add_correlation_id(None, "info", {"event": "Fetching the incarnation"})

        assert event == {"event": "Fetching the incarnation", "correlation_id": "proc1234"}


@pytest.mark.unit
class TestConfigureLogging:
    """Tests for configure_logging function."""

    def teardown_method(self):
        structlog.reset_defaults()

    def test_console_renderer_by_default(self):
        """Test colored console output is the default."""
        with patch("foxops_mcp.utils.logging.structlog.configure") as mock_configure:
            configure_logging()

        processors = mock_configure.call_args.kwargs["processors"]
        assert add_correlation_id in processors
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_json_renderer(self):
        """Test JSON output for log aggregators."""
        with patch("foxops_mcp.utils.logging.structlog.configure") as mock_configure:
            configure_logging(json_output=True)

        processors = mock_configure.call_args.kwargs["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_logs_go_to_stderr(self, capsys: pytest.CaptureFixture[str]):
        """Test nothing is written to stdout, which MCP stdio owns."""
        configure_logging(level="DEBUG", json_output=True)

        structlog.get_logger("test").info("Polling", incarnation_id="42")

        captured = capsys.readouterr()
        assert captured.out == ""
        entry = json.loads(captured.err.strip().splitlines()[-1])
        assert entry["event"] == "Polling"
        assert entry["incarnation_id"] == "42"
        assert entry["level"] == "info"
        assert "correlation_id" in entry

    def test_level_filters(self, capsys: pytest.CaptureFixture[str]):
        """Test events below the configured level are dropped."""
        configure_logging(level="WARNING", json_output=True)

        log = structlog.get_logger("test")
        log.debug("Making Foxops API request")
        log.warning("Retrying Foxops API request")

        lines = capsys.readouterr().err.strip().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["event"] == "Retrying Foxops API request"

    def test_unknown_level_falls_back_to_info(self):
        """Test an unknown level name does not raise."""
        with patch("foxops_mcp.utils.logging.structlog.configure") as mock_configure:
            configure_logging(level="chatty")

        mock_configure.assert_called_once()
        assert mock_configure.call_args.kwargs["logger_factory"]._file is sys.stderr


@pytest.mark.unit
class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_log_to_file(self, tmp_path: Path):
        """Test entries are appended as JSON lines."""
        log_file = tmp_path / "audit.log"
        audit = AuditLogger(log_path=log_file)
        set_correlation_id("audit123")

        audit.log("update_incarnation", "42", "updated", {"automerge": True})
        audit.log("get_incarnation", "42", "success")

        lines = log_file.read_text().splitlines()
        assert len(lines) == 2

        first = json.loads(lines[0])
        assert first["action"] == "update_incarnation"
        assert first["target"] == "42"
        assert first["result"] == "updated"
        assert first["correlation_id"] == "audit123"
        assert first["details"] == {"automerge": True}
        assert "details" not in json.loads(lines[1])

    def test_timestamp_is_utc_iso_format(self, tmp_path: Path):
        """Test the timestamp is an aware UTC ISO 8601 string."""
        log_file = tmp_path / "audit.log"

        AuditLogger(log_path=log_file).log_read("get_incarnation", "1")

        timestamp = datetime.fromisoformat(json.loads(log_file.read_text())["timestamp"])
        assert timestamp.utcoffset() is not None
        assert timestamp.utcoffset().total_seconds() == 0

    def test_log_through_structlog(self):
        """Test entries go through structlog when no file is set."""
        audit = AuditLogger()

        with patch.object(audit, "_logger") as mock_logger:
            audit.log_write("delete_incarnation", "7", "deleted")

        mock_logger.info.assert_called_once_with(
            "audit",
            action="delete_incarnation",
            target="7",
            result="deleted",
            details=None,
        )

    def test_helpers(self, tmp_path: Path):
        """Test log_read, log_write and log_error results."""
        log_file = tmp_path / "audit.log"
        audit = AuditLogger(log_path=log_file)

        audit.log_read("get_incarnation", "1")
        audit.log_write("create_incarnation", "2", "created", {"incarnation_repository": "r"})
        audit.log_error("delete_incarnation", "3", "unexpected status code 404, wants 204: gone")

        entries = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert [e["result"] for e in entries] == ["success", "created", "error"]
        assert entries[1]["details"] == {"incarnation_repository": "r"}
        assert entries[2]["details"] == {
            "error": "unexpected status code 404, wants 204: gone"
        }

    def test_incarnation_state_in_file_entry(self, tmp_path: Path, sample_incarnation: Incarnation):
        """Test the incarnation the action returned is recorded as its own key."""
        log_file = tmp_path / "audit.log"
        sample_incarnation.template_repository_version = "v1.3.0"
        sample_incarnation.merge_request_id = "7"
        sample_incarnation.merge_request_status = "open"

        AuditLogger(log_path=log_file).log_write(
            "update_incarnation", "1234", "updated", {"automerge": False},
            incarnation=sample_incarnation,
        )

        entry = json.loads(log_file.read_text())
        assert entry["details"] == {"automerge": False}
        assert entry["incarnation"] == {
            "incarnation_repository": "platform/payments-service",
            "target_directory": ".",
            "template_repository": "templates/python-service",
            "template_repository_version": "v1.3.0",
            "commit_sha": "3f2a9c1",
            "merge_request_id": "7",
            "merge_request_status": "open",
        }

    def test_incarnation_state_through_structlog(self, sample_incarnation: Incarnation):
        """Test the incarnation key is passed to structlog as well."""
        audit = AuditLogger()

        with patch.object(audit, "_logger") as mock_logger:
            audit.log_read("get_incarnation", "1234", incarnation=sample_incarnation)

        kwargs = mock_logger.info.call_args.kwargs
        assert kwargs["result"] == "success"
        assert kwargs["incarnation"]["template_repository_version"] == "v1.2.0"
        assert kwargs["incarnation"]["commit_sha"] == "3f2a9c1"


@pytest.mark.unit
class TestIncarnationSummary:
    """Tests for incarnation_summary."""

    def test_without_merge_request(self, sample_incarnation: Incarnation):
        """Test merge request keys are left out for a fresh incarnation."""
        summary = incarnation_summary(sample_incarnation)

        assert summary["template_repository"] == "templates/python-service"
        assert summary["template_repository_version"] == "v1.2.0"
        assert "merge_request_id" not in summary
        assert "merge_request_status" not in summary
        assert "template_data" not in summary

    def test_with_merge_request_without_status(self, sample_incarnation: Incarnation):
        """Test an unreadable status is kept as None next to the merge request id."""
        sample_incarnation.merge_request_id = "12"

        summary = incarnation_summary(sample_incarnation)

        assert summary["merge_request_id"] == "12"
        assert summary["merge_request_status"] is None
