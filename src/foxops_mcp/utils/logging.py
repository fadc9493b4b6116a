# ABOUTME: Structured logging with correlation IDs for Foxops MCP Server
# ABOUTME: Implements audit logging of incarnation operations

"""
Structured logging with correlation IDs and audit trails.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module provides two observability features:

1. STRUCTURED LOGGING: Logs as key/value events (JSON in production,
   colored text in development) via structlog.

2. AUDIT LOGGING: A record of every incarnation operation the server
   performed on behalf of a client: what, on which incarnation, and how it
   ended.

=============================================================================
CORRELATION IDs
=============================================================================

One tool call may issue several API requests (an update followed by a
polling loop, for example). Each log line carries the correlation_id of the
tool call that caused it:

    {"correlation_id": "a1b2c3d4", "event": "Making Foxops API request", ...}
    {"correlation_id": "a1b2c3d4", "event": "Waiting for merge request status", ...}

The ID lives in a ContextVar, so concurrent asyncio tasks each see their
own value.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from pathlib import Path

    from foxops_mcp.utils.models import Incarnation


# =============================================================================
# CORRELATION ID MANAGEMENT
# =============================================================================

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """
    Get current correlation ID or generate new one.

    Code running outside a tool call (startup, shutdown) still gets an ID
    so its logs stay correlatable.

    Returns:
        8-character correlation ID string.
    """
    cid = correlation_id.get()
    if not cid:
        cid = str(uuid.uuid4())[:8]
        correlation_id.set(cid)
    return cid


def set_correlation_id(cid: str) -> None:
    """
    Set correlation ID for current context.

    Args:
        cid: The correlation ID to set. An empty string makes the next
             get_correlation_id() call generate a fresh one.
    """
    correlation_id.set(cid)


def add_correlation_id(
    logger: structlog.types.WrappedLogger,  # noqa: ARG001 - Required by structlog Processor API
    method_name: str,  # noqa: ARG001 - Required by structlog Processor API
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor adding the correlation ID to every event."""
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
) -> None:
    """
    Configure structured logging.

    Call it once at startup; calling it again reconfigures logging.

    PROCESSOR PIPELINE:
    -------------------
    1. merge_contextvars: Adds values bound with bind_contextvars()
    2. add_log_level: Adds "level" field
    3. TimeStamper: Adds ISO-format timestamp
    4. add_correlation_id: Adds our correlation ID
    5. Renderer: JSON lines or colored console output

    Args:
        level: Logging level name ("DEBUG", "INFO", ...). DEBUG shows every
               API request and every polling iteration.
        json_output: If True, output JSON (for log aggregators).
                    If False, output colored text (for development).
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_correlation_id,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        # MCP stdio transport owns stdout, so logs go to stderr.
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# =============================================================================
# AUDIT LOGGER
# =============================================================================


class AuditLogger:
    """
    Audit logger for recording incarnation operations.

    WHAT WE LOG:
    ------------
    Every operation records:
    - timestamp: When it happened (UTC ISO 8601)
    - correlation_id: Tool call identifier
    - action: What operation ("create_incarnation", "update_incarnation")
    - target: Which incarnation ("42", or the repository for creations)
    - result: Outcome ("success", "timeout", "error", ...)
    - details: Additional context (error messages, parameters)
    - incarnation: State the operation left behind: repositories, template
      version and, once an update opened one, the merge request

    TWO OUTPUT MODES:
    -----------------
    1. FILE: Append JSON lines to a file
    2. STRUCTLOG: Log as a regular event (stderr, like all other logs)
    """

    def __init__(self, log_path: Path | None = None) -> None:
        """
        Initialize audit logger.

        Args:
            log_path: Path to audit log file (appended to, never truncated),
                     or None to log through structlog.
        """
        self._log_path = log_path
        self._logger = structlog.get_logger("audit")

    def log(
        self,
        action: str,
        target: str,
        result: str,
        details: dict[str, Any] | None = None,
        incarnation: Incarnation | None = None,
    ) -> None:
        """
        Log an auditable action.

        Args:
            action: Operation performed, usually the tool name
            target: Incarnation id or repository
            result: "success", "error", "timeout" or an operation specific outcome
            details: Additional context. Omitted from the entry when empty.
            incarnation: Incarnation returned by the operation, if any
        """
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "correlation_id": get_correlation_id(),
            "action": action,
            "target": target,
            "result": result,
        }

        if details:
            entry["details"] = details

        state = incarnation_summary(incarnation) if incarnation else None
        if state:
            entry["incarnation"] = state

        if self._log_path:
            with self._log_path.open("a") as f:
                f.write(json.dumps(entry) + "\n")
        else:
            self._logger.info(
                "audit",
                action=action,
                target=target,
                result=result,
                details=details,
                **({"incarnation": state} if state else {}),
            )

    def log_read(
        self,
        action: str,
        target: str,
        incarnation: Incarnation | None = None,
    ) -> None:
        """Log a successful read operation."""
        self.log(action, target, "success", incarnation=incarnation)

    def log_write(
        self,
        action: str,
        target: str,
        result: str,
        details: dict[str, Any] | None = None,
        incarnation: Incarnation | None = None,
    ) -> None:
        """
        Log a write operation (create, update, delete).

        Example:
            audit_logger.log_write(
                "update_incarnation",
                "42",
                "updated",
                {"automerge": True},
                incarnation=incarnation,
            )
        """
        self.log(action, target, result, details, incarnation)

    def log_error(
        self,
        action: str,
        target: str,
        error: str,
    ) -> None:
        """Log a failed operation."""
        self.log(action, target, "error", {"error": error})


def incarnation_summary(incarnation: Incarnation) -> dict[str, Any]:
    """Audit view of an incarnation; merge request keys only when one exists."""
    summary: dict[str, Any] = {
        "incarnation_repository": incarnation.incarnation_repository,
        "target_directory": incarnation.target_directory,
        "template_repository": incarnation.template_repository,
        "template_repository_version": incarnation.template_repository_version,
        "commit_sha": incarnation.commit_sha,
    }
    if incarnation.merge_request_id is not None:
        summary["merge_request_id"] = incarnation.merge_request_id
        summary["merge_request_status"] = incarnation.merge_request_status
    return summary
