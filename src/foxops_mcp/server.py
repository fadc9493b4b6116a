# ABOUTME: FastMCP server initialization and main entry point
# ABOUTME: Exposes Foxops incarnation lifecycle operations as MCP tools

"""Foxops MCP Server - manage templated repository incarnations."""

from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import structlog
from mcp.server.fastmcp import Context, FastMCP
from pydantic import BaseModel, Field, StrictFloat, StrictInt, StrictStr

from foxops_mcp.config import DURATION_PATTERN, ServerSettings, load_settings, parse_duration
from foxops_mcp.utils.client import FoxopsClient
from foxops_mcp.utils.errors import FoxopsError, MergeRequestStatusTimeoutError
from foxops_mcp.utils.logging import AuditLogger, configure_logging, set_correlation_id
from foxops_mcp.utils.models import (
    CreateIncarnationRequest,
    Incarnation,
    IncarnationApi,
    MergeRequestStatus,
    UpdateIncarnationRequest,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

MCPContext = Context[Any, Any]
logger = structlog.get_logger(__name__)

TemplateData = dict[str, StrictStr | StrictInt | StrictFloat]

TIMEOUT_MESSAGE = "operation timed out before the merge request status reached the expected status"

# Global state (initialized in lifespan)
_settings: ServerSettings | None = None
_client: IncarnationApi | None = None
_audit_logger: AuditLogger | None = None


@asynccontextmanager
async def lifespan(_server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Manage server lifecycle: load config, connect client, cleanup on shutdown."""
    global _settings, _client, _audit_logger

    logger.info("Starting Foxops MCP Server")

    _settings = load_settings()
    configure_logging(level=_settings.log_level, json_output=_settings.json_logs)
    _audit_logger = AuditLogger(_settings.audit_log)

    client: FoxopsClient | None = None
    instance = _settings.instance
    if instance is None:
        logger.warning("FOXOPS_ENDPOINT or FOXOPS_TOKEN not set, incarnation tools are disabled")
    else:
        client = FoxopsClient(instance=instance, retry_policy=_settings.retry)
        await client.__aenter__()
        _client = client
        logger.info("Connected to Foxops", endpoint=instance.endpoint)

    try:
        yield {"settings": _settings, "client": _client}
    finally:
        if client is not None:
            await client.__aexit__(None, None, None)
            logger.info("Disconnected from Foxops")
        _client = None
        logger.info("Foxops MCP Server stopped")


mcp = FastMCP("foxops-mcp", lifespan=lifespan)


def get_client() -> IncarnationApi:
    """Get the Foxops client."""
    if not _client:
        raise RuntimeError(
            "Foxops client not configured. Set FOXOPS_ENDPOINT and FOXOPS_TOKEN."
        )
    return _client


def get_settings() -> ServerSettings:
    """Get server settings."""
    if not _settings:
        raise RuntimeError("Server not initialized")
    return _settings


def get_audit_logger() -> AuditLogger:
    """Get audit logger for recording operations."""
    if not _audit_logger:
        raise RuntimeError("Server not initialized")
    return _audit_logger


# =============================================================================
# SHARED HELPERS
# =============================================================================


class WaitForStatusParams(BaseModel):
    """Wait for the latest merge request to reach a status."""

    status: MergeRequestStatus = Field(description="Expected merge request status")
    timeout: str | None = Field(
        default=None,
        pattern=DURATION_PATTERN,
        description='How long to wait, e.g. "1m30s". Defaults to the server wait_timeout.',
    )


async def fetch_incarnation(
    client: IncarnationApi,
    incarnation_id: str,
    wait_for: WaitForStatusParams | None,
) -> Incarnation:
    """
    Read an incarnation, optionally waiting for its merge request status.

    Waiting only applies to incarnations that have a merge request, i.e.
    incarnations that were updated at least once.
    """
    if wait_for is None:
        logger.info("Fetching the incarnation", incarnation_id=incarnation_id)
        return await client.get_incarnation(incarnation_id)

    timeout = (
        parse_duration(wait_for.timeout)
        if wait_for.timeout
        else get_settings().wait_timeout_seconds
    )
    logger.info(
        "Fetching the incarnation",
        incarnation_id=incarnation_id,
        status=str(wait_for.status),
        timeout=timeout,
    )
    incarnation = await client.get_incarnation_with_merge_request_status(
        incarnation_id,
        str(wait_for.status),
        timeout=timeout,
    )
    if incarnation.merge_request_id is None:
        logger.info(
            "No merge request in progress",
            incarnation_id=incarnation.id,
            details="Since no merge request was initiated for the incarnation, "
            "it was not possible to wait for the requested status.",
        )
    return incarnation


def format_incarnation(incarnation: Incarnation) -> str:
    """Render an incarnation for agent consumption."""
    lines = [
        f"Incarnation: {incarnation.id}",
        f"Repository: {incarnation.incarnation_repository}",
        f"Target Directory: {incarnation.target_directory}",
        "",
        "Template:",
        f"  Repository: {incarnation.template_repository}",
        f"  Version: {incarnation.template_repository_version}",
        "",
        "Last Commit:",
        f"  SHA: {incarnation.commit_sha}",
        f"  URL: {incarnation.commit_url}",
    ]

    if incarnation.merge_request_id is not None:
        lines.extend(
            [
                "",
                "Merge Request:",
                f"  ID: {incarnation.merge_request_id}",
                f"  Status: {incarnation.merge_request_status or 'unknown'}",
                f"  URL: {incarnation.merge_request_url or '-'}",
            ]
        )

    if incarnation.template_data:
        lines.extend(["", "Template Data:"])
        for key, value in sorted(incarnation.template_data.items()):
            lines.append(f"  {key}: {value}")

    return "\n".join(lines)


def _failure_message(operation: str, error: FoxopsError) -> str:
    if isinstance(error, MergeRequestStatusTimeoutError):
        return f"{TIMEOUT_MESSAGE}: {error}"
    return f"failed to {operation} incarnation: {error}"


# =============================================================================
# READ OPERATIONS
# =============================================================================


class GetIncarnationParams(BaseModel):
    """Parameters for get_incarnation tool."""

    id: str = Field(description="Incarnation id")
    wait_for_mr_status: WaitForStatusParams | None = Field(
        default=None,
        description="Wait for the last merge request to reach a status before returning",
    )


@mcp.tool()
async def get_incarnation(params: GetIncarnationParams, ctx: MCPContext) -> str:
    """
    Get a Foxops incarnation.

    Returns the template, last commit and latest merge request of the
    incarnation. Optionally waits until the merge request reaches a status.
    """
    set_correlation_id(ctx.request_id if hasattr(ctx, "request_id") else "")

    try:
        incarnation = await fetch_incarnation(get_client(), params.id, params.wait_for_mr_status)
    except FoxopsError as e:
        get_audit_logger().log_error("get_incarnation", params.id, str(e))
        return _failure_message("retrieve", e)

    get_audit_logger().log_read("get_incarnation", params.id, incarnation=incarnation)
    return format_incarnation(incarnation)


# =============================================================================
# WRITE OPERATIONS
# =============================================================================


class CreateIncarnationParams(BaseModel):
    """Parameters for create_incarnation tool."""

    incarnation_repository: str = Field(
        description="The repository in which the incarnation will be created"
    )
    template_repository: str = Field(
        description="The repository containing the template used to create the incarnation"
    )
    template_repository_version: str = Field(
        description="A tag, commit or branch of the template repository"
    )
    target_directory: str | None = Field(
        default=None,
        description='Folder in which the incarnation will be created. Default: "."',
    )
    template_data: TemplateData = Field(
        default_factory=dict,
        description="Variables used to render the template",
    )


@mcp.tool()
async def create_incarnation(params: CreateIncarnationParams, ctx: MCPContext) -> str:
    """
    Create a Foxops incarnation.

    Renders the template into the incarnation repository and records the
    incarnation. New incarnations have no merge request yet.
    """
    set_correlation_id(ctx.request_id if hasattr(ctx, "request_id") else "")

    request = CreateIncarnationRequest(
        incarnation_repository=params.incarnation_repository,
        template_repository=params.template_repository,
        template_repository_version=params.template_repository_version,
        template_data=dict(params.template_data),
        target_directory=params.target_directory,
    )

    try:
        await ctx.report_progress(0, 1, f"Creating incarnation in {params.incarnation_repository}")
        incarnation = await get_client().create_incarnation(request)
    except FoxopsError as e:
        get_audit_logger().log_error("create_incarnation", params.incarnation_repository, str(e))
        return _failure_message("create", e)

    get_audit_logger().log_write(
        "create_incarnation",
        incarnation.id,
        "created",
        incarnation=incarnation,
    )
    return f"Incarnation created.\n\n{format_incarnation(incarnation)}"


class UpdateIncarnationParams(BaseModel):
    """Parameters for update_incarnation tool."""

    id: str = Field(description="Incarnation id")
    template_repository_version: str = Field(
        description="A tag, commit or branch of the template repository"
    )
    template_data: TemplateData = Field(
        default_factory=dict,
        description="Variables used to render the template",
    )
    auto_merge: bool = Field(
        default=True,
        description="Whether the merge request should be merged automatically",
    )
    wait_for_mr_status: WaitForStatusParams | None = Field(
        default=None,
        description="Wait for the merge request to reach a status before returning",
    )


@mcp.tool()
async def update_incarnation(params: UpdateIncarnationParams, ctx: MCPContext) -> str:
    """
    Update a Foxops incarnation.

    Changes the template version or template data. Foxops delivers the
    change as a merge request in the incarnation repository, which is
    merged automatically when auto_merge is true.
    """
    set_correlation_id(ctx.request_id if hasattr(ctx, "request_id") else "")

    request = UpdateIncarnationRequest(
        template_repository_version=params.template_repository_version,
        template_data=dict(params.template_data),
        automerge=params.auto_merge,
    )

    client = get_client()
    try:
        await ctx.report_progress(0, 2, f"Updating incarnation {params.id}")
        incarnation = await client.update_incarnation(params.id, request)
        await ctx.report_progress(1, 2, "Fetching merge request status")
        incarnation = await fetch_incarnation(client, incarnation.id, params.wait_for_mr_status)
    except MergeRequestStatusTimeoutError as e:
        get_audit_logger().log("update_incarnation", params.id, "timeout", {"error": str(e)})
        return _failure_message("update", e)
    except FoxopsError as e:
        get_audit_logger().log_error("update_incarnation", params.id, str(e))
        return _failure_message("update", e)

    await ctx.report_progress(2, 2, "Complete")
    get_audit_logger().log_write(
        "update_incarnation",
        params.id,
        "updated",
        {"automerge": params.auto_merge},
        incarnation=incarnation,
    )
    return f"Incarnation updated.\n\n{format_incarnation(incarnation)}"


class DeleteIncarnationParams(BaseModel):
    """Parameters for delete_incarnation tool."""

    id: str = Field(description="Incarnation id")


@mcp.tool()
async def delete_incarnation(params: DeleteIncarnationParams, ctx: MCPContext) -> str:
    """
    Delete a Foxops incarnation.

    Removes the incarnation record from Foxops. Files already rendered into
    the incarnation repository are left in place.
    """
    set_correlation_id(ctx.request_id if hasattr(ctx, "request_id") else "")

    try:
        await get_client().delete_incarnation(params.id)
    except FoxopsError as e:
        get_audit_logger().log_error("delete_incarnation", params.id, str(e))
        return _failure_message("delete", e)

    get_audit_logger().log_write("delete_incarnation", params.id, "deleted")
    return f"Incarnation '{params.id}' deleted successfully."


# =============================================================================
# MCP RESOURCES
# =============================================================================


@mcp.resource("foxops://instance")
async def get_instance_resource() -> str:
    """Get information about the configured Foxops instance."""
    settings = get_settings()
    instance = settings.instance

    if instance is None:
        return "No Foxops instance configured"

    retry = settings.retry
    return (
        "Foxops Instance:\n"
        f"  Endpoint: {instance.endpoint}\n"
        f"  Default wait timeout: {settings.wait_timeout}\n"
        f"  Retry: {retry.max_attempts} attempts, "
        f"{retry.base_delay}s base delay x{retry.multiplier} (max {retry.max_delay}s)"
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================


def main() -> None:
    """Run the Foxops MCP server."""
    configure_logging(level="INFO")
    logger.info("Foxops MCP Server starting")

    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Server interrupted")
        sys.exit(0)
    except Exception as e:
        logger.error("Server error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
