# ABOUTME: Incarnation data model and the client capability interface
# ABOUTME: Value types passed between adapters and the Foxops API client

"""
Incarnation model and the narrow interface adapters depend on.

An INCARNATION is one rendered copy of a template inside a target
repository. Freshly created incarnations have no merge request; the
merge_request_* fields are only populated after an update produced one.

Adapters (the MCP server) talk to the API exclusively through the
IncarnationApi protocol below, so tests can swap the HTTP-backed
FoxopsClient for an in-memory double.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

# Template data values are always one of these three scalar kinds.
TemplateScalar = str | int | float


class MergeRequestStatus(StrEnum):
    """Lifecycle status of the latest merge request of an incarnation."""

    OPEN = "open"
    MERGED = "merged"
    CLOSED = "closed"
    UNKNOWN = "unknown"


@dataclass
class Incarnation:
    """Foxops incarnation as returned by the API."""

    id: str
    incarnation_repository: str
    target_directory: str
    template_repository: str
    template_repository_version: str
    commit_sha: str
    commit_url: str
    template_data: dict[str, TemplateScalar] = field(default_factory=dict)

    merge_request_id: str | None = None
    merge_request_url: str | None = None
    # Kept as a plain string so statuses unknown to this client survive.
    merge_request_status: str | None = None


@dataclass
class CreateIncarnationRequest:
    """Desired initial state of a new incarnation."""

    incarnation_repository: str
    template_repository: str
    template_repository_version: str
    template_data: dict[str, TemplateScalar] = field(default_factory=dict)
    # None lets the server pick its default (".").
    target_directory: str | None = None


@dataclass
class UpdateIncarnationRequest:
    """Desired changed state of an existing incarnation."""

    template_repository_version: str
    template_data: dict[str, TemplateScalar] = field(default_factory=dict)
    automerge: bool = False


class IncarnationApi(Protocol):
    """Operations the adapter layer is allowed to use."""

    async def get_incarnation(self, incarnation_id: str) -> Incarnation: ...

    async def get_incarnation_with_merge_request_status(
        self,
        incarnation_id: str,
        status: str,
        timeout: float | None = None,
    ) -> Incarnation: ...

    async def create_incarnation(self, request: CreateIncarnationRequest) -> Incarnation: ...

    async def update_incarnation(
        self,
        incarnation_id: str,
        request: UpdateIncarnationRequest,
    ) -> Incarnation: ...

    async def delete_incarnation(self, incarnation_id: str) -> None: ...
