# ABOUTME: Pytest fixtures and configuration for Foxops MCP Server tests
# ABOUTME: Provides shared fixtures and an in-memory incarnation API double

from __future__ import annotations

import dataclasses
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from foxops_mcp.config import FoxopsInstance, RetryPolicy, ServerSettings
from foxops_mcp.utils.client import wire_id
from foxops_mcp.utils.errors import FoxopsApiError, MergeRequestStatusTimeoutError
from foxops_mcp.utils.models import (
    CreateIncarnationRequest,
    Incarnation,
    UpdateIncarnationRequest,
)
from foxops_mcp.utils.wire import encode_template_data

FOXOPS_URL = "https://foxops.example.com"


class FakeIncarnationApi:
    """
    In-memory implementation of the IncarnationApi protocol.

    Incarnations are stored by id. Updates open a merge request whose status
    walks through ``statuses`` on consecutive polls, so tests can exercise
    the waiting logic without any HTTP.
    """

    def __init__(self) -> None:
        self.incarnations: dict[str, Incarnation] = {}
        self.statuses: list[str] = []
        self.calls: list[tuple[str, str]] = []
        self._next_id = 1

    def add(self, incarnation: Incarnation) -> Incarnation:
        self.incarnations[incarnation.id] = incarnation
        return incarnation

    def _lookup(self, incarnation_id: str) -> Incarnation:
        wire_id(incarnation_id)
        try:
            return self.incarnations[incarnation_id]
        except KeyError:
            raise FoxopsApiError(200, 404, "incarnation not found") from None

    async def get_incarnation(self, incarnation_id: str) -> Incarnation:
        self.calls.append(("get", incarnation_id))
        incarnation = self._lookup(incarnation_id)
        if incarnation.merge_request_id is not None and self.statuses:
            incarnation.merge_request_status = self.statuses.pop(0)
        return dataclasses.replace(incarnation, template_data=dict(incarnation.template_data))

    async def get_incarnation_with_merge_request_status(
        self,
        incarnation_id: str,
        status: str,
        timeout: float | None = None,
    ) -> Incarnation:
        while True:
            incarnation = await self.get_incarnation(incarnation_id)
            if incarnation.merge_request_id is None or incarnation.merge_request_status == status:
                return incarnation
            if not self.statuses:
                raise MergeRequestStatusTimeoutError(incarnation_id, status, timeout)

    async def create_incarnation(self, request: CreateIncarnationRequest) -> Incarnation:
        self.calls.append(("create", request.incarnation_repository))
        template_data = encode_template_data(request.template_data)
        incarnation = Incarnation(
            id=str(self._next_id),
            incarnation_repository=request.incarnation_repository,
            target_directory=request.target_directory or ".",
            template_repository=request.template_repository,
            template_repository_version=request.template_repository_version,
            commit_sha="c0ffee",
            commit_url=f"{request.incarnation_repository}/-/commit/c0ffee",
            template_data=template_data,
        )
        self._next_id += 1
        return self.add(incarnation)

    async def update_incarnation(
        self,
        incarnation_id: str,
        request: UpdateIncarnationRequest,
    ) -> Incarnation:
        self.calls.append(("update", incarnation_id))
        incarnation = self._lookup(incarnation_id)
        incarnation.template_repository_version = request.template_repository_version
        incarnation.template_data = encode_template_data(request.template_data)
        incarnation.merge_request_id = "7"
        incarnation.merge_request_url = f"{incarnation.incarnation_repository}/-/merge_requests/7"
        incarnation.merge_request_status = "merged" if request.automerge else "open"
        return dataclasses.replace(incarnation)

    async def delete_incarnation(self, incarnation_id: str) -> None:
        self.calls.append(("delete", incarnation_id))
        self._lookup(incarnation_id)
        del self.incarnations[incarnation_id]


@pytest.fixture
def instance() -> FoxopsInstance:
    """Create a Foxops instance configuration."""
    return FoxopsInstance(
        endpoint=FOXOPS_URL,
        token=SecretStr("test-token"),
    )


@pytest.fixture
def no_wait_retry() -> RetryPolicy:
    """Retry policy that does not sleep between attempts."""
    return RetryPolicy(max_attempts=3, base_delay=0, max_delay=0)


@pytest.fixture
def server_settings() -> ServerSettings:
    """Create server settings with a configured Foxops connection."""
    return ServerSettings(
        foxops_endpoint=FOXOPS_URL,
        foxops_token=SecretStr("test-token"),
    )


@pytest.fixture
def sample_incarnation() -> Incarnation:
    """Create a freshly created incarnation (no merge request)."""
    return Incarnation(
        id="1234",
        incarnation_repository="platform/payments-service",
        target_directory=".",
        template_repository="templates/python-service",
        template_repository_version="v1.2.0",
        commit_sha="3f2a9c1",
        commit_url="https://gitlab.example.com/platform/payments-service/-/commit/3f2a9c1",
        template_data={"name": "payments", "replicas": 3, "cpu": 0.5},
    )


@pytest.fixture
def fake_api(sample_incarnation: Incarnation) -> FakeIncarnationApi:
    """Create an in-memory incarnation API holding the sample incarnation."""
    api = FakeIncarnationApi()
    api.add(sample_incarnation)
    return api


@pytest.fixture
def mock_context() -> MagicMock:
    """Create a mock MCP context."""
    ctx = MagicMock()
    ctx.request_id = "test-request-123"
    ctx.report_progress = AsyncMock()
    return ctx
