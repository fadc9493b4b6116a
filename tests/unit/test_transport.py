# ABOUTME: Unit tests for the User-Agent transport wrapper
# ABOUTME: Tests header format and delegation to the base transport

import platform
import sys
from unittest.mock import AsyncMock

import httpx
import pytest

from foxops_mcp.utils.transport import PRODUCT, UserAgentTransport, user_agent


@pytest.mark.unit
class TestUserAgent:
    """Tests for the User-Agent value."""

    def test_format(self):
        """Test product, version, platform and architecture are included."""
        value = user_agent("0.4.1")

        assert value == f"Foxops MCP Server/0.4.1 ({sys.platform}; {platform.machine().lower()})"
        assert value.startswith(f"{PRODUCT}/0.4.1 (")


@pytest.mark.unit
class TestUserAgentTransport:
    """Tests for UserAgentTransport."""

    async def test_sets_header_and_delegates(self):
        """Test the header is set and the base response returned unchanged."""
        seen: list[httpx.Request] = []
        response = httpx.Response(200, text="ok")

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return response

        transport = UserAgentTransport("1.0.0", httpx.MockTransport(handler))
        request = httpx.Request("GET", "https://foxops.example.com/api/incarnations/1")

        result = await transport.handle_async_request(request)

        assert result is response
        assert seen == [request]
        assert request.headers["User-Agent"] == user_agent("1.0.0")

    async def test_overrides_existing_header(self):
        """Test a User-Agent set earlier is replaced."""
        transport = UserAgentTransport("1.0.0", httpx.MockTransport(lambda r: httpx.Response(204)))
        request = httpx.Request(
            "DELETE",
            "https://foxops.example.com/api/incarnations/1",
            headers={"User-Agent": "python-httpx"},
        )

        await transport.handle_async_request(request)

        assert request.headers.get_list("User-Agent") == [user_agent("1.0.0")]

    async def test_aclose_delegates(self):
        """Test closing the wrapper closes the base transport."""
        base = AsyncMock(spec=httpx.AsyncBaseTransport)
        transport = UserAgentTransport("1.0.0", base)

        await transport.aclose()

        base.aclose.assert_awaited_once()

    async def test_aclose_leaves_borrowed_transport_open(self):
        """Test a transport owned by someone else is not closed."""
        base = AsyncMock(spec=httpx.AsyncBaseTransport)
        transport = UserAgentTransport("1.0.0", base, owns_transport=False)

        await transport.aclose()

        base.aclose.assert_not_awaited()
