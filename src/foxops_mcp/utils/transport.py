# ABOUTME: httpx transport wrapper stamping a User-Agent on every request
# ABOUTME: Sits between the client and the pluggable base transport

"""User-Agent stamping transport."""

from __future__ import annotations

import platform
import sys

import httpx

PRODUCT = "Foxops MCP Server"


def user_agent(version: str) -> str:
    """Return the User-Agent value, e.g. 'Foxops MCP Server/0.1.0 (linux; x86_64)'."""
    return f"{PRODUCT}/{version} ({sys.platform}; {platform.machine().lower()})"


class UserAgentTransport(httpx.AsyncBaseTransport):
    """
    Adds the User-Agent header, then delegates to the wrapped transport.

    The wrapped transport is closed with this one only when owns_transport
    is set; a transport handed in by a caller stays open.
    """

    def __init__(
        self,
        version: str,
        transport: httpx.AsyncBaseTransport,
        owns_transport: bool = True,
    ) -> None:
        self._user_agent = user_agent(version)
        self._transport = transport
        self._owns_transport = owns_transport

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        request.headers["User-Agent"] = self._user_agent
        return await self._transport.handle_async_request(request)

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.aclose()
