# ABOUTME: Foxops incarnation API client with retry logic and error handling
# ABOUTME: Provides async create/read/update/delete plus merge request status polling

"""
Foxops API client with retry logic and structured error handling.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module provides the HTTP client for the Foxops incarnation API.
It handles:

1. HTTP COMMUNICATION: Making requests to the incarnation endpoints
2. AUTHENTICATION: Attaching the Bearer token to every request
3. RETRY LOGIC: Retrying requests that failed at the network level
4. ERROR HANDLING: Turning unexpected status codes into FoxopsApiError
5. POLLING: Waiting for a merge request to reach a given status

=============================================================================
FOXOPS INCARNATION API OVERVIEW
=============================================================================

    GET    /api/incarnations/{id}  -> 200, incarnation
    POST   /api/incarnations       -> 201, incarnation
    PUT    /api/incarnations/{id}  -> 200, incarnation
    DELETE /api/incarnations/{id}  -> 204, no body

Authentication is via Bearer token in the Authorization header:
    Authorization: Bearer <token>

Any other status code carries an error body:
    {"message": "error description"}

Incarnation ids are numeric on the wire but strings everywhere else. A
non-numeric id is rejected before any request is sent.

=============================================================================
THE REQUEST STACK
=============================================================================

    FoxopsClient method
          |
    _request()              tenacity retries on httpx.TransportError
          |
    httpx.AsyncClient       Authorization header, 5 minute timeout,
          |                 debug logging event hooks
    UserAgentTransport      User-Agent header
          |
    base transport          httpx.AsyncHTTPTransport, or any injected
                            transport (httpx.MockTransport in tests)

=============================================================================
CANCELLATION AND DEADLINES
=============================================================================

Every method is a coroutine, so callers bound them with asyncio:

    async with asyncio.timeout(30):
        incarnation = await client.get_incarnation("42")

Cancellation interrupts any in-flight request or polling sleep right away.
get_incarnation_with_merge_request_status also accepts its own timeout and
reports expiry as MergeRequestStatusTimeoutError, so callers can tell "the
merge request never got there" apart from "the API call failed".
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from foxops_mcp import __version__
from foxops_mcp.config import RetryPolicy
from foxops_mcp.utils.errors import (
    FoxopsApiError,
    FoxopsTransportError,
    InvalidIncarnationIdError,
    MergeRequestStatusTimeoutError,
)
from foxops_mcp.utils.transport import UserAgentTransport
from foxops_mcp.utils.wire import (
    create_request_body,
    decode_api_error,
    map_incarnation,
    update_request_body,
)

if TYPE_CHECKING:
    from foxops_mcp.config import FoxopsInstance
    from foxops_mcp.utils.models import (
        CreateIncarnationRequest,
        Incarnation,
        UpdateIncarnationRequest,
    )

logger = structlog.get_logger(__name__)

# Overall timeout applied to each request.
REQUEST_TIMEOUT = 300.0

# Delay between two polls of the same incarnation.
POLL_INTERVAL = 1.0

INCARNATIONS_PATH = "/api/incarnations"

_NUMERIC_ID = re.compile(r"[+-]?[0-9]+")


def wire_id(incarnation_id: str) -> int:
    """
    Convert an incarnation id to its numeric wire form.

    Raises:
        InvalidIncarnationIdError: If the id is not a decimal integer.
    """
    if not _NUMERIC_ID.fullmatch(incarnation_id):
        raise InvalidIncarnationIdError(incarnation_id)
    return int(incarnation_id)


class FoxopsClient:
    """
    Async Foxops API client with retry logic.

    LIFECYCLE:
    ----------
    1. Create client: client = FoxopsClient(instance)
    2. Enter context: async with client: ...
    3. Use client: await client.get_incarnation("42")
    4. Exit context: HTTP connections cleaned up

    CONCURRENCY:
    ------------
    One client may serve many concurrent tasks. The only shared state is
    the httpx connection pool; the instance, retry policy and transport are
    fixed at construction. Each request builds its own retry controller.

    RETRY LOGIC:
    ------------
    Requests failing with httpx.TransportError (connection errors, timeouts)
    are retried with exponential backoff according to the RetryPolicy. A
    response with an unexpected status code is never retried.
    """

    def __init__(
        self,
        instance: FoxopsInstance,
        version: str = __version__,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_policy: RetryPolicy | None = None,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        """
        Initialize Foxops client.

        NOTE: This only creates the client object. The HTTP connection pool
        is created later in __aenter__ (when using 'async with').

        Args:
            instance: Foxops endpoint and token
            version: Version reported in the User-Agent header
            transport: Base httpx transport. Defaults to
                      httpx.AsyncHTTPTransport(), which the client closes
                      on exit. An injected transport stays owned by the
                      caller and is left open.
            retry_policy: Retry configuration for transport failures
            poll_interval: Seconds between polls when waiting for a
                          merge request status

        Raises:
            ValueError: If the token is empty. A client must never send
                       unauthenticated requests.
        """
        if not instance.token.get_secret_value():
            raise ValueError("Foxops API token must not be empty")

        self._instance = instance
        self._version = version
        self._transport = transport
        self._retry_policy = retry_policy or RetryPolicy()
        self._poll_interval = poll_interval
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> FoxopsClient:
        """Enter async context and create HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self._instance.endpoint,
            headers={
                "Authorization": f"Bearer {self._instance.token.get_secret_value()}",
                "Accept": "application/json",
            },
            timeout=REQUEST_TIMEOUT,
            transport=UserAgentTransport(
                self._version,
                self._transport if self._transport is not None else httpx.AsyncHTTPTransport(),
                owns_transport=self._transport is None,
            ),
            event_hooks={
                "request": [_log_request],
                "response": [_log_response],
            },
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        """Exit async context and close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # REQUEST PLUMBING
    # -------------------------------------------------------------------------

    def _retrying(self, log: Any) -> AsyncRetrying:
        """
        Build a retry controller for one request.

        AsyncRetrying keeps per-run state, so it is created per request
        rather than shared across concurrent calls.
        """
        policy = self._retry_policy

        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            log.warning(
                "Retrying Foxops API request",
                attempt=retry_state.attempt_number,
                max_attempts=policy.max_attempts,
                sleep=retry_state.next_action.sleep if retry_state.next_action else None,
                error=str(error),
            )

        return AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(
                multiplier=policy.base_delay,
                exp_base=policy.multiplier,
                min=policy.base_delay,
                max=policy.max_delay,
            ),
            before_sleep=log_retry,
            reraise=True,
        )

    async def _request(
        self,
        method: str,
        path: str,
        expected_status: int,
        json_data: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        Make HTTP request to the Foxops API.

        Args:
            method: HTTP method ("GET", "POST", "PUT", "DELETE")
            path: API path (e.g., "/api/incarnations/42")
            expected_status: The only status code treated as success
            json_data: JSON request body (optional)

        Returns:
            The response, with its body already read

        Raises:
            FoxopsTransportError: On network failure after all retries, or
                when the response body cannot be read or decoded
            FoxopsApiError: On any status code other than expected_status
            RuntimeError: If client not initialized (forgot async with)
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        log = logger.bind(method=method, path=path)

        try:
            async for attempt in self._retrying(log):
                with attempt:
                    response = await self._client.request(method, path, json=json_data)
        except httpx.RequestError as e:
            # Only TransportError is retried; decoding and redirect failures
            # surface on the first attempt but are wrapped the same way.
            log.warning("Foxops API request failed", error=str(e))
            raise FoxopsTransportError(f"{method} {path} failed: {e}") from e

        self._check_response_status(expected_status, response, log)
        return response

    def _check_response_status(
        self,
        expected: int,
        response: httpx.Response,
        log: Any,
    ) -> None:
        """
        Raise FoxopsApiError unless the response has the expected status.

        When the body is a JSON error object its message is used verbatim;
        otherwise the message says decoding failed and the decode error is
        kept as the cause.
        """
        if response.status_code == expected:
            return

        log.warning(
            "Unexpected Foxops API status",
            status=response.status_code,
            expected=expected,
            body=response.text[:200],
        )

        try:
            message = decode_api_error(response.content)
        except ValidationError as e:
            raise FoxopsApiError(
                expected,
                response.status_code,
                "failed to decode error message",
            ) from e

        raise FoxopsApiError(expected, response.status_code, message)

    # -------------------------------------------------------------------------
    # INCARNATION OPERATIONS
    # -------------------------------------------------------------------------

    async def get_incarnation(self, incarnation_id: str) -> Incarnation:
        """
        Get incarnation by id.

        Foxops API: GET /api/incarnations/{id}

        Raises:
            InvalidIncarnationIdError: If the id is not numeric
            FoxopsApiError: If the incarnation cannot be read (e.g. 404)
            IncarnationDecodeError: If the response body is malformed
        """
        numeric_id = wire_id(incarnation_id)
        response = await self._request(
            "GET",
            f"{INCARNATIONS_PATH}/{numeric_id}",
            httpx.codes.OK,
        )
        return map_incarnation(response.content)

    async def get_incarnation_with_merge_request_status(
        self,
        incarnation_id: str,
        status: str,
        timeout: float | None = None,
    ) -> Incarnation:
        """
        Poll an incarnation until its merge request reaches a status.

        POLLING RULES:
        --------------
        Polls are strictly sequential, poll_interval apart. The loop stops
        when:

        1. The incarnation has no merge request at all. There is nothing to
           wait for, so it is returned regardless of the requested status.
        2. The merge request status equals the requested status exactly.
        3. A poll fails. The error is raised immediately, without retrying
           at this level (transport retries already happened inside).

        There is no limit on the number of polls. Pass a timeout, or cancel
        the calling task, to bound the wait.

        Args:
            incarnation_id: Incarnation to watch
            status: Expected merge request status (e.g. "merged")
            timeout: Maximum time to wait in seconds, None for no limit

        Returns:
            The incarnation as of the last poll

        Raises:
            MergeRequestStatusTimeoutError: If the timeout expired first.
                The asyncio TimeoutError is kept as the cause.
        """
        log = logger.bind(incarnation_id=incarnation_id, status=status, timeout=timeout)

        try:
            async with asyncio.timeout(timeout):
                polls = 0
                while True:
                    incarnation = await self.get_incarnation(incarnation_id)
                    polls += 1

                    if incarnation.merge_request_id is None:
                        log.debug("No merge request to wait for", polls=polls)
                        return incarnation

                    if incarnation.merge_request_status == status:
                        log.debug("Merge request reached status", polls=polls)
                        return incarnation

                    log.debug(
                        "Waiting for merge request status",
                        current=incarnation.merge_request_status,
                        polls=polls,
                    )
                    await asyncio.sleep(self._poll_interval)
        except TimeoutError as e:
            log.warning("Timed out waiting for merge request status")
            raise MergeRequestStatusTimeoutError(incarnation_id, status, timeout) from e

    async def create_incarnation(self, request: CreateIncarnationRequest) -> Incarnation:
        """
        Create an incarnation.

        Foxops API: POST /api/incarnations

        The server renders the template into the incarnation repository and
        returns the new incarnation with its server-assigned id and commit.

        Raises:
            InvalidTemplateDataError: If a template data value is not a
                string, integer or float
            FoxopsApiError: If the server rejects the request
        """
        body = create_request_body(request)
        response = await self._request(
            "POST",
            INCARNATIONS_PATH,
            httpx.codes.CREATED,
            json_data=body,
        )
        return map_incarnation(response.content)

    async def update_incarnation(
        self,
        incarnation_id: str,
        request: UpdateIncarnationRequest,
    ) -> Incarnation:
        """
        Update an incarnation to a new template version or template data.

        Foxops API: PUT /api/incarnations/{id}

        The update is delivered as a merge request in the incarnation
        repository; with request.automerge the server merges it right away.
        """
        numeric_id = wire_id(incarnation_id)
        body = update_request_body(request)
        response = await self._request(
            "PUT",
            f"{INCARNATIONS_PATH}/{numeric_id}",
            httpx.codes.OK,
            json_data=body,
        )
        return map_incarnation(response.content)

    async def delete_incarnation(self, incarnation_id: str) -> None:
        """
        Delete an incarnation.

        Foxops API: DELETE /api/incarnations/{id}

        Succeeds only on 204 No Content.
        """
        numeric_id = wire_id(incarnation_id)
        await self._request(
            "DELETE",
            f"{INCARNATIONS_PATH}/{numeric_id}",
            httpx.codes.NO_CONTENT,
        )


async def _log_request(request: httpx.Request) -> None:
    logger.debug("Making Foxops API request", method=request.method, url=str(request.url))


async def _log_response(response: httpx.Response) -> None:
    logger.debug(
        "Received Foxops API response",
        method=response.request.method,
        url=str(response.request.url),
        status=response.status_code,
    )
