# ABOUTME: Exception hierarchy for the Foxops API client
# ABOUTME: Separates argument, transport, status, decode, and timeout failures

"""
Structured errors raised by the Foxops client.

Every error derives from FoxopsError so callers can catch the whole family,
and every wrapping error is raised with ``raise ... from err`` so the
original cause stays available on ``__cause__``.

    FoxopsError
    ├── InvalidIncarnationIdError      id is not numeric (client side)
    ├── InvalidTemplateDataError       value is not str/int/float (client side)
    ├── FoxopsTransportError           network failure after retries
    ├── FoxopsApiError                 unexpected HTTP status code
    ├── IncarnationDecodeError         success body could not be mapped
    └── MergeRequestStatusTimeoutError polling deadline expired
"""

from __future__ import annotations


class FoxopsError(Exception):
    """Base class for all Foxops client errors."""


class InvalidIncarnationIdError(FoxopsError, ValueError):
    """Incarnation id cannot be converted to the numeric wire id."""

    def __init__(self, incarnation_id: str) -> None:
        self.incarnation_id = incarnation_id
        super().__init__(f"invalid incarnation id {incarnation_id!r}: must be numeric")


class InvalidTemplateDataError(FoxopsError, ValueError):
    """One or more template data values cannot be encoded for the wire."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = errors
        joined = "; ".join(f"{key}: {reason}" for key, reason in sorted(errors.items()))
        super().__init__(f"invalid template data: {joined}")


class FoxopsTransportError(FoxopsError):
    """The request could not be completed at the network level."""


class FoxopsApiError(FoxopsError):
    """
    The API answered with an unexpected status code.

    ``message`` is the server's own message when the error body could be
    decoded, otherwise a generic decode failure message (with the decode
    error on ``__cause__``).
    """

    def __init__(self, expected: int, actual: int, message: str) -> None:
        self.expected = int(expected)
        self.actual = int(actual)
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"unexpected status code {self.actual}, wants {self.expected}: {self.message}"


class IncarnationDecodeError(FoxopsError):
    """
    A success response body could not be mapped to an Incarnation.

    ``stage`` names the mapping step that failed ("incarnation" for the
    body itself, "template_data" for the per-key union decoding). For the
    template data stage, ``errors`` holds one entry per failing key.
    """

    def __init__(self, stage: str, errors: list[str]) -> None:
        self.stage = stage
        self.errors = errors
        super().__init__(f"failed to decode {stage}: " + "; ".join(errors))


class MergeRequestStatusTimeoutError(FoxopsError):
    """The merge request did not reach the expected status before the deadline."""

    def __init__(self, incarnation_id: str, status: str, timeout: float | None) -> None:
        self.incarnation_id = incarnation_id
        self.status = status
        self.timeout = timeout
        super().__init__(
            f"timed out after {timeout}s waiting for merge request of incarnation "
            f"{incarnation_id} to reach status {status!r}"
        )
