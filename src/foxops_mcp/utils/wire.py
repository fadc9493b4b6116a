# ABOUTME: JSON wire models and mapping for the Foxops incarnation API
# ABOUTME: Resolves the string/integer/float template data union in both directions

"""
Wire format mapping between the Foxops API and the Incarnation model.

=============================================================================
THE TEMPLATE DATA UNION
=============================================================================

Template data is a JSON object whose values may be a string, an integer or
a floating point number:

    "template_data": {"name": "svc", "replicas": 3, "ratio": 0.5}

The API schema describes each value as a union of three variants. Instead
of trying each variant in turn and catching failures, TemplateValue carries
an explicit discriminant (TemplateValueKind) that is chosen from the
runtime type of the value:

    JSON / Python value      kind
    -------------------      ----
    "svc"  / str             STRING
    3      / int             INTEGER
    0.5    / float           FLOAT
    true, null, [...], {...} rejected

Booleans are rejected even though Python treats bool as an int subclass:
they are not one of the three kinds the API accepts.

=============================================================================
PARTIAL FAILURE WHEN DECODING
=============================================================================

A bad template data value does not stop decoding. Every key is attempted
and all failures are reported together in a single IncarnationDecodeError,
so a caller sees every problem in one go.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, StrictInt, ValidationError

from foxops_mcp.utils.errors import IncarnationDecodeError, InvalidTemplateDataError
from foxops_mcp.utils.models import (
    CreateIncarnationRequest,
    Incarnation,
    TemplateScalar,
    UpdateIncarnationRequest,
)

# =============================================================================
# TEMPLATE DATA UNION
# =============================================================================


class TemplateValueKind(Enum):
    """Discriminant of a template data value."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"


@dataclass(frozen=True)
class TemplateValue:
    """A template data value tagged with its wire variant."""

    kind: TemplateValueKind
    value: TemplateScalar

    @classmethod
    def from_scalar(cls, value: Any) -> TemplateValue:
        """
        Tag a caller supplied value.

        The preference order is string, then integer, then float.

        Raises:
            TypeError: If the value is not one of the three scalar kinds.
            ValueError: If the value is a NaN or infinite float (not valid JSON).
        """
        if isinstance(value, str):
            return cls(TemplateValueKind.STRING, value)
        if isinstance(value, bool):
            raise TypeError("boolean values are not supported")
        if isinstance(value, int):
            return cls(TemplateValueKind.INTEGER, value)
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError(f"non-finite float {value!r} cannot be encoded")
            return cls(TemplateValueKind.FLOAT, value)
        raise TypeError(f"unsupported value of type {type(value).__name__}")

    @classmethod
    def from_wire(cls, raw: Any) -> TemplateValue:
        """
        Tag a value decoded from a JSON response.

        Raises:
            ValueError: If the JSON value is not a string, integer or float.
        """
        try:
            return cls.from_scalar(raw)
        except TypeError as e:
            raise ValueError(f"unsupported template data value: {e}") from e

    def to_wire(self) -> TemplateScalar:
        """Return the JSON-ready value for this variant."""
        if self.kind is TemplateValueKind.STRING:
            return str(self.value)
        if self.kind is TemplateValueKind.INTEGER:
            return int(self.value)
        return float(self.value)


def encode_template_data(data: dict[str, Any]) -> dict[str, TemplateScalar]:
    """
    Encode caller supplied template data for a request body.

    All keys are checked before failing so the error lists every bad value.

    Raises:
        InvalidTemplateDataError: If any value is not a string, integer or float.
    """
    encoded: dict[str, TemplateScalar] = {}
    errors: dict[str, str] = {}
    for key, value in data.items():
        try:
            encoded[key] = TemplateValue.from_scalar(value).to_wire()
        except (TypeError, ValueError) as e:
            errors[key] = str(e)
    if errors:
        raise InvalidTemplateDataError(errors)
    return encoded


# =============================================================================
# WIRE MODELS
# =============================================================================


class ApiError(BaseModel):
    """Error body returned by the API for failed requests."""

    message: str


class IncarnationWithDetails(BaseModel):
    """Incarnation as serialized by the API."""

    model_config = ConfigDict(extra="ignore")

    id: StrictInt
    incarnation_repository: str
    target_directory: str
    template_repository: str
    template_repository_version: str
    commit_sha: str
    commit_url: str
    template_data: dict[str, Any] | None = None
    merge_request_id: str | None = None
    merge_request_url: str | None = None
    # Any: the mapper decides what to keep, see map_incarnation.
    merge_request_status: Any = None


class DesiredIncarnationState(BaseModel):
    """Request body for creating an incarnation."""

    incarnation_repository: str
    target_directory: str | None = None
    template_repository: str
    template_repository_version: str
    template_data: dict[str, TemplateScalar]


class DesiredIncarnationStatePatch(BaseModel):
    """Request body for updating an incarnation."""

    automerge: bool
    template_repository_version: str
    template_data: dict[str, TemplateScalar]


# =============================================================================
# MAPPING
# =============================================================================


def create_request_body(request: CreateIncarnationRequest) -> dict[str, Any]:
    """Build the POST body; target_directory is omitted when not set."""
    body = DesiredIncarnationState(
        incarnation_repository=request.incarnation_repository,
        target_directory=request.target_directory,
        template_repository=request.template_repository,
        template_repository_version=request.template_repository_version,
        template_data=encode_template_data(request.template_data),
    )
    return body.model_dump(mode="json", exclude_none=True)


def update_request_body(request: UpdateIncarnationRequest) -> dict[str, Any]:
    """Build the PUT body."""
    body = DesiredIncarnationStatePatch(
        automerge=request.automerge,
        template_repository_version=request.template_repository_version,
        template_data=encode_template_data(request.template_data),
    )
    return body.model_dump(mode="json")


def decode_api_error(body: bytes) -> str:
    """
    Extract the server message from an error body.

    Raises:
        pydantic.ValidationError: If the body is not a JSON error object.
    """
    return ApiError.model_validate_json(body).message


def map_incarnation(body: bytes | str) -> Incarnation:
    """
    Decode a response body into an Incarnation.

    Args:
        body: Raw JSON response body

    Returns:
        Fully populated Incarnation

    Raises:
        IncarnationDecodeError: If the body is malformed (stage "incarnation")
            or one or more template data values cannot be resolved
            (stage "template_data", one entry per failing key).
    """
    try:
        data = IncarnationWithDetails.model_validate_json(body)
    except ValidationError as e:
        raise IncarnationDecodeError("incarnation", [str(e)]) from e

    incarnation = Incarnation(
        id=str(data.id),
        incarnation_repository=data.incarnation_repository,
        target_directory=data.target_directory,
        template_repository=data.template_repository,
        template_repository_version=data.template_repository_version,
        commit_sha=data.commit_sha,
        commit_url=data.commit_url,
        merge_request_id=data.merge_request_id,
        merge_request_url=data.merge_request_url,
    )

    # Status leniency: only a JSON string is a status. Any other type is
    # treated as "no status" so new server representations do not break
    # decoding.
    if isinstance(data.merge_request_status, str):
        incarnation.merge_request_status = data.merge_request_status

    if data.template_data is not None:
        errors: list[str] = []
        for key, raw in data.template_data.items():
            try:
                incarnation.template_data[key] = TemplateValue.from_wire(raw).value
            except ValueError as e:
                errors.append(f"{key}: {e}")
        if errors:
            raise IncarnationDecodeError("template_data", errors)

    return incarnation
