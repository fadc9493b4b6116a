# ABOUTME: Configuration management for Foxops MCP Server
# ABOUTME: Handles environment variables, retry policy, and wait timeouts

"""
Configuration management using pydantic-settings.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module handles all configuration for the MCP server. It:

1. READS environment variables (like FOXOPS_ENDPOINT, FOXOPS_TOKEN)
2. VALIDATES them (endpoint gets a scheme, token must not be empty, etc.)
3. PROVIDES typed access to settings throughout the application

=============================================================================
ARCHITECTURE: THREE CONFIGURATION CLASSES
=============================================================================

1. FoxopsInstance: Connection to ONE Foxops server
   - Endpoint and token
   - Frozen: the client never changes it after construction

2. RetryPolicy: How transport failures are retried
   - Attempt count and exponential backoff parameters

3. ServerSettings: Main configuration container
   - Primary Foxops connection from environment
   - Log level, audit log, default wait timeout
   - Contains RetryPolicy as nested object

=============================================================================
ENVIRONMENT VARIABLE MAPPING
=============================================================================

Foxops connection:
    FOXOPS_ENDPOINT     -> Base URL of the Foxops API
    FOXOPS_TOKEN        -> API token sent as a Bearer token

Server settings (FOXOPS_MCP_ prefix):
    FOXOPS_MCP_LOG_LEVEL              -> DEBUG, INFO, WARNING, ERROR, CRITICAL
    FOXOPS_MCP_JSON_LOGS              -> Emit JSON log lines (default: false)
    FOXOPS_MCP_AUDIT_LOG              -> Path to audit log file
    FOXOPS_MCP_WAIT_TIMEOUT           -> Default merge request wait, e.g. "1m30s"
    FOXOPS_MCP_RETRY__MAX_ATTEMPTS    -> Total attempts per request (default: 5)
    FOXOPS_MCP_RETRY__BASE_DELAY      -> First backoff delay in seconds
    FOXOPS_MCP_RETRY__MULTIPLIER      -> Backoff growth factor
    FOXOPS_MCP_RETRY__MAX_DELAY       -> Backoff ceiling in seconds
"""

from __future__ import annotations

import os
import re
from pathlib import Path  # noqa: TC003 - Required at runtime for Pydantic
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# A sequence of numbers with a unit suffix, e.g. "10s", "1m30s", "2h".
DURATION_PATTERN = r"^(\d+[smh])+$"

_DURATION_PART = re.compile(r"(\d+)([smh])")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600}


def parse_duration(value: str) -> float:
    """
    Convert a duration string into seconds.

    Accepts the same syntax as the wait timeouts of the Foxops Terraform
    provider: numbers with an "s", "m" or "h" suffix, concatenated.

    Example:
        >>> parse_duration("1m30s")
        90.0

    Raises:
        ValueError: If the string does not match DURATION_PATTERN.
    """
    if not re.match(DURATION_PATTERN, value):
        raise ValueError(
            f"invalid duration {value!r}: must be a sequence of numbers with a unit "
            'suffix. Valid unit suffixes are "s", "m" and "h". Example: "1m30s"'
        )
    return float(
        sum(int(amount) * _UNIT_SECONDS[unit] for amount, unit in _DURATION_PART.findall(value))
    )


# =============================================================================
# FOXOPS INSTANCE CONFIGURATION
# =============================================================================


class FoxopsInstance(BaseModel):
    """
    Connection settings for a Foxops API.

    WHY FROZEN?
    -----------
    The endpoint and token are supplied once when the client is built and
    must not change while requests are in flight. frozen=True makes any
    attempt to assign a field raise a ValidationError.

    USAGE EXAMPLE:
    --------------
        instance = FoxopsInstance(
            endpoint="https://foxops.example.com",
            token=SecretStr("my-api-token"),
        )
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    endpoint: str = Field(description="Foxops API base URL")

    token: SecretStr = Field(description="Foxops API token")
    # SecretStr keeps the token out of logs and reprs.
    # To get the actual value: token.get_secret_value()

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """
        Ensure endpoint has a scheme and no trailing slash.

        API paths start with "/" so a trailing slash on the base URL would
        produce "//api/incarnations".
        """
        if not v.startswith(("http://", "https://")):
            v = f"https://{v}"
        return v.rstrip("/")

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: SecretStr) -> SecretStr:
        """Reject empty tokens so a client never starts unauthenticated."""
        if not v.get_secret_value():
            raise ValueError("token must not be empty")
        return v


# =============================================================================
# RETRY POLICY
# =============================================================================


class RetryPolicy(BaseModel):
    """
    Retry configuration for transport failures.

    Only network-level failures (connection refused, timeouts, resets) are
    retried. A response with an unexpected status code is never retried.

    BACKOFF:
    --------
    The wait before retry n (n starting at 1) is

        min(max_delay, base_delay * multiplier ** (n - 1))

    With the defaults: 1s, 2s, 4s, 8s between the five attempts.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=5, ge=1, description="Total attempts per request")
    base_delay: float = Field(default=1.0, ge=0, description="First backoff delay in seconds")
    multiplier: float = Field(default=2.0, ge=1, description="Backoff growth factor")
    max_delay: float = Field(default=30.0, ge=0, description="Backoff ceiling in seconds")


# =============================================================================
# MAIN SERVER SETTINGS
# =============================================================================


class ServerSettings(BaseSettings):
    """
    Main server configuration.

    USAGE:
    ------
        settings = load_settings()  # Reads from environment
        print(settings.foxops_endpoint)
        print(settings.retry.max_attempts)
    """

    model_config = SettingsConfigDict(
        env_prefix="FOXOPS_MCP_",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # FOXOPS CONNECTION (from environment)
    # -------------------------------------------------------------------------

    foxops_endpoint: str = Field(
        default="",  # Empty string = not configured
        validation_alias="FOXOPS_ENDPOINT",
        description="Foxops API base URL",
    )

    foxops_token: SecretStr = Field(
        default=SecretStr(""),
        validation_alias="FOXOPS_TOKEN",
        description="Foxops API token",
    )

    # -------------------------------------------------------------------------
    # LOGGING
    # -------------------------------------------------------------------------

    log_level: Annotated[str, Field(pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")] = Field(
        default="INFO",
        description="Logging level",
    )

    json_logs: bool = Field(default=False, description="Emit JSON log lines")

    audit_log: Path | None = Field(default=None, description="Path to audit log file")
    # When None, audit entries go through structlog.

    # -------------------------------------------------------------------------
    # CLIENT BEHAVIOUR
    # -------------------------------------------------------------------------

    wait_timeout: Annotated[str, Field(pattern=DURATION_PATTERN)] = Field(
        default="10s",
        description="Default time to wait for a merge request status",
    )

    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    @property
    def wait_timeout_seconds(self) -> float:
        """Default wait timeout converted to seconds."""
        return parse_duration(self.wait_timeout)

    @property
    def instance(self) -> FoxopsInstance | None:
        """
        Foxops connection built from FOXOPS_ENDPOINT and FOXOPS_TOKEN.

        Returns None when either is missing, so the server can start and
        report the misconfiguration instead of crashing on import.
        """
        if not self.foxops_endpoint or not self.foxops_token.get_secret_value():
            return None
        return FoxopsInstance(endpoint=self.foxops_endpoint, token=self.foxops_token)


# =============================================================================
# SETTINGS LOADER
# =============================================================================


def load_settings() -> ServerSettings:
    """
    Load settings from environment with validation.

    If FOXOPS_MCP_ENV_FILE is set, additional variables are read from that
    file. Useful for local development:

        FOXOPS_ENDPOINT=http://localhost:5001
        FOXOPS_TOKEN=dev-token
        FOXOPS_MCP_LOG_LEVEL=DEBUG

    Raises:
        pydantic.ValidationError: If configuration is invalid.
    """
    return ServerSettings(
        _env_file=os.environ.get("FOXOPS_MCP_ENV_FILE"),
    )
