"""Data models for the fetch layer."""

import random
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from ecs_client.models import ClientIdentity, Environment, RequestIdentifiers


class RemoteErrorClass(str, Enum):
    """Classification of remote call failures for metrics and retry decisions.

    - NETWORK_TIMEOUT: Request timed out
    - CONNECTION_ERROR: Could not establish connection
    - AUTH_REJECTED: 401/403 from the service
    - HTTP_4XX: Non-retryable client error (except 401/403/429)
    - HTTP_5XX: Retryable server error
    - RATE_LIMITED: 429 Too Many Requests
    - INVALID_RESPONSE: Success status with an unusable body
    - SSL_ERROR: TLS handshake or certificate error
    - UNKNOWN: Unclassified error
    """

    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    AUTH_REJECTED = "AUTH_REJECTED"
    HTTP_4XX = "HTTP_4XX"
    HTTP_5XX = "HTTP_5XX"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    SSL_ERROR = "SSL_ERROR"
    UNKNOWN = "UNKNOWN"


class RemoteError(BaseModel):
    """Typed error from a remote configuration call."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_class: RemoteErrorClass = Field(description="Classification of the error")
    message: Annotated[str, Field(min_length=1, description="Human-readable message")]
    status_code: int | None = Field(
        default=None, description="HTTP status code if available"
    )
    retry_after: int | None = Field(
        default=None, description="Retry-After seconds (for 429)"
    )


class RemoteCallError(Exception):
    """Raised by transports and credential providers when a remote call fails.

    Carries the classified RemoteError so the engine can decide between
    retry and cache fallback.
    """

    def __init__(self, error: RemoteError) -> None:
        super().__init__(error.message)
        self.error = error


class ConfigRequest(BaseModel):
    """Everything a transport needs to perform one configuration call."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    environment: Environment
    identity: ClientIdentity
    identifiers: RequestIdentifiers = ()
    enable_exp: bool = False
    etag: str | None = None


class RemoteResponse(BaseModel):
    """Successful answer from the configuration service.

    ``not_modified`` means the service confirmed the cached document
    (HTTP 304) and ``document`` is None.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status_code: int = 200
    document: str | None = None
    etag: str | None = None
    not_modified: bool = False


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Uses exponential backoff: delay = base_delay_ms * (exponential_base ^ attempt)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: Annotated[int, Field(ge=0, le=10)] = 2
    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = 250
    max_delay_ms: Annotated[int, Field(ge=0, le=300000)] = 5000
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = 2.0
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.1

    def should_retry(self, error: RemoteError, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            error: The error that occurred.
            attempt: Current attempt number (0-indexed).

        Returns:
            True if the request should be retried.
        """
        if attempt >= self.max_retries:
            return False

        retryable_classes = {
            RemoteErrorClass.NETWORK_TIMEOUT,
            RemoteErrorClass.CONNECTION_ERROR,
            RemoteErrorClass.HTTP_5XX,
            RemoteErrorClass.RATE_LIMITED,
        }

        return error.error_class in retryable_classes

    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay before the next retry attempt.

        Args:
            attempt: Current attempt number (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        delay = self.base_delay_ms * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay_ms)

        jitter = delay * self.jitter_factor * random.random()  # noqa: S311
        return int(delay + jitter)
