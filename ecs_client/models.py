"""Data models for the ECS client."""

import hashlib
import json
from datetime import UTC, datetime
from enum import IntEnum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Environment(IntEnum):
    """ECS deployment the client talks to."""

    INTEGRATION = 0
    PRODUCTION = 1
    DOD = 2
    GCCH = 3
    AG08 = 4
    AG09 = 5
    MOONCAKE = 6
    GCCMOD = 8
    CANARY = 9


class EventType(IntEnum):
    """Outcome kinds delivered to the event observer.

    - CONFIGURATION_CHANGED: Configuration loaded from the service
    - CONFIGURATION_CHANGED_FROM_CACHE: Service unavailable, cached copy served
    - CONFIGURATION_ERROR: No configuration could be produced
    """

    CONFIGURATION_CHANGED = 0
    CONFIGURATION_CHANGED_FROM_CACHE = 1
    CONFIGURATION_ERROR = 2


class LogLevel(IntEnum):
    """Minimum level forwarded to a client's log callback."""

    NONE = 0
    INFORMATION = 2
    WARNING = 3
    ERROR = 4
    CRITICAL = 5


class AuthenticationMethod(IntEnum):
    """Credential scheme used for ECS requests."""

    NONE = 0
    AZURE_AD_CLIENT_CERTIFICATE_WITH_SNI = 2
    SYSTEM_ASSIGNED_MANAGED_IDENTITY = 3
    USER_ASSIGNED_MANAGED_IDENTITY = 4


class StatusCode(IntEnum):
    """Status returned by the handle-based boundary API."""

    SUCCESS = 0
    ERROR_UNDEFINED = -1


class RequestIdentifier(BaseModel):
    """Named, multi-valued tag scoping configuration resolution."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Annotated[str, Field(min_length=1)]
    values: tuple[str, ...] = ()

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject whitespace-only names."""
        if not v.strip():
            msg = "Request identifier name must not be blank"
            raise ValueError(msg)
        return v


RequestIdentifiers = tuple[RequestIdentifier, ...]


def identifiers_from_mapping(mapping: dict[str, list[str]]) -> RequestIdentifiers:
    """Build request identifiers from a name to values mapping.

    Args:
        mapping: Identifier names mapped to their values.

    Returns:
        Identifiers in mapping order.
    """
    return tuple(
        RequestIdentifier(name=name, values=tuple(values))
        for name, values in mapping.items()
    )


def identifiers_fingerprint(identifiers: RequestIdentifiers) -> str:
    """Stable digest of a set of identifiers, used to scope cached ETags."""
    payload = json.dumps(
        [[ident.name, list(ident.values)] for ident in identifiers],
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ClientIdentity(BaseModel):
    """Who is asking: the client name and its agents."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    client: str
    agents: tuple[str, ...] = ()

    @field_validator("client")
    @classmethod
    def validate_client(cls, v: str) -> str:
        """Ensure the client name is present."""
        if not v or not v.strip():
            msg = "Client name must not be empty"
            raise ValueError(msg)
        return v

    @property
    def cache_key(self) -> str:
        """Stable key used by cache stores."""
        payload = json.dumps([self.client, list(self.agents)], separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class EventRecord(BaseModel):
    """A single resolve outcome delivered to the observer."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    event_type: EventType
    message: str | None = None


class CacheEntry(BaseModel):
    """Last known good configuration for one client identity."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    document: str
    etag: str | None = None
    identifiers_fingerprint: str | None = None
    stored_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ResolveOutcome(BaseModel):
    """Document and event produced by one successful resolution."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    document: str
    event: EventRecord

    @property
    def from_cache(self) -> bool:
        """Whether the document was served from the cache."""
        return self.event.event_type == EventType.CONFIGURATION_CHANGED_FROM_CACHE
