"""Caller-supplied options for creating a client."""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ecs_client.events.notifier import EventCallback
from ecs_client.models import (
    AuthenticationMethod,
    Environment,
    LogLevel,
    RequestIdentifier,
    RequestIdentifiers,
)
from ecs_client.observability.logging import LogCallback


class EcsClientOptions(BaseModel):
    """Optional settings for one client.

    Attributes:
        default_config_path: JSON document seeding the cache when it is empty.
        default_groups_path: JSON file of default request identifiers.
        default_request_identifiers: Identifiers sent with every request.
        certificate: PKCS#12 bytes for certificate authentication.
        tenant_id: Azure AD tenant for certificate token exchange.
        client_id: Application or managed identity client id.
        authentication_method: Credential scheme.
        auth_environment: Environment whose authority issues tokens.
        event_callback: Observer receiving (client, event_type, message).
        log_callback: Receives (level, message) for forwarded log events.
        log_level: Minimum level forwarded to the log callback.
        enable_exp: Request experiment (flighting) assignments.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    default_config_path: Path | None = None
    default_groups_path: Path | None = None
    default_request_identifiers: RequestIdentifiers = ()
    certificate: bytes | None = Field(default=None, repr=False)
    tenant_id: str | None = None
    client_id: str | None = None
    authentication_method: AuthenticationMethod | int = AuthenticationMethod.NONE
    auth_environment: Environment | int | None = None
    event_callback: EventCallback | None = Field(default=None, repr=False)
    log_callback: LogCallback | None = Field(default=None, repr=False)
    log_level: LogLevel = LogLevel.NONE
    enable_exp: bool = False

    @field_validator("default_request_identifiers", mode="before")
    @classmethod
    def coerce_identifiers(cls, v: Any) -> Any:
        """Accept a name to values mapping as well as identifier objects."""
        if isinstance(v, dict):
            return tuple(
                RequestIdentifier(
                    name=name,
                    values=(values,) if isinstance(values, str) else tuple(values),
                )
                for name, values in v.items()
            )
        return v
