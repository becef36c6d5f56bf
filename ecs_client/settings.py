"""Process-level settings powered by Pydantic BaseSettings."""

from pathlib import Path
from typing import Annotated

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ecs_client.constants import (
    DEFAULT_APP_VERSION,
    DEFAULT_IMDS_ENDPOINT,
    DEFAULT_TOKEN_RESOURCE,
)
from ecs_client.fetch.models import RetryPolicy


class EcsSettings(BaseSettings):
    """Environment configuration shared by every client in the process.

    Caller-specific options live in EcsClientOptions; these cover the
    transport, cache and token endpoints.
    """

    model_config = SettingsConfigDict(
        env_prefix="ECS_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    endpoint_override: str | None = Field(
        default=None, description="Service base URL replacing the environment default"
    )
    app_version: str = DEFAULT_APP_VERSION
    timeout_seconds: Annotated[float, Field(gt=0.0, le=300.0)] = 30.0
    refresh_interval_seconds: Annotated[float, Field(ge=0.0)] = Field(
        default=0.0, description="Background refresh period; 0 disables refresh"
    )
    cache_dir: Path | None = Field(
        default=None, description="Directory for persisted configuration cache"
    )
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    imds_endpoint: str = DEFAULT_IMDS_ENDPOINT
    token_resource: str = DEFAULT_TOKEN_RESOURCE
    default_tenant_id: str | None = Field(
        default=None, description="Tenant used for certificate auth when none given"
    )
    authority_host_override: str | None = None


def get_settings() -> EcsSettings:
    """Get a settings instance."""
    return EcsSettings()
