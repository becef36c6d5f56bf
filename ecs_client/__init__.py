"""Client for the ECS remote configuration and experimentation service."""

from ecs_client.client import EcsClient
from ecs_client.errors import (
    AuthenticationConfigError,
    AuthenticationFailedError,
    ClientDestroyedError,
    EcsError,
    EcsErrorClass,
    InvalidArgumentError,
    InvalidHandleError,
    RemoteUnavailableError,
    UndefinedError,
)
from ecs_client.last_error import clear_last_error, get_last_error, set_last_error
from ecs_client.models import (
    AuthenticationMethod,
    Environment,
    EventType,
    LogLevel,
    RequestIdentifier,
    StatusCode,
)
from ecs_client.monitor import ModelOptionsReceiver, OptionsUpdateError, OptionsUpdateReceiver
from ecs_client.options import EcsClientOptions
from ecs_client.settings import EcsSettings


__version__ = "0.1.0"

__all__ = [
    # Client
    "EcsClient",
    "EcsClientOptions",
    "EcsSettings",
    # Models
    "AuthenticationMethod",
    "Environment",
    "EventType",
    "LogLevel",
    "RequestIdentifier",
    "StatusCode",
    # Options monitor
    "ModelOptionsReceiver",
    "OptionsUpdateError",
    "OptionsUpdateReceiver",
    # Errors
    "AuthenticationConfigError",
    "AuthenticationFailedError",
    "ClientDestroyedError",
    "EcsError",
    "EcsErrorClass",
    "InvalidArgumentError",
    "InvalidHandleError",
    "RemoteUnavailableError",
    "UndefinedError",
    # Last error
    "clear_last_error",
    "get_last_error",
    "set_last_error",
]
