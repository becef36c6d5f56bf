"""Observability module for logging and metrics."""

from ecs_client.observability.logging import (
    ClientLogger,
    LogCallback,
    configure_logging,
)
from ecs_client.observability.metrics import EcsMetrics


__all__ = [
    "ClientLogger",
    "EcsMetrics",
    "LogCallback",
    "configure_logging",
]
