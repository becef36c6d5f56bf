"""Event delivery to client observers."""

from ecs_client.events.notifier import EventCallback, EventNotifier


__all__ = [
    "EventCallback",
    "EventNotifier",
]
