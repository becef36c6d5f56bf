"""Last-error slot scoped to the current thread or async task.

Each public operation overwrites the slot with its outcome: a success
clears it, a failure stores the error message.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from ecs_client.errors import EcsError


_last_error: ContextVar[str | None] = ContextVar("ecs_last_error", default=None)


def set_last_error(message: str) -> None:
    """Store an error message for the current context."""
    _last_error.set(message)


def get_last_error() -> str | None:
    """Return the message stored for the current context, if any."""
    return _last_error.get()


def clear_last_error() -> None:
    """Forget the error stored for the current context."""
    _last_error.set(None)


@contextmanager
def record_outcome() -> Iterator[None]:
    """Record the outcome of the wrapped block in the last-error slot.

    The slot is cleared on normal exit. ECS errors store their message,
    any other exception stores its type and text. The exception is
    always re-raised.
    """
    try:
        yield
    except EcsError as e:
        set_last_error(e.message)
        raise
    except Exception as e:
        set_last_error(f"{type(e).__name__}: {e}")
        raise
    clear_last_error()
