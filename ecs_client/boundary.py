"""Handle-based API mirroring the native ECS client library.

Clients and returned strings are referenced by integer handles that are
never reused. Every function returns a StatusCode instead of raising;
the failure detail is read with ``ecs_get_last_error`` from the same
thread or task, as an owned string like the documents ``ecs_client_get_config``
returns.
"""

import itertools
import threading
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Generic, TypeVar

import structlog
from pydantic import ValidationError

from ecs_client.auth.provider import CredentialProvider
from ecs_client.cache.store import CacheStore
from ecs_client.client import EcsClient, IdentifiersArg
from ecs_client.constants import COMPONENT_BOUNDARY
from ecs_client.errors import EcsError, InvalidArgumentError, InvalidHandleError
from ecs_client.fetch.transport import RemoteTransport
from ecs_client.last_error import get_last_error, record_outcome
from ecs_client.models import EventType, StatusCode
from ecs_client.options import EcsClientOptions
from ecs_client.settings import EcsSettings


logger = structlog.get_logger()

T = TypeVar("T")

HandleEventCallback = Callable[[int, EventType, str | None], None]


class HandleTable(Generic[T]):
    """Thread-safe mapping of integer handles to objects.

    Handles come from a monotonically increasing counter starting at 1,
    so a released handle never refers to a later object.
    """

    def __init__(self, kind: str) -> None:
        self._kind = kind
        self._items: dict[int, T] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def allocate(self) -> int:
        """Reserve a new handle number."""
        with self._lock:
            return next(self._counter)

    def put(self, handle: int, item: T) -> None:
        """Bind an allocated handle to an object."""
        with self._lock:
            self._items[handle] = item

    def add(self, item: T) -> int:
        """Store an object under a new handle."""
        handle = self.allocate()
        self.put(handle, item)
        return handle

    def get(self, handle: int) -> T:
        """Look up a handle.

        Raises:
            InvalidHandleError: If the handle is unknown or released.
        """
        with self._lock:
            try:
                return self._items[handle]
            except KeyError:
                msg = f"Unknown or released {self._kind} handle: {handle}"
                raise InvalidHandleError(msg) from None

    def remove(self, handle: int) -> T:
        """Release a handle and return its object.

        Raises:
            InvalidHandleError: If the handle is unknown or released.
        """
        with self._lock:
            try:
                return self._items.pop(handle)
            except KeyError:
                msg = f"Unknown or released {self._kind} handle: {handle}"
                raise InvalidHandleError(msg) from None


_clients: HandleTable[EcsClient] = HandleTable("client")
_strings: HandleTable[str] = HandleTable("string")
_log = logger.bind(component=COMPONENT_BOUNDARY)


def _run(operation: Callable[[], T]) -> tuple[StatusCode, T | None]:
    try:
        with record_outcome():
            result = operation()
    except EcsError as e:
        _log.debug("boundary_call_failed", **e.to_dict())
        return StatusCode.ERROR_UNDEFINED, None
    except Exception as e:  # noqa: BLE001
        _log.error("boundary_call_crashed", error=str(e), error_type=type(e).__name__)
        return StatusCode.ERROR_UNDEFINED, None
    return StatusCode.SUCCESS, result


def _coerce_options(
    options: EcsClientOptions | Mapping[str, Any] | None,
) -> EcsClientOptions:
    if options is None:
        return EcsClientOptions()
    if isinstance(options, EcsClientOptions):
        return options
    try:
        return EcsClientOptions.model_validate(dict(options))
    except ValidationError as e:
        msg = f"Invalid client options: {e.errors()[0]['msg']}"
        raise InvalidArgumentError(msg) from e


def ecs_create_client(
    environment: int,
    client: str | None,
    agents: Sequence[str] | None = None,
    options: EcsClientOptions | Mapping[str, Any] | None = None,
    event_callback: HandleEventCallback | None = None,
    *,
    settings: EcsSettings | None = None,
    transport: RemoteTransport | None = None,
    cache: CacheStore | None = None,
    credential_provider: CredentialProvider | None = None,
) -> tuple[StatusCode, int | None]:
    """Create a client and return its handle.

    Args:
        environment: Raw environment value.
        client: ECS client name.
        agents: Agent names.
        options: Client options, as a model or a mapping of raw values.
        event_callback: Observer receiving (handle, event_type, message).
        settings: Process settings override.
        transport: Remote transport override.
        cache: Cache store override.
        credential_provider: Credential provider override.

    Returns:
        SUCCESS and the client handle, or ERROR_UNDEFINED and None.
    """

    def create() -> int:
        if client is None:
            msg = "Client name is required"
            raise InvalidArgumentError(msg)

        client_options = _coerce_options(options)
        handle = _clients.allocate()
        if event_callback is not None:
            callback = event_callback

            def forward(_client: EcsClient, event_type: EventType, message: str | None) -> None:
                callback(handle, event_type, message)

            client_options = client_options.model_copy(update={"event_callback": forward})

        instance = EcsClient.create(
            environment,
            client,
            agents or (),
            client_options,
            settings=settings,
            transport=transport,
            cache=cache,
            credential_provider=credential_provider,
        )
        _clients.put(handle, instance)
        return handle

    return _run(create)


def ecs_destroy_client(handle: int) -> StatusCode:
    """Destroy a client and release its handle."""

    def destroy() -> None:
        _clients.get(handle).destroy()
        _clients.remove(handle)

    status, _ = _run(destroy)
    return status


def ecs_client_get_config(
    handle: int, request_identifiers: IdentifiersArg = None
) -> tuple[StatusCode, int | None]:
    """Resolve configuration and return an owned string token.

    The caller must release the token with ``ecs_free_str``.
    """

    def get_config() -> int:
        document = _clients.get(handle).get_config(request_identifiers)
        return _strings.add(document)

    return _run(get_config)


def ecs_str_value(token: int) -> str | None:
    """Read an owned string without releasing it."""
    _, value = _run(lambda: _strings.get(token))
    return value


def ecs_free_str(token: int) -> StatusCode:
    """Release an owned string. Unknown or released tokens are an error."""
    status, _ = _run(lambda: _strings.remove(token))
    return status


def ecs_get_last_error() -> int | None:
    """Owned string token for the last failed call in this thread or task.

    Returns None when the last call succeeded. The slot is read without
    being overwritten; release the token with ``ecs_free_str``.
    """
    message = get_last_error()
    if message is None:
        return None
    return _strings.add(message)


def live_handle_counts() -> dict[str, int]:
    """Number of live client and string handles."""
    return {"clients": len(_clients), "strings": len(_strings)}
