"""Scripted in-process transport for tests and offline use.

Provides a transport that:
- Replays queued responses, errors or callables in order
- Falls back to a default document once the script is exhausted
- Records every request for later assertions
"""

import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from ecs_client.auth.models import AuthMaterial
from ecs_client.fetch.models import (
    ConfigRequest,
    RemoteCallError,
    RemoteError,
    RemoteErrorClass,
    RemoteResponse,
)


logger = structlog.get_logger()

Step = RemoteResponse | Exception | Callable[[ConfigRequest], RemoteResponse]


@dataclass
class RequestRecord:
    """Record of a transport call.

    Attributes:
        request: The configuration request.
        auth: Auth material the request carried.
        timeout: Timeout passed by the caller.
        timestamp: When the call was made.
    """

    request: ConfigRequest
    auth: AuthMaterial
    timeout: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class InMemoryTransport:
    """Deterministic transport replaying a script of outcomes.

    Each call pops the next step. A RemoteResponse is returned, an
    exception is raised and a callable is invoked with the request. When
    the script is empty the default document is served, or a connection
    error is raised if there is none.
    """

    def __init__(
        self,
        default_document: str | None = None,
        steps: list[Step] | None = None,
    ) -> None:
        self.default_document = default_document
        self._steps: deque[Step] = deque(steps or [])
        self._lock = threading.Lock()
        self.requests: list[RequestRecord] = []
        self._log = logger.bind(component="memory_transport")

    def enqueue(self, *steps: Step) -> None:
        """Append steps to the script."""
        with self._lock:
            self._steps.extend(steps)

    def respond(self, document: str, etag: str | None = None) -> None:
        """Queue a successful answer."""
        self.enqueue(RemoteResponse(document=document, etag=etag))

    def fail(
        self,
        error_class: RemoteErrorClass = RemoteErrorClass.CONNECTION_ERROR,
        status_code: int | None = None,
        times: int = 1,
    ) -> None:
        """Queue ``times`` classified failures."""
        error = RemoteError(
            error_class=error_class,
            message=f"Scripted failure ({error_class.value})",
            status_code=status_code,
        )
        self.enqueue(*(RemoteCallError(error) for _ in range(times)))

    @property
    def call_count(self) -> int:
        """Number of calls made so far."""
        with self._lock:
            return len(self.requests)

    def fetch(
        self, request: ConfigRequest, auth: AuthMaterial, timeout: float
    ) -> RemoteResponse:
        """Replay the next scripted outcome."""
        with self._lock:
            self.requests.append(RequestRecord(request=request, auth=auth, timeout=timeout))
            step = self._steps.popleft() if self._steps else None

        self._log.debug(
            "scripted_fetch",
            client=request.identity.client,
            step=type(step).__name__ if step is not None else "default",
        )

        if step is None:
            if self.default_document is None:
                raise RemoteCallError(
                    RemoteError(
                        error_class=RemoteErrorClass.CONNECTION_ERROR,
                        message="No scripted response available",
                    )
                )
            return RemoteResponse(document=self.default_document)

        if isinstance(step, RemoteResponse):
            return step
        if isinstance(step, Exception):
            raise step
        return step(request)
