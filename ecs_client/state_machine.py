"""Client lifecycle state machine."""

import threading
from enum import Enum, auto
from typing import ClassVar

import structlog

from ecs_client.constants import COMPONENT_CLIENT


logger = structlog.get_logger()


class ClientState(Enum):
    """Client lifecycle states.

    State transitions:
        ACTIVE -> DESTROYING: destroy() started, cancellation signalled
        DESTROYING -> DESTROYED: resources released, no more callbacks
    """

    ACTIVE = auto()
    DESTROYING = auto()
    DESTROYED = auto()


class ClientStateError(Exception):
    """Raised when an invalid client state transition is attempted."""

    def __init__(self, from_state: ClientState, to_state: ClientState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid client state transition: {from_state.name} -> {to_state.name}"
        )


class ClientStateMachine:
    """State machine for the client lifecycle.

    Transitions are atomic so exactly one caller wins the move out of
    ACTIVE when destroy races with itself.
    """

    VALID_TRANSITIONS: ClassVar[dict[ClientState, set[ClientState]]] = {
        ClientState.ACTIVE: {ClientState.DESTROYING},
        ClientState.DESTROYING: {ClientState.DESTROYED},
        ClientState.DESTROYED: set(),  # Terminal state
    }

    def __init__(self, client: str) -> None:
        """Initialize the state machine in ACTIVE state.

        Args:
            client: Client name for logging.
        """
        self._state = ClientState.ACTIVE
        self._lock = threading.Lock()
        self._log = logger.bind(component=COMPONENT_CLIENT, client=client)

    @property
    def state(self) -> ClientState:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: ClientState) -> bool:
        """Check if a transition to the given state is valid."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: ClientState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            ClientStateError: If the transition is invalid.
        """
        with self._lock:
            if not self.can_transition(to_state):
                self._log.error(
                    "invariant_violation",
                    error_type="illegal_state_transition",
                    from_state=self._state.name,
                    to_state=to_state.name,
                )
                raise ClientStateError(self._state, to_state)

            old_state = self._state
            self._state = to_state

        self._log.debug(
            "client_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def is_active(self) -> bool:
        """Check if the client accepts new operations."""
        return self._state == ClientState.ACTIVE

    def is_destroyed(self) -> bool:
        """Check if teardown has completed."""
        return self._state == ClientState.DESTROYED
