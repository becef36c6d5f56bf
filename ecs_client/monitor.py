"""Typed option sections kept in sync with the resolved configuration.

A receiver is bound to ``document[project_team][option_name]``. Every
resolved document is checked against the last section the receiver
accepted; the receiver is only called when the section's checksum
changes, after which its update callbacks run with ``None``. Failures
reach the callbacks as exceptions instead.
"""

import hashlib
import json
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

import structlog
from pydantic import BaseModel

from ecs_client.constants import COMPONENT_MONITOR
from ecs_client.errors import InvalidArgumentError, UndefinedError


logger = structlog.get_logger()

UpdateCallback = Callable[[Exception | None], None]

ModelT = TypeVar("ModelT", bound=BaseModel)


class OptionsUpdateError(UndefinedError):
    """Raised when an option section cannot be extracted or applied."""


@runtime_checkable
class OptionsUpdateReceiver(Protocol):
    """Object receiving the raw JSON of its option section."""

    def on_options_update_received(self, data: bytes) -> None:
        """Apply a changed option section.

        Args:
            data: Canonical JSON encoding of the section.
        """
        ...


class ModelOptionsReceiver(Generic[ModelT]):
    """Receiver validating its section into a pydantic model.

    Example:
        receiver = ModelOptionsReceiver(FeatureFlags)
        client.add_options_monitor(receiver, "MyTeam", "FeatureFlags")
        receiver.value.enabled
    """

    def __init__(self, model_type: type[ModelT]) -> None:
        self._model_type = model_type
        self._value: ModelT | None = None
        self._lock = threading.Lock()

    @property
    def value(self) -> ModelT | None:
        """Latest validated section, None before the first update."""
        with self._lock:
            return self._value

    def on_options_update_received(self, data: bytes) -> None:
        """Validate and store the section.

        Raises:
            ValidationError: If the section does not match the model.
        """
        value = self._model_type.model_validate_json(data)
        with self._lock:
            self._value = value


def section_bytes(document: str, project_team: str, option_name: str) -> bytes:
    """Extract an option section as canonical JSON.

    Args:
        document: Full configuration document.
        project_team: Top-level key of the owning team.
        option_name: Key of the option within the team's section.

    Returns:
        Compact JSON with sorted keys.

    Raises:
        OptionsUpdateError: If the document or the section is missing or malformed.
    """
    try:
        full = json.loads(document)
    except ValueError as e:
        msg = "Failed to parse configuration document as JSON"
        raise OptionsUpdateError(msg) from e

    if not isinstance(full, dict) or project_team not in full:
        msg = f"Failed to find project team property '{project_team}'"
        raise OptionsUpdateError(msg)

    team = full[project_team]
    if not isinstance(team, dict):
        msg = f"Property '{project_team}' is not an object"
        raise OptionsUpdateError(msg)

    if option_name not in team:
        msg = f"Failed to find property '{option_name}' in '{project_team}'"
        raise OptionsUpdateError(msg)

    return json.dumps(
        team[option_name], sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def checksum(data: bytes) -> str:
    """SHA-256 hex digest of a section."""
    return hashlib.sha256(data).hexdigest()


@dataclass
class _Registration:
    receiver: OptionsUpdateReceiver
    project_team: str
    option_name: str
    checksum: str | None = None
    callbacks: list[UpdateCallback] = field(default_factory=list)


class OptionsMonitor:
    """Tracks option receivers for one client.

    Receivers are keyed by object identity, so two equal receivers are
    still distinct registrations.
    """

    def __init__(self, log: Any = None) -> None:
        self._registrations: dict[int, _Registration] = {}
        self._lock = threading.RLock()
        base_log = log if log is not None else logger
        self._log = base_log.bind(component=COMPONENT_MONITOR)

    def __len__(self) -> int:
        with self._lock:
            return len(self._registrations)

    def add(
        self, receiver: OptionsUpdateReceiver, project_team: str, option_name: str
    ) -> None:
        """Register a receiver for a section.

        Raises:
            InvalidArgumentError: If the receiver is already registered or a
                key is empty.
        """
        if not project_team or not option_name:
            msg = "project_team and option_name must not be empty"
            raise InvalidArgumentError(msg)

        with self._lock:
            if id(receiver) in self._registrations:
                msg = "An options monitor is already registered for this receiver"
                raise InvalidArgumentError(msg)
            self._registrations[id(receiver)] = _Registration(
                receiver=receiver, project_team=project_team, option_name=option_name
            )

        self._log.debug(
            "options_monitor_added", project_team=project_team, option_name=option_name
        )

    def register_callback(
        self, receiver: OptionsUpdateReceiver, callback: UpdateCallback
    ) -> None:
        """Add an update callback to a registered receiver.

        Raises:
            InvalidArgumentError: If the receiver has no monitor.
        """
        with self._lock:
            registration = self._registrations.get(id(receiver))
            if registration is None:
                msg = (
                    "No options monitor is registered for this receiver; "
                    "the callback would never be called"
                )
                raise InvalidArgumentError(msg)
            registration.callbacks.append(callback)

    def unregister_callback(
        self, receiver: OptionsUpdateReceiver, callback: UpdateCallback
    ) -> None:
        """Remove a previously registered callback, if present."""
        with self._lock:
            registration = self._registrations.get(id(receiver))
            if registration is not None and callback in registration.callbacks:
                registration.callbacks.remove(callback)

    def apply_document(self, document: str) -> None:
        """Offer a resolved document to every receiver."""
        with self._lock:
            for registration in list(self._registrations.values()):
                try:
                    updated = self._apply(registration, document)
                except OptionsUpdateError as e:
                    self._log.error(
                        "options_update_failed",
                        project_team=registration.project_team,
                        option_name=registration.option_name,
                        error=e.message,
                    )
                    self._notify(registration, e)
                    continue

                if updated:
                    self._log.info(
                        "options_updated",
                        project_team=registration.project_team,
                        option_name=registration.option_name,
                    )
                    self._notify(registration, None)

    def apply_error(self, error: Exception) -> None:
        """Report a failed resolution to every callback."""
        with self._lock:
            for registration in list(self._registrations.values()):
                self._notify(registration, error)

    def trigger_all(self) -> None:
        """Invoke every callback as if each section had changed."""
        with self._lock:
            for registration in list(self._registrations.values()):
                self._notify(registration, None)

    def clear(self) -> None:
        """Drop every registration."""
        with self._lock:
            self._registrations.clear()

    def _apply(self, registration: _Registration, document: str) -> bool:
        data = section_bytes(document, registration.project_team, registration.option_name)
        digest = checksum(data)
        if digest == registration.checksum:
            return False

        try:
            registration.receiver.on_options_update_received(data)
        except Exception as e:  # noqa: BLE001
            msg = f"Failed options update for '{registration.option_name}': {e}"
            raise OptionsUpdateError(msg) from e

        registration.checksum = digest
        return True

    def _notify(self, registration: _Registration, error: Exception | None) -> None:
        for callback in list(registration.callbacks):
            try:
                callback(error)
            except Exception as e:  # noqa: BLE001
                self._log.warning(
                    "options_callback_failed",
                    option_name=registration.option_name,
                    error=str(e),
                )
