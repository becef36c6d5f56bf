"""Error types for the ECS client.

Local validation errors are raised before any network activity. Remote
failures are absorbed by cache fallback and only surface when no cached
configuration exists.
"""

from enum import Enum


class EcsErrorClass(str, Enum):
    """Classification of ECS client errors.

    - INVALID_ARGUMENT: Malformed or missing input, no I/O attempted
    - AUTHENTICATION_CONFIG: Credential configuration structurally incomplete
    - AUTHENTICATION_FAILED: Remote rejected the credentials
    - REMOTE_UNAVAILABLE: Service failure with no usable cache
    - CLIENT_DESTROYED: Operation raced with client destruction
    - INVALID_HANDLE: Operation on a destroyed or foreign handle
    - UNDEFINED: Anything else
    """

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    AUTHENTICATION_CONFIG = "AUTHENTICATION_CONFIG"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    REMOTE_UNAVAILABLE = "REMOTE_UNAVAILABLE"
    CLIENT_DESTROYED = "CLIENT_DESTROYED"
    INVALID_HANDLE = "INVALID_HANDLE"
    UNDEFINED = "UNDEFINED"


class EcsError(Exception):
    """Base exception for all ECS client errors."""

    error_class: EcsErrorClass = EcsErrorClass.UNDEFINED

    def __init__(self, message: str) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str | None]:
        """Convert error to dictionary for logging.

        Returns:
            Dictionary representation of the error.
        """
        cause = self.__cause__
        return {
            "error_class": self.error_class.value,
            "message": self.message,
            "cause": f"{type(cause).__name__}: {cause}" if cause else None,
        }


class InvalidArgumentError(EcsError):
    """Raised when input is malformed or a required value is missing."""

    error_class = EcsErrorClass.INVALID_ARGUMENT


class AuthenticationConfigError(EcsError):
    """Raised when the chosen credential is missing required material."""

    error_class = EcsErrorClass.AUTHENTICATION_CONFIG


class AuthenticationFailedError(EcsError):
    """Raised when the token or certificate is rejected."""

    error_class = EcsErrorClass.AUTHENTICATION_FAILED


class RemoteUnavailableError(EcsError):
    """Raised when the service failed and no cached configuration exists."""

    error_class = EcsErrorClass.REMOTE_UNAVAILABLE


class ClientDestroyedError(EcsError):
    """Raised when an in-flight operation observes client destruction."""

    error_class = EcsErrorClass.CLIENT_DESTROYED

    def __init__(self, message: str = "ECS client was destroyed") -> None:
        super().__init__(message)


class InvalidHandleError(EcsError):
    """Raised for operations on a destroyed or unknown client handle."""

    error_class = EcsErrorClass.INVALID_HANDLE


class UndefinedError(EcsError):
    """Raised for failures outside every other class."""

    error_class = EcsErrorClass.UNDEFINED
