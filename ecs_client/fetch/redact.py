"""Redaction utilities for logging requests and token exchanges."""

import re


# Headers that must never appear in logs
SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "proxy-authorization",
        "x-ecs-client-certificate",
    }
)

# Form and query fields carrying secrets during token acquisition
SENSITIVE_FIELDS = frozenset(
    {
        "access_token",
        "client_assertion",
        "client_secret",
        "refresh_token",
    }
)

REDACTED_VALUE = "[REDACTED]"

_BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Redact sensitive headers for logging.

    Args:
        headers: Original headers dictionary.

    Returns:
        New dictionary with sensitive values redacted.
    """
    return {
        key: REDACTED_VALUE if is_sensitive_header(key) else value
        for key, value in headers.items()
    }


def is_sensitive_header(header_name: str) -> bool:
    """Check if a header name is sensitive."""
    return header_name.lower() in SENSITIVE_HEADERS


def redact_fields(fields: dict[str, str]) -> dict[str, str]:
    """Redact secret-bearing form or query fields.

    Args:
        fields: Field names mapped to values.

    Returns:
        New dictionary with sensitive values redacted.
    """
    return {
        key: REDACTED_VALUE if key.lower() in SENSITIVE_FIELDS else value
        for key, value in fields.items()
    }


def redact_bearer_tokens(text: str) -> str:
    """Strip bearer tokens from free text such as error messages."""
    return _BEARER_PATTERN.sub(rf"\1{REDACTED_VALUE}", text)
