"""Remote configuration fetch layer.

The resolve engine lives in ecs_client.fetch.engine and is imported from
there directly.
"""

from ecs_client.fetch.memory import InMemoryTransport, RequestRecord
from ecs_client.fetch.models import (
    ConfigRequest,
    RemoteCallError,
    RemoteError,
    RemoteErrorClass,
    RemoteResponse,
    RetryPolicy,
)
from ecs_client.fetch.redact import redact_headers
from ecs_client.fetch.request import (
    coerce_identifiers,
    load_identifier_groups,
    merge_request_identifiers,
)
from ecs_client.fetch.transport import (
    HttpxTransport,
    RemoteTransport,
    classify_http_error,
    parse_retry_after,
)


__all__ = [
    # Models
    "ConfigRequest",
    "RemoteCallError",
    "RemoteError",
    "RemoteErrorClass",
    "RemoteResponse",
    "RetryPolicy",
    # Requests
    "coerce_identifiers",
    "load_identifier_groups",
    "merge_request_identifiers",
    "redact_headers",
    # Transports
    "HttpxTransport",
    "InMemoryTransport",
    "RemoteTransport",
    "RequestRecord",
    "classify_http_error",
    "parse_retry_after",
]
