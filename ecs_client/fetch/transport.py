"""Transports performing the remote configuration call."""

import hashlib
import os
import ssl
import tempfile
import threading
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Protocol, runtime_checkable
from urllib.parse import quote

import httpx
import structlog

from ecs_client.auth.models import AuthMaterial
from ecs_client.constants import (
    AGENTS_QUERY_PARAM,
    COMPONENT_FETCH,
    CONFIG_PATH_TEMPLATE,
    DEFAULT_APP_VERSION,
    EXP_QUERY_PARAM,
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_NOT_MODIFIED,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_SERVER_ERROR_MAX,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    HTTP_STATUS_UNAUTHORIZED,
)
from ecs_client.fetch.models import (
    ConfigRequest,
    RemoteCallError,
    RemoteError,
    RemoteErrorClass,
    RemoteResponse,
)
from ecs_client.fetch.redact import redact_headers


logger = structlog.get_logger()

USER_AGENT = "ecs-client-python/0.1.0"


@runtime_checkable
class RemoteTransport(Protocol):
    """Protocol for the network call to the configuration service."""

    def fetch(
        self, request: ConfigRequest, auth: AuthMaterial, timeout: float
    ) -> RemoteResponse:
        """Perform one configuration call.

        Args:
            request: What to resolve.
            auth: Authentication material to attach.
            timeout: Request timeout in seconds.

        Returns:
            The service answer.

        Raises:
            RemoteCallError: On network failure or a non-success answer.
        """
        ...


class HttpxTransport:
    """Transport calling the ECS REST endpoint over HTTPS with httpx.

    Builds ``{base_url}/config/v1/{client}/{version}`` with agents, request
    identifiers and the flighting flag as query parameters, and presents a
    client certificate when the auth material carries one.
    """

    def __init__(self, base_url: str, app_version: str = DEFAULT_APP_VERSION) -> None:
        self._base_url = base_url.rstrip("/")
        self._app_version = app_version
        self._ssl_contexts: dict[str, ssl.SSLContext] = {}
        self._lock = threading.Lock()
        self._log = logger.bind(component=COMPONENT_FETCH, base_url=self._base_url)

    @property
    def base_url(self) -> str:
        """Service base URL."""
        return self._base_url

    def build_url(self, request: ConfigRequest) -> str:
        """Build the configuration URL for a request."""
        path = CONFIG_PATH_TEMPLATE.format(
            client=quote(request.identity.client, safe=""),
            version=quote(self._app_version, safe=""),
        )
        return f"{self._base_url}{path}"

    def build_params(self, request: ConfigRequest) -> list[tuple[str, str]]:
        """Build query parameters; multi-valued identifiers repeat their name."""
        params: list[tuple[str, str]] = []
        if request.identity.agents:
            params.append((AGENTS_QUERY_PARAM, ",".join(request.identity.agents)))
        for ident in request.identifiers:
            params.extend((ident.name, value) for value in ident.values)
        if request.enable_exp:
            params.append((EXP_QUERY_PARAM, "true"))
        return params

    def build_headers(self, request: ConfigRequest, auth: AuthMaterial) -> dict[str, str]:
        """Build request headers including auth and conditional headers."""
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        }
        if request.etag:
            headers["If-None-Match"] = request.etag
        headers.update(auth.headers)
        return headers

    def fetch(
        self, request: ConfigRequest, auth: AuthMaterial, timeout: float
    ) -> RemoteResponse:
        """Perform one configuration call."""
        url = self.build_url(request)
        headers = self.build_headers(request, auth)
        log = self._log.bind(
            client=request.identity.client,
            environment=request.environment.name,
            headers=redact_headers(headers),
        )

        verify: ssl.SSLContext | bool = True
        if auth.client_certificate_pem:
            verify = self._ssl_context_for(auth.client_certificate_pem)

        try:
            with httpx.Client(timeout=timeout, verify=verify) as client:
                response = client.get(
                    url, params=self.build_params(request), headers=headers
                )
        except httpx.TimeoutException as e:
            raise RemoteCallError(
                RemoteError(
                    error_class=RemoteErrorClass.NETWORK_TIMEOUT,
                    message=f"Request timed out: {e}",
                )
            ) from e
        except httpx.ConnectError as e:
            error_class = (
                RemoteErrorClass.SSL_ERROR
                if isinstance(e.__cause__, ssl.SSLError)
                else RemoteErrorClass.CONNECTION_ERROR
            )
            raise RemoteCallError(
                RemoteError(error_class=error_class, message=f"Connection failed: {e}")
            ) from e
        except httpx.HTTPError as e:
            raise RemoteCallError(
                RemoteError(
                    error_class=RemoteErrorClass.UNKNOWN,
                    message=f"Unexpected error: {e}",
                )
            ) from e

        log.debug("remote_response", status_code=response.status_code)
        return self._to_response(response)

    def _to_response(self, response: httpx.Response) -> RemoteResponse:
        etag = response.headers.get("etag")

        if response.status_code == HTTP_STATUS_NOT_MODIFIED:
            return RemoteResponse(
                status_code=HTTP_STATUS_NOT_MODIFIED, etag=etag, not_modified=True
            )

        error = classify_http_error(response.status_code, response.headers)
        if error is not None:
            raise RemoteCallError(error)

        try:
            document = response.content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise RemoteCallError(
                RemoteError(
                    error_class=RemoteErrorClass.INVALID_RESPONSE,
                    message=f"Configuration is not valid UTF-8: {e}",
                    status_code=response.status_code,
                )
            ) from e

        if not document.strip():
            raise RemoteCallError(
                RemoteError(
                    error_class=RemoteErrorClass.INVALID_RESPONSE,
                    message="Configuration service returned an empty document",
                    status_code=response.status_code,
                )
            )

        return RemoteResponse(
            status_code=response.status_code, document=document, etag=etag
        )

    def _ssl_context_for(self, pem: bytes) -> ssl.SSLContext:
        key = hashlib.sha256(pem).hexdigest()
        with self._lock:
            context = self._ssl_contexts.get(key)
            if context is not None:
                return context

            context = ssl.create_default_context()
            fd, path = tempfile.mkstemp(suffix=".pem")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(pem)
                context.load_cert_chain(certfile=path)
            except ssl.SSLError as e:
                raise RemoteCallError(
                    RemoteError(
                        error_class=RemoteErrorClass.SSL_ERROR,
                        message=f"Client certificate rejected by TLS setup: {e}",
                    )
                ) from e
            finally:
                os.unlink(path)

            self._ssl_contexts[key] = context
            return context


def classify_http_error(
    status_code: int, headers: httpx.Headers | dict[str, str]
) -> RemoteError | None:
    """Classify an HTTP status code as a remote error.

    Args:
        status_code: HTTP status code.
        headers: Response headers.

    Returns:
        RemoteError if the status indicates an error, None otherwise.
    """
    if HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_OK_MAX:
        return None

    if status_code in (HTTP_STATUS_UNAUTHORIZED, HTTP_STATUS_FORBIDDEN):
        return RemoteError(
            error_class=RemoteErrorClass.AUTH_REJECTED,
            message=f"Credentials rejected ({status_code})",
            status_code=status_code,
        )

    if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
        return RemoteError(
            error_class=RemoteErrorClass.RATE_LIMITED,
            message="Rate limited (429 Too Many Requests)",
            status_code=status_code,
            retry_after=parse_retry_after(headers.get("retry-after")),
        )

    if HTTP_STATUS_BAD_REQUEST <= status_code < HTTP_STATUS_SERVER_ERROR_MIN:
        return RemoteError(
            error_class=RemoteErrorClass.HTTP_4XX,
            message=f"Client error ({status_code})",
            status_code=status_code,
        )

    if HTTP_STATUS_SERVER_ERROR_MIN <= status_code < HTTP_STATUS_SERVER_ERROR_MAX:
        return RemoteError(
            error_class=RemoteErrorClass.HTTP_5XX,
            message=f"Server error ({status_code})",
            status_code=status_code,
        )

    return RemoteError(
        error_class=RemoteErrorClass.UNKNOWN,
        message=f"Unexpected status ({status_code})",
        status_code=status_code,
    )


def parse_retry_after(value: str | None) -> int | None:
    """Parse Retry-After header value.

    Args:
        value: Header value (seconds or HTTP date).

    Returns:
        Seconds to wait, or None if not parseable.
    """
    if not value:
        return None

    try:
        return int(value)
    except ValueError:
        pass

    try:
        dt = parsedate_to_datetime(value)
        delta = dt - datetime.now(UTC)
        return max(0, int(delta.total_seconds()))
    except (ValueError, TypeError):
        pass

    return None
