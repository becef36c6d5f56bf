"""Access token acquisition for managed identity and certificate credentials."""

import time
from dataclasses import dataclass
from http import HTTPStatus

import httpx
import structlog

from ecs_client.auth.certificate import LoadedCertificate, build_client_assertion
from ecs_client.constants import COMPONENT_AUTH, IMDS_API_VERSION
from ecs_client.errors import AuthenticationFailedError
from ecs_client.fetch.models import RemoteCallError, RemoteError, RemoteErrorClass
from ecs_client.fetch.redact import redact_bearer_tokens, redact_fields


logger = structlog.get_logger()

_CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"


@dataclass(frozen=True)
class AccessToken:
    """Bearer token and its absolute expiry (epoch seconds)."""

    token: str
    expires_at: float

    def is_valid(self, margin_seconds: float, now: float | None = None) -> bool:
        """Check the token stays valid for at least ``margin_seconds``."""
        current = now if now is not None else time.time()
        return self.expires_at - margin_seconds > current


def _network_error(exc: httpx.HTTPError, what: str) -> RemoteCallError:
    if isinstance(exc, httpx.TimeoutException):
        error_class = RemoteErrorClass.NETWORK_TIMEOUT
    elif isinstance(exc, httpx.ConnectError):
        error_class = RemoteErrorClass.CONNECTION_ERROR
    else:
        error_class = RemoteErrorClass.UNKNOWN
    return RemoteCallError(
        RemoteError(error_class=error_class, message=f"Network error during {what}: {exc}")
    )


def _parse_token_response(response: httpx.Response, what: str) -> AccessToken:
    if response.status_code >= HTTPStatus.INTERNAL_SERVER_ERROR:
        raise RemoteCallError(
            RemoteError(
                error_class=RemoteErrorClass.HTTP_5XX,
                message=f"{what} failed with status {response.status_code}",
                status_code=response.status_code,
            )
        )

    if response.status_code != HTTPStatus.OK:
        msg = f"{what} rejected with status {response.status_code}"
        raise AuthenticationFailedError(msg)

    try:
        data = response.json()
        access_token: str | None = data.get("access_token")
        expires_in = int(data.get("expires_in", 0) or 0)
        expires_on = data.get("expires_on")
        expires_at = float(expires_on) if expires_on else time.time() + expires_in
    except (ValueError, TypeError, AttributeError) as e:
        raise RemoteCallError(
            RemoteError(
                error_class=RemoteErrorClass.INVALID_RESPONSE,
                message=f"{what} returned a malformed token response: {e}",
                status_code=response.status_code,
            )
        ) from e

    if not access_token:
        msg = f"No access_token in {what} response"
        raise AuthenticationFailedError(msg)

    return AccessToken(token=access_token, expires_at=expires_at)


def acquire_managed_identity_token(
    imds_endpoint: str,
    resource: str,
    client_id: str | None = None,
    timeout: float = 15.0,
) -> AccessToken:
    """Request a token for the hosting resource's managed identity.

    Args:
        imds_endpoint: Instance metadata token endpoint.
        resource: Resource (audience) the token is issued for.
        client_id: Client id of a user-assigned identity, None for system-assigned.
        timeout: Request timeout in seconds.

    Returns:
        Access token with expiry.

    Raises:
        AuthenticationFailedError: If the identity endpoint rejects the request.
        RemoteCallError: If the identity endpoint cannot be reached.
    """
    log = logger.bind(component=COMPONENT_AUTH, subcomponent="managed_identity")

    params = {"api-version": IMDS_API_VERSION, "resource": resource}
    if client_id:
        params["client_id"] = client_id

    try:
        response = httpx.get(
            imds_endpoint,
            params=params,
            headers={"Metadata": "true"},
            timeout=timeout,
        )
    except httpx.HTTPError as exc:
        log.warning(
            "managed_identity_network_error", error=redact_bearer_tokens(str(exc))
        )
        raise _network_error(exc, "managed identity token request") from exc

    token = _parse_token_response(response, "Managed identity token request")
    log.info("managed_identity_token_acquired", user_assigned=client_id is not None)
    return token


def acquire_certificate_token(
    authority_host: str,
    tenant_id: str,
    client_id: str,
    loaded: LoadedCertificate,
    resource: str,
    timeout: float = 15.0,
) -> AccessToken:
    """Exchange a certificate-signed client assertion for an access token.

    Args:
        authority_host: Azure AD authority base URL.
        tenant_id: Tenant the application is registered in.
        client_id: Application (client) id.
        loaded: Certificate used to sign the assertion.
        resource: Resource whose ``/.default`` scope is requested.
        timeout: Request timeout in seconds.

    Returns:
        Access token with expiry.

    Raises:
        AuthenticationFailedError: If the authority rejects the assertion.
        RemoteCallError: If the authority cannot be reached.
    """
    log = logger.bind(component=COMPONENT_AUTH, subcomponent="certificate")

    token_url = f"{authority_host.rstrip('/')}/{tenant_id}/oauth2/v2.0/token"
    assertion = build_client_assertion(loaded, client_id, token_url)

    form = {
        "client_id": client_id,
        "scope": f"{resource.rstrip('/')}/.default",
        "grant_type": "client_credentials",
        "client_assertion_type": _CLIENT_ASSERTION_TYPE,
        "client_assertion": assertion,
    }
    log.debug("certificate_token_request", token_url=token_url, form=redact_fields(form))

    try:
        response = httpx.post(token_url, data=form, timeout=timeout)
    except httpx.HTTPError as exc:
        log.warning(
            "certificate_token_network_error", error=redact_bearer_tokens(str(exc))
        )
        raise _network_error(exc, "certificate token request") from exc

    token = _parse_token_response(response, "Certificate token request")
    log.info("certificate_token_acquired", tenant_id=tenant_id)
    return token
