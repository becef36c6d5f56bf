"""Credential variants and their construction from client options."""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from ecs_client.errors import AuthenticationConfigError, InvalidArgumentError
from ecs_client.models import AuthenticationMethod, Environment


class NoCredential(BaseModel):
    """Requests are sent without authentication."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["none"] = "none"
    auth_environment: Environment | None = None


class CertificateSniCredential(BaseModel):
    """Azure AD application authenticated by an SN/I validated certificate.

    Without ``client_id`` the certificate is only presented for mutual TLS.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["certificate_sni"] = "certificate_sni"
    certificate: bytes = Field(repr=False)
    tenant_id: str | None = None
    client_id: str | None = None
    auth_environment: Environment | None = None

    @property
    def uses_token_exchange(self) -> bool:
        """Whether a bearer token is requested in addition to mutual TLS."""
        return bool(self.client_id)


class SystemManagedIdentityCredential(BaseModel):
    """System-assigned managed identity of the hosting resource."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["system_managed_identity"] = "system_managed_identity"
    auth_environment: Environment | None = None


class UserManagedIdentityCredential(BaseModel):
    """User-assigned managed identity referenced by its client id."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["user_managed_identity"] = "user_managed_identity"
    client_id: Annotated[str, Field(min_length=1)]
    auth_environment: Environment | None = None


Credential = Annotated[
    NoCredential
    | CertificateSniCredential
    | SystemManagedIdentityCredential
    | UserManagedIdentityCredential,
    Field(discriminator="kind"),
]


def effective_auth_environment(
    credential: Credential, environment: Environment
) -> Environment:
    """Environment used for authentication, honouring the override."""
    return credential.auth_environment or environment


def build_credential(
    method: AuthenticationMethod | int,
    certificate: bytes | None = None,
    tenant_id: str | None = None,
    client_id: str | None = None,
    auth_environment: Environment | int | None = None,
) -> Credential:
    """Select and validate the credential variant for a client.

    No network activity happens here; only structural checks.

    Args:
        method: Authentication method (raw ints are validated).
        certificate: PKCS #12 bytes for certificate authentication.
        tenant_id: Azure AD tenant for certificate authentication.
        client_id: Application or managed identity client id.
        auth_environment: Optional authentication environment override.

    Returns:
        The active credential variant.

    Raises:
        InvalidArgumentError: If an enum value is unknown.
        AuthenticationConfigError: If required credential material is missing.
    """
    try:
        method = AuthenticationMethod(method)
    except ValueError as e:
        msg = f"Unknown authentication method: {method}"
        raise InvalidArgumentError(msg) from e

    if auth_environment is not None:
        try:
            auth_environment = Environment(auth_environment)
        except ValueError as e:
            msg = f"Unknown authentication environment: {auth_environment}"
            raise InvalidArgumentError(msg) from e

    if method == AuthenticationMethod.NONE:
        if client_id and not certificate:
            msg = "A client id was given without a certificate to attest it"
            raise AuthenticationConfigError(msg)
        return NoCredential(auth_environment=auth_environment)

    if method == AuthenticationMethod.AZURE_AD_CLIENT_CERTIFICATE_WITH_SNI:
        if not certificate:
            msg = "Certificate authentication requires non-empty certificate bytes"
            raise AuthenticationConfigError(msg)
        return CertificateSniCredential(
            certificate=certificate,
            tenant_id=tenant_id or None,
            client_id=client_id or None,
            auth_environment=auth_environment,
        )

    if method == AuthenticationMethod.SYSTEM_ASSIGNED_MANAGED_IDENTITY:
        return SystemManagedIdentityCredential(auth_environment=auth_environment)

    if not client_id:
        msg = "User-assigned managed identity requires a client id"
        raise AuthenticationConfigError(msg)
    return UserManagedIdentityCredential(
        client_id=client_id, auth_environment=auth_environment
    )
