"""Credential providers turning a credential into per-request auth material."""

import threading
from collections.abc import Callable
from typing import Protocol, runtime_checkable

import structlog

from ecs_client.auth.certificate import LoadedCertificate, load_pkcs12
from ecs_client.auth.credentials import (
    CertificateSniCredential,
    Credential,
    NoCredential,
    SystemManagedIdentityCredential,
    UserManagedIdentityCredential,
    effective_auth_environment,
)
from ecs_client.auth.models import AuthMaterial
from ecs_client.auth.tokens import (
    AccessToken,
    acquire_certificate_token,
    acquire_managed_identity_token,
)
from ecs_client.constants import (
    AUTHORITY_HOSTS,
    COMPONENT_AUTH,
    DEFAULT_IMDS_ENDPOINT,
    DEFAULT_TOKEN_RESOURCE,
    TOKEN_EXPIRY_MARGIN_SECONDS,
)
from ecs_client.errors import AuthenticationConfigError, EcsError
from ecs_client.models import Environment


logger = structlog.get_logger()


@runtime_checkable
class CredentialProvider(Protocol):
    """Protocol for credential providers.

    ``validate`` runs at client creation and must not touch the network;
    ``authenticate`` runs before every remote call.
    """

    def validate(self, credential: Credential, environment: Environment) -> None:
        """Check the credential is usable.

        Raises:
            AuthenticationConfigError: If required material is missing or invalid.
        """
        ...

    def authenticate(
        self, credential: Credential, environment: Environment
    ) -> AuthMaterial:
        """Produce auth material for one request.

        Raises:
            AuthenticationFailedError: If the credential is rejected.
            RemoteCallError: If the token endpoint cannot be reached.
        """
        ...


class AzureCredentialProvider:
    """Credential provider backed by Azure AD and the instance metadata service.

    Tokens are cached per credential and environment until shortly before
    they expire.
    """

    def __init__(
        self,
        imds_endpoint: str = DEFAULT_IMDS_ENDPOINT,
        token_resource: str = DEFAULT_TOKEN_RESOURCE,
        default_tenant_id: str | None = None,
        authority_host_override: str | None = None,
        timeout: float = 15.0,
    ) -> None:
        self._imds_endpoint = imds_endpoint
        self._token_resource = token_resource
        self._default_tenant_id = default_tenant_id
        self._authority_host_override = authority_host_override
        self._timeout = timeout
        self._tokens: dict[tuple[str, Environment], AccessToken] = {}
        self._certificates: dict[bytes, LoadedCertificate] = {}
        self._lock = threading.Lock()
        self._log = logger.bind(component=COMPONENT_AUTH)

    def validate(self, credential: Credential, environment: Environment) -> None:
        """Check certificate material and authority settings without I/O."""
        if not isinstance(credential, CertificateSniCredential):
            return

        self._load_certificate(credential.certificate)
        if credential.uses_token_exchange:
            auth_env = effective_auth_environment(credential, environment)
            self._tenant_for(credential)
            self._authority_for(auth_env)

    def authenticate(
        self, credential: Credential, environment: Environment
    ) -> AuthMaterial:
        """Produce auth material for the active credential variant."""
        auth_env = effective_auth_environment(credential, environment)

        if isinstance(credential, NoCredential):
            return AuthMaterial()

        if isinstance(credential, CertificateSniCredential):
            return self._authenticate_certificate(credential, auth_env)

        if isinstance(credential, SystemManagedIdentityCredential):
            token = self._cached_token(
                ("system_managed_identity", auth_env),
                lambda: acquire_managed_identity_token(
                    self._imds_endpoint, self._token_resource, timeout=self._timeout
                ),
            )
            return AuthMaterial.bearer(token.token)

        if isinstance(credential, UserManagedIdentityCredential):
            token = self._cached_token(
                (f"user_managed_identity:{credential.client_id}", auth_env),
                lambda: acquire_managed_identity_token(
                    self._imds_endpoint,
                    self._token_resource,
                    client_id=credential.client_id,
                    timeout=self._timeout,
                ),
            )
            return AuthMaterial.bearer(token.token)

        msg = f"Unsupported credential: {type(credential).__name__}"
        raise AuthenticationConfigError(msg)

    def _authenticate_certificate(
        self, credential: CertificateSniCredential, auth_env: Environment
    ) -> AuthMaterial:
        loaded = self._load_certificate(credential.certificate)
        pem = loaded.to_pem()

        if not credential.uses_token_exchange:
            return AuthMaterial(client_certificate_pem=pem)

        client_id = credential.client_id or ""
        tenant_id = self._tenant_for(credential)
        authority = self._authority_for(auth_env)
        token = self._cached_token(
            (f"certificate:{tenant_id}:{client_id}:{loaded.thumbprint}", auth_env),
            lambda: acquire_certificate_token(
                authority,
                tenant_id,
                client_id,
                loaded,
                self._token_resource,
                timeout=self._timeout,
            ),
        )
        return AuthMaterial.bearer(token.token, client_certificate_pem=pem)

    def _load_certificate(self, data: bytes) -> LoadedCertificate:
        with self._lock:
            loaded = self._certificates.get(data)
        if loaded is None:
            loaded = load_pkcs12(data)
            with self._lock:
                self._certificates[data] = loaded
        return loaded

    def _tenant_for(self, credential: CertificateSniCredential) -> str:
        tenant = credential.tenant_id or self._default_tenant_id
        if not tenant:
            msg = (
                "Certificate authentication with a client id requires a tenant id "
                "(set tenant_id or ECS_DEFAULT_TENANT_ID)"
            )
            raise AuthenticationConfigError(msg)
        return tenant

    def _authority_for(self, auth_env: Environment) -> str:
        authority = self._authority_host_override or AUTHORITY_HOSTS.get(auth_env)
        if not authority:
            msg = (
                f"No Azure AD authority known for {auth_env.name} "
                "(set ECS_AUTHORITY_HOST_OVERRIDE)"
            )
            raise AuthenticationConfigError(msg)
        return authority

    def _cached_token(
        self,
        key: tuple[str, Environment],
        acquire: Callable[[], AccessToken],
    ) -> AccessToken:
        with self._lock:
            token = self._tokens.get(key)
        if token is not None and token.is_valid(TOKEN_EXPIRY_MARGIN_SECONDS):
            return token

        token = acquire()
        with self._lock:
            self._tokens[key] = token
        self._log.debug("token_cached", credential=key[0], environment=key[1].name)
        return token


class StaticCredentialProvider:
    """Deterministic provider returning fixed material or raising a fixed error.

    Used in tests and when the auth material is produced elsewhere.
    """

    def __init__(
        self,
        material: AuthMaterial | None = None,
        error: EcsError | Exception | None = None,
    ) -> None:
        self.material = material or AuthMaterial()
        self.error = error
        self.calls: list[tuple[Credential, Environment]] = []

    def validate(self, credential: Credential, environment: Environment) -> None:
        """Accept every credential."""

    def authenticate(
        self, credential: Credential, environment: Environment
    ) -> AuthMaterial:
        """Record the call and return the configured material."""
        self.calls.append((credential, environment))
        if self.error is not None:
            raise self.error
        return self.material
