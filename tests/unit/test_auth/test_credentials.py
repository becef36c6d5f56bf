"""Unit tests for credential selection."""

import pytest

from ecs_client.auth.credentials import (
    CertificateSniCredential,
    NoCredential,
    SystemManagedIdentityCredential,
    UserManagedIdentityCredential,
    build_credential,
    effective_auth_environment,
)
from ecs_client.errors import AuthenticationConfigError, InvalidArgumentError
from ecs_client.models import AuthenticationMethod, Environment


class TestBuildCredential:
    """Tests for build_credential."""

    def test_none_method(self) -> None:
        """NONE yields NoCredential."""
        assert isinstance(build_credential(AuthenticationMethod.NONE), NoCredential)

    def test_raw_int_method_accepted(self) -> None:
        """Raw ints are converted."""
        credential = build_credential(3)

        assert isinstance(credential, SystemManagedIdentityCredential)

    @pytest.mark.parametrize("method", [1, 5, -1])
    def test_unknown_method_rejected(self, method: int) -> None:
        """Unknown method values are invalid arguments."""
        with pytest.raises(InvalidArgumentError, match="authentication method"):
            build_credential(method)

    def test_unknown_auth_environment_rejected(self) -> None:
        """Unknown environment overrides are invalid arguments."""
        with pytest.raises(InvalidArgumentError, match="authentication environment"):
            build_credential(AuthenticationMethod.NONE, auth_environment=7)

    def test_client_id_without_certificate_rejected(self) -> None:
        """A client id with no certificate cannot be attested."""
        with pytest.raises(AuthenticationConfigError):
            build_credential(AuthenticationMethod.NONE, client_id="app-id")

    def test_certificate_requires_bytes(self) -> None:
        """Certificate auth needs non-empty certificate bytes."""
        with pytest.raises(AuthenticationConfigError, match="certificate"):
            build_credential(
                AuthenticationMethod.AZURE_AD_CLIENT_CERTIFICATE_WITH_SNI, certificate=b""
            )

    def test_certificate_without_client_id_is_mtls_only(self) -> None:
        """No client id means no token exchange."""
        credential = build_credential(
            AuthenticationMethod.AZURE_AD_CLIENT_CERTIFICATE_WITH_SNI,
            certificate=b"pfx",
            tenant_id="",
        )

        assert isinstance(credential, CertificateSniCredential)
        assert credential.uses_token_exchange is False
        assert credential.tenant_id is None

    def test_certificate_with_client_id(self) -> None:
        """Client id enables token exchange."""
        credential = build_credential(
            AuthenticationMethod.AZURE_AD_CLIENT_CERTIFICATE_WITH_SNI,
            certificate=b"pfx",
            tenant_id="tenant",
            client_id="app-id",
        )

        assert isinstance(credential, CertificateSniCredential)
        assert credential.uses_token_exchange is True

    def test_user_identity_requires_client_id(self) -> None:
        """User-assigned identity without a client id is incomplete."""
        with pytest.raises(AuthenticationConfigError, match="client id"):
            build_credential(AuthenticationMethod.USER_ASSIGNED_MANAGED_IDENTITY)

    def test_user_identity(self) -> None:
        """User-assigned identity keeps its client id."""
        credential = build_credential(
            AuthenticationMethod.USER_ASSIGNED_MANAGED_IDENTITY, client_id="mi-id"
        )

        assert isinstance(credential, UserManagedIdentityCredential)
        assert credential.client_id == "mi-id"

    def test_certificate_not_in_repr(self) -> None:
        """Certificate bytes never appear in repr."""
        credential = build_credential(
            AuthenticationMethod.AZURE_AD_CLIENT_CERTIFICATE_WITH_SNI,
            certificate=b"super-secret-pfx",
        )

        assert "super-secret-pfx" not in repr(credential)


class TestEffectiveAuthEnvironment:
    """Tests for the authentication environment override."""

    def test_defaults_to_client_environment(self) -> None:
        """Without override the client's environment is used."""
        assert (
            effective_auth_environment(NoCredential(), Environment.GCCMOD)
            == Environment.GCCMOD
        )

    def test_override_wins(self) -> None:
        """Override is honoured, e.g. GCCMOD apps registered in GCCH."""
        credential = build_credential(
            AuthenticationMethod.SYSTEM_ASSIGNED_MANAGED_IDENTITY,
            auth_environment=Environment.GCCH,
        )

        assert effective_auth_environment(credential, Environment.GCCMOD) == Environment.GCCH
