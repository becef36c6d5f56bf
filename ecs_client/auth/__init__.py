"""Credential handling for ECS requests.

Supports:
- No authentication
- Azure AD application certificates validated by Subject Name/Issuer
- System- and user-assigned managed identities
"""

from ecs_client.auth.certificate import (
    LoadedCertificate,
    build_client_assertion,
    load_pkcs12,
)
from ecs_client.auth.credentials import (
    CertificateSniCredential,
    Credential,
    NoCredential,
    SystemManagedIdentityCredential,
    UserManagedIdentityCredential,
    build_credential,
    effective_auth_environment,
)
from ecs_client.auth.models import AuthMaterial
from ecs_client.auth.provider import (
    AzureCredentialProvider,
    CredentialProvider,
    StaticCredentialProvider,
)
from ecs_client.auth.tokens import (
    AccessToken,
    acquire_certificate_token,
    acquire_managed_identity_token,
)


__all__ = [
    # Credentials
    "Credential",
    "NoCredential",
    "CertificateSniCredential",
    "SystemManagedIdentityCredential",
    "UserManagedIdentityCredential",
    "build_credential",
    "effective_auth_environment",
    # Providers
    "AuthMaterial",
    "CredentialProvider",
    "AzureCredentialProvider",
    "StaticCredentialProvider",
    # Certificates and tokens
    "LoadedCertificate",
    "load_pkcs12",
    "build_client_assertion",
    "AccessToken",
    "acquire_certificate_token",
    "acquire_managed_identity_token",
]
