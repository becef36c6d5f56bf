"""PKCS #12 certificate loading and Azure AD client assertions.

Provides the certificate material for mutual TLS and the signed
``x5c`` assertion used for Subject Name/Issuer (SN/I) authentication.
"""

import base64
import hashlib
import time
import uuid
from dataclasses import dataclass

import jwt
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)

from ecs_client.constants import CLIENT_ASSERTION_LIFETIME_SECONDS
from ecs_client.errors import AuthenticationConfigError


@dataclass(frozen=True)
class LoadedCertificate:
    """Private key and certificate chain extracted from a PFX blob."""

    private_key: PrivateKeyTypes
    certificate: x509.Certificate
    chain: tuple[x509.Certificate, ...] = ()

    @property
    def thumbprint(self) -> str:
        """Base64url SHA-1 thumbprint (``x5t`` header)."""
        digest = hashlib.sha1(self.certificate.public_bytes(Encoding.DER)).digest()  # noqa: S324
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    @property
    def x5c(self) -> list[str]:
        """Base64 DER certificates, leaf first (``x5c`` header)."""
        return [
            base64.b64encode(cert.public_bytes(Encoding.DER)).decode("ascii")
            for cert in (self.certificate, *self.chain)
        ]

    def to_pem(self) -> bytes:
        """Key and certificate chain as PEM, ready for an SSL context."""
        parts = [
            self.private_key.private_bytes(
                Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
            ),
            self.certificate.public_bytes(Encoding.PEM),
        ]
        parts.extend(cert.public_bytes(Encoding.PEM) for cert in self.chain)
        return b"".join(parts)


def load_pkcs12(data: bytes, password: bytes | None = None) -> LoadedCertificate:
    """Parse PKCS #12 (PFX) bytes containing a private key.

    Args:
        data: Raw PFX bytes.
        password: Optional PFX password.

    Returns:
        The loaded key and certificates.

    Raises:
        AuthenticationConfigError: If the blob cannot be parsed or has no key.
    """
    try:
        key, cert, extra = pkcs12.load_key_and_certificates(data, password)
    except ValueError as e:
        msg = f"Invalid PKCS #12 certificate: {e}"
        raise AuthenticationConfigError(msg) from e

    if key is None or cert is None:
        msg = "PKCS #12 certificate must contain a certificate and its private key"
        raise AuthenticationConfigError(msg)

    return LoadedCertificate(private_key=key, certificate=cert, chain=tuple(extra))


def build_client_assertion(
    loaded: LoadedCertificate,
    client_id: str,
    token_url: str,
    now: float | None = None,
) -> str:
    """Sign a client assertion JWT for the Azure AD token endpoint.

    Args:
        loaded: Certificate and key used to sign.
        client_id: Application (client) id, used as issuer and subject.
        token_url: Token endpoint, used as audience.
        now: Issue time in epoch seconds (defaults to current time).

    Returns:
        Compact RS256 JWT with ``x5t`` and ``x5c`` headers.
    """
    issued_at = int(now if now is not None else time.time())
    claims = {
        "aud": token_url,
        "iss": client_id,
        "sub": client_id,
        "jti": str(uuid.uuid4()),
        "iat": issued_at,
        "nbf": issued_at,
        "exp": issued_at + CLIENT_ASSERTION_LIFETIME_SECONDS,
    }
    headers = {"x5t": loaded.thumbprint, "x5c": loaded.x5c}
    return jwt.encode(claims, loaded.private_key, algorithm="RS256", headers=headers)
