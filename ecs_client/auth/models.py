"""Authentication material attached to configuration requests."""

from pydantic import BaseModel, ConfigDict, Field


class AuthMaterial(BaseModel):
    """Opaque per-request authentication produced by a credential provider.

    ``client_certificate_pem`` holds the private key and certificate chain
    the transport presents for mutual TLS.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    headers: dict[str, str] = Field(default_factory=dict)
    client_certificate_pem: bytes | None = Field(default=None, repr=False)

    @classmethod
    def bearer(
        cls, token: str, client_certificate_pem: bytes | None = None
    ) -> "AuthMaterial":
        """Material carrying an Authorization bearer header."""
        return cls(
            headers={"Authorization": f"Bearer {token}"},
            client_certificate_pem=client_certificate_pem,
        )
