"""Shared fixtures for ECS client tests."""

import datetime
from collections.abc import Callable, Generator
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import NoEncryption, pkcs12
from cryptography.x509.oid import NameOID

from ecs_client.auth.provider import StaticCredentialProvider
from ecs_client.cache.store import InMemoryCacheStore
from ecs_client.client import EcsClient
from ecs_client.fetch.memory import InMemoryTransport
from ecs_client.fetch.models import RetryPolicy
from ecs_client.last_error import clear_last_error
from ecs_client.models import Environment, EventType
from ecs_client.observability.metrics import EcsMetrics
from ecs_client.options import EcsClientOptions
from ecs_client.settings import EcsSettings


SAMPLE_DOCUMENT = '{"TeamA": {"Feature": {"enabled": true, "limit": 5}}}'


@pytest.fixture(autouse=True)
def reset_state() -> Generator[None]:
    """Reset process-wide metrics and the error channel around each test."""
    EcsMetrics.reset()
    clear_last_error()
    yield
    EcsMetrics.reset()


@pytest.fixture(scope="session")
def pfx_bytes() -> bytes:
    """Self-signed certificate with its private key as PKCS #12 bytes."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "ecs-client-test")])
    now = datetime.datetime.now(datetime.UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return pkcs12.serialize_key_and_certificates(
        b"ecs-client-test", key, cert, None, NoEncryption()
    )


@pytest.fixture
def settings() -> EcsSettings:
    """Settings with fast retries and no background refresh."""
    return EcsSettings(
        _env_file=None,
        retry_policy=RetryPolicy(max_retries=2, base_delay_ms=0, jitter_factor=0.0),
        timeout_seconds=5.0,
        refresh_interval_seconds=0.0,
    )


@pytest.fixture
def transport() -> InMemoryTransport:
    """Scripted transport serving the sample document by default."""
    return InMemoryTransport(default_document=SAMPLE_DOCUMENT)


@pytest.fixture
def cache() -> InMemoryCacheStore:
    """Fresh in-memory cache."""
    return InMemoryCacheStore()


@pytest.fixture
def events() -> list[tuple[Any, EventType, str | None]]:
    """Collected observer calls."""
    return []


@pytest.fixture
def make_client(
    settings: EcsSettings,
    transport: InMemoryTransport,
    cache: InMemoryCacheStore,
    events: list[tuple[Any, EventType, str | None]],
) -> Generator[Callable[..., EcsClient]]:
    """Factory creating clients wired to in-memory collaborators."""
    created: list[EcsClient] = []

    def factory(**option_fields: Any) -> EcsClient:
        option_fields.setdefault(
            "event_callback",
            lambda client, event_type, message: events.append(
                (client, event_type, message)
            ),
        )
        client = EcsClient.create(
            Environment.PRODUCTION,
            "TestClient",
            ["TeamA"],
            EcsClientOptions(**option_fields),
            settings=settings,
            transport=transport,
            cache=cache,
            credential_provider=StaticCredentialProvider(),
        )
        created.append(client)
        return client

    yield factory

    for client in created:
        if client.state.name == "ACTIVE":
            client.destroy()
