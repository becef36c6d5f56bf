"""Unit tests for client creation and destruction."""

import json
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from ecs_client.auth.credentials import CertificateSniCredential, NoCredential
from ecs_client.auth.provider import StaticCredentialProvider
from ecs_client.cache.store import InMemoryCacheStore
from ecs_client.client import EcsClient
from ecs_client.errors import (
    AuthenticationConfigError,
    ClientDestroyedError,
    InvalidArgumentError,
    InvalidHandleError,
)
from ecs_client.fetch.memory import InMemoryTransport
from ecs_client.fetch.models import ConfigRequest, RemoteResponse
from ecs_client.last_error import get_last_error
from ecs_client.models import (
    AuthenticationMethod,
    Environment,
    EventType,
    LogLevel,
    RequestIdentifier,
)
from ecs_client.options import EcsClientOptions
from ecs_client.settings import EcsSettings
from ecs_client.state_machine import ClientState


def create(settings: EcsSettings, **kwargs: Any) -> EcsClient:
    """Create a client with in-memory collaborators unless overridden."""
    kwargs.setdefault("transport", InMemoryTransport(default_document="{}"))
    kwargs.setdefault("cache", InMemoryCacheStore())
    kwargs.setdefault("credential_provider", StaticCredentialProvider())
    environment = kwargs.pop("environment", Environment.PRODUCTION)
    client = kwargs.pop("client", "TestClient")
    agents = kwargs.pop("agents", ["TeamA"])
    options = kwargs.pop("options", None)
    return EcsClient.create(
        environment, client, agents, options, settings=settings, **kwargs
    )


class TestCreate:
    """Tests for EcsClient.create validation."""

    def test_creates_active_client(self, make_client: Callable[..., EcsClient]) -> None:
        """A valid call yields an ACTIVE client and clears the error slot."""
        client = make_client()

        assert client.state == ClientState.ACTIVE
        assert client.environment == Environment.PRODUCTION
        assert client.identity.client == "TestClient"
        assert client.identity.agents == ("TeamA",)
        assert isinstance(client.credential, NoCredential)
        assert get_last_error() is None

    def test_no_network_on_create(
        self, make_client: Callable[..., EcsClient], transport: InMemoryTransport
    ) -> None:
        """Creation performs no remote call."""
        make_client()

        assert transport.call_count == 0

    def test_raw_environment_int(self, settings: EcsSettings) -> None:
        """Environments may be given as ints."""
        client = create(settings, environment=9)

        assert client.environment == Environment.CANARY
        client.destroy()

    def test_unknown_environment(self, settings: EcsSettings) -> None:
        """Unknown environments are invalid arguments."""
        with pytest.raises(InvalidArgumentError, match="environment"):
            create(settings, environment=7)

        assert get_last_error() == "Unknown environment: 7"

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty_client_name(self, settings: EcsSettings, name: str) -> None:
        """Client names are required."""
        with pytest.raises(InvalidArgumentError, match="Client name"):
            create(settings, client=name)

    def test_incomplete_certificate_auth(self, settings: EcsSettings) -> None:
        """Certificate auth without bytes fails at creation without a call."""
        options = EcsClientOptions(
            authentication_method=AuthenticationMethod.AZURE_AD_CLIENT_CERTIFICATE_WITH_SNI
        )
        transport = InMemoryTransport(default_document="{}")

        with pytest.raises(AuthenticationConfigError):
            create(settings, options=options, transport=transport)

        assert get_last_error() is not None
        assert transport.call_count == 0

    def test_certificate_credential_kept(self, settings: EcsSettings) -> None:
        """Certificate options produce the certificate credential."""
        options = EcsClientOptions(
            authentication_method=2, certificate=b"pfx", tenant_id="t", client_id="app"
        )

        client = create(settings, options=options)

        assert isinstance(client.credential, CertificateSniCredential)
        client.destroy()

    def test_no_endpoint_for_environment(self, settings: EcsSettings) -> None:
        """Environments without endpoint need an override."""
        with pytest.raises(InvalidArgumentError, match="ECS_ENDPOINT_OVERRIDE"):
            create(settings, environment=Environment.GCCH, transport=None)

    def test_endpoint_override_builds_http_transport(self) -> None:
        """The override is used for environments without endpoint."""
        settings = EcsSettings(_env_file=None, endpoint_override="https://ecs.local")

        client = create(settings, environment=Environment.GCCH, transport=None)

        assert client.state == ClientState.ACTIVE
        client.destroy()

    def test_default_identifiers_merge_groups(
        self, settings: EcsSettings, tmp_path: Path
    ) -> None:
        """Option identifiers override the groups file by name."""
        groups = tmp_path / "groups.json"
        groups.write_text(json.dumps({"Ring": "R0", "Region": ["eu"]}), encoding="utf-8")
        options = EcsClientOptions(
            default_groups_path=groups,
            default_request_identifiers={"Ring": ["R1"], "Build": "42"},
        )

        client = create(settings, options=options)

        assert client.default_identifiers == (
            RequestIdentifier(name="Ring", values=("R1",)),
            RequestIdentifier(name="Region", values=("eu",)),
            RequestIdentifier(name="Build", values=("42",)),
        )
        client.destroy()

    def test_unreadable_groups_file(self, settings: EcsSettings, tmp_path: Path) -> None:
        """Missing groups file is an invalid argument."""
        options = EcsClientOptions(default_groups_path=tmp_path / "missing.json")

        with pytest.raises(InvalidArgumentError, match="groups"):
            create(settings, options=options)

    def test_invalid_bootstrap_document(self, settings: EcsSettings, tmp_path: Path) -> None:
        """Bootstrap documents must be JSON."""
        path = tmp_path / "default.json"
        path.write_text("{oops", encoding="utf-8")

        with pytest.raises(InvalidArgumentError, match="default config"):
            create(settings, options=EcsClientOptions(default_config_path=path))

    def test_bootstrap_seeds_cache(self, settings: EcsSettings, tmp_path: Path) -> None:
        """The bootstrap document is available before any resolution."""
        path = tmp_path / "default.json"
        path.write_text('{"TeamA": {"Boot": 1}}', encoding="utf-8")

        client = create(settings, options=EcsClientOptions(default_config_path=path))

        assert client.last_known_config() == '{"TeamA": {"Boot": 1}}'
        client.destroy()

    def test_cache_dir_setting_uses_files(self, tmp_path: Path) -> None:
        """ECS_CACHE_DIR selects the file-backed cache."""
        settings = EcsSettings(_env_file=None, cache_dir=tmp_path)

        client = create(settings, cache=None)
        client.get_config()
        client.destroy()

        assert list(tmp_path.glob("*.json"))


class TestDestroy:
    """Tests for destroy semantics."""

    def test_destroy_moves_to_destroyed(self, make_client: Callable[..., EcsClient]) -> None:
        """Destroy completes the lifecycle."""
        client = make_client()

        client.destroy()

        assert client.state == ClientState.DESTROYED

    def test_double_destroy(self, make_client: Callable[..., EcsClient]) -> None:
        """A second destroy is an invalid handle."""
        client = make_client()
        client.destroy()

        with pytest.raises(InvalidHandleError):
            client.destroy()

        assert get_last_error() == "ECS client was already destroyed"

    def test_operations_after_destroy(self, make_client: Callable[..., EcsClient]) -> None:
        """Every operation rejects a destroyed client."""
        client = make_client()
        client.destroy()

        with pytest.raises(InvalidHandleError):
            client.get_config()
        with pytest.raises(InvalidHandleError):
            client.last_known_config()
        with pytest.raises(InvalidHandleError):
            client.trigger_update_callbacks()

    def test_no_events_after_destroy(
        self,
        make_client: Callable[..., EcsClient],
        events: list[tuple[Any, EventType, str | None]],
    ) -> None:
        """Observer is silent once destroy returned."""
        client = make_client()
        client.get_config()
        count = len(events)

        client.destroy()

        assert len(events) == count

    def test_destroy_during_fetch(
        self,
        make_client: Callable[..., EcsClient],
        transport: InMemoryTransport,
        events: list[tuple[Any, EventType, str | None]],
    ) -> None:
        """An in-flight call observes destruction instead of committing."""
        in_fetch = threading.Event()
        release = threading.Event()

        def blocking(request: ConfigRequest) -> RemoteResponse:
            in_fetch.set()
            release.wait(timeout=5)
            return RemoteResponse(document='{"late": true}')

        transport.enqueue(blocking)
        client = make_client()
        outcome: list[BaseException] = []

        def call() -> None:
            try:
                client.get_config()
            except BaseException as e:  # noqa: BLE001
                outcome.append(e)

        worker = threading.Thread(target=call)
        worker.start()
        in_fetch.wait(timeout=5)
        client.destroy()
        release.set()
        worker.join(timeout=5)

        assert len(outcome) == 1
        assert isinstance(outcome[0], ClientDestroyedError)
        assert events == []

    def test_destroy_from_event_callback(
        self, settings: EcsSettings, transport: InMemoryTransport
    ) -> None:
        """Destroying inside the observer does not deadlock."""

        def observer(client: EcsClient, _event: EventType, _message: str | None) -> None:
            client.destroy()

        client = create(
            settings,
            transport=transport,
            options=EcsClientOptions(event_callback=observer),
        )

        client.get_config()

        assert client.state == ClientState.DESTROYED

    def test_context_manager(self, settings: EcsSettings) -> None:
        """Leaving the with block destroys the client."""
        with create(settings) as client:
            client.get_config()

        assert client.state == ClientState.DESTROYED

    def test_background_refresh_stops(self, settings: EcsSettings) -> None:
        """The refresh thread stops calling the service after destroy."""
        refreshing = settings.model_copy(update={"refresh_interval_seconds": 0.02})
        transport = InMemoryTransport(default_document="{}")
        client = create(refreshing, transport=transport)

        deadline = time.monotonic() + 5
        while transport.call_count < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        client.destroy()
        time.sleep(0.1)
        calls = transport.call_count
        time.sleep(0.1)

        assert calls >= 2
        assert transport.call_count == calls


class TestLogCallback:
    """Tests for the per-client log callback."""

    def test_log_callback_receives_lifecycle(self, settings: EcsSettings) -> None:
        """Info events reach the callback at INFORMATION level."""
        messages: list[tuple[LogLevel, str]] = []
        options = EcsClientOptions(
            log_callback=lambda level, message: messages.append((level, message)),
            log_level=LogLevel.INFORMATION,
        )

        client = create(settings, options=options)
        client.destroy()

        texts = [message for _, message in messages]
        assert any(text.startswith("client_created") for text in texts)
        assert any(text.startswith("client_destroyed") for text in texts)
