"""ECS client: lifecycle, configuration resolution and option monitors."""

import asyncio
import threading
from collections.abc import Iterable, Mapping, Sequence

import structlog
from pydantic import ValidationError

from ecs_client.auth.credentials import Credential, build_credential
from ecs_client.auth.provider import AzureCredentialProvider, CredentialProvider
from ecs_client.cache.store import (
    CacheStore,
    FileCacheStore,
    InMemoryCacheStore,
    load_bootstrap_document,
)
from ecs_client.constants import COMPONENT_CLIENT, ENVIRONMENT_ENDPOINTS
from ecs_client.errors import EcsError, InvalidArgumentError, InvalidHandleError
from ecs_client.events.notifier import EventNotifier
from ecs_client.fetch.engine import FetchEngine
from ecs_client.fetch.request import (
    coerce_identifiers,
    load_identifier_groups,
    merge_request_identifiers,
)
from ecs_client.fetch.transport import HttpxTransport, RemoteTransport
from ecs_client.last_error import record_outcome
from ecs_client.models import (
    ClientIdentity,
    Environment,
    EventRecord,
    RequestIdentifier,
    RequestIdentifiers,
)
from ecs_client.monitor import (
    OptionsMonitor,
    OptionsUpdateError,
    OptionsUpdateReceiver,
    UpdateCallback,
)
from ecs_client.observability.logging import ClientLogger
from ecs_client.options import EcsClientOptions
from ecs_client.settings import EcsSettings, get_settings
from ecs_client.state_machine import ClientState, ClientStateError, ClientStateMachine


logger = structlog.get_logger()

IdentifiersArg = Iterable[RequestIdentifier] | Mapping[str, str | Sequence[str]] | None


class EcsClient:
    """Client resolving configuration from ECS for one identity.

    Create instances with ``EcsClient.create``. A client is safe to use
    from several threads; ``destroy`` cancels in-flight work and stops
    every callback.
    """

    def __init__(
        self,
        *,
        environment: Environment,
        identity: ClientIdentity,
        credential: Credential,
        default_identifiers: RequestIdentifiers,
        options: EcsClientOptions,
        settings: EcsSettings,
        transport: RemoteTransport,
        cache: CacheStore,
        credential_provider: CredentialProvider,
    ) -> None:
        self._environment = environment
        self._identity = identity
        self._credential = credential
        self._default_identifiers = default_identifiers
        self._cache = cache
        self._log = ClientLogger(
            logger.bind(component=COMPONENT_CLIENT, client=identity.client),
            options.log_callback,
            options.log_level,
        )
        self._state = ClientStateMachine(identity.client)
        self._cancel = threading.Event()
        self._notifier = EventNotifier(self, options.event_callback)
        self._monitor = OptionsMonitor(self._log)
        self._engine = FetchEngine(
            environment=environment,
            identity=identity,
            credential=credential,
            credential_provider=credential_provider,
            transport=transport,
            cache=cache,
            dispatch=self._dispatch,
            retry_policy=settings.retry_policy,
            timeout=settings.timeout_seconds,
            enable_exp=options.enable_exp,
            cancel_event=self._cancel,
            log=self._log,
        )
        self._refresh_interval = settings.refresh_interval_seconds
        self._refresh_thread: threading.Thread | None = None

    @classmethod
    def create(
        cls,
        environment: Environment | int,
        client: str,
        agents: Iterable[str] = (),
        options: EcsClientOptions | None = None,
        *,
        settings: EcsSettings | None = None,
        transport: RemoteTransport | None = None,
        cache: CacheStore | None = None,
        credential_provider: CredentialProvider | None = None,
    ) -> "EcsClient":
        """Validate inputs and build a client. No network call is made.

        Args:
            environment: ECS environment (raw ints are validated).
            client: ECS client name.
            agents: Agent (project team) names.
            options: Optional client options.
            settings: Process settings; read from the environment if omitted.
            transport: Remote transport; HTTPS to the environment endpoint if omitted.
            cache: Cache store; file-backed when ECS_CACHE_DIR is set, else in memory.
            credential_provider: Credential provider; Azure AD and IMDS if omitted.

        Returns:
            A ready client.

        Raises:
            InvalidArgumentError: If an input is empty, unknown or unreadable.
            AuthenticationConfigError: If the credential is incomplete.
        """
        with record_outcome():
            return cls._create(
                environment,
                client,
                agents,
                options or EcsClientOptions(),
                settings or get_settings(),
                transport,
                cache,
                credential_provider,
            )

    @classmethod
    def _create(
        cls,
        environment: Environment | int,
        client: str,
        agents: Iterable[str],
        options: EcsClientOptions,
        settings: EcsSettings,
        transport: RemoteTransport | None,
        cache: CacheStore | None,
        credential_provider: CredentialProvider | None,
    ) -> "EcsClient":
        try:
            environment = Environment(environment)
        except ValueError as e:
            msg = f"Unknown environment: {environment}"
            raise InvalidArgumentError(msg) from e

        try:
            identity = ClientIdentity(client=client, agents=tuple(agents))
        except ValidationError as e:
            msg = "Client name must not be empty"
            raise InvalidArgumentError(msg) from e

        credential = build_credential(
            options.authentication_method,
            certificate=options.certificate,
            tenant_id=options.tenant_id,
            client_id=options.client_id,
            auth_environment=options.auth_environment,
        )

        groups: RequestIdentifiers = ()
        if options.default_groups_path is not None:
            try:
                groups = load_identifier_groups(options.default_groups_path)
            except (OSError, ValueError) as e:
                msg = f"Cannot read default groups file {options.default_groups_path}: {e}"
                raise InvalidArgumentError(msg) from e
        default_identifiers = merge_request_identifiers(
            groups, options.default_request_identifiers
        )

        bootstrap: str | None = None
        if options.default_config_path is not None:
            try:
                bootstrap = load_bootstrap_document(options.default_config_path)
            except (OSError, ValueError) as e:
                msg = f"Cannot read default config file {options.default_config_path}: {e}"
                raise InvalidArgumentError(msg) from e

        if transport is None:
            endpoint = settings.endpoint_override or ENVIRONMENT_ENDPOINTS.get(environment)
            if not endpoint:
                msg = (
                    f"No configuration endpoint known for {environment.name} "
                    "(set ECS_ENDPOINT_OVERRIDE)"
                )
                raise InvalidArgumentError(msg)
            transport = HttpxTransport(endpoint, app_version=settings.app_version)

        if cache is None:
            cache = (
                FileCacheStore(settings.cache_dir)
                if settings.cache_dir is not None
                else InMemoryCacheStore()
            )

        if credential_provider is None:
            credential_provider = AzureCredentialProvider(
                imds_endpoint=settings.imds_endpoint,
                token_resource=settings.token_resource,
                default_tenant_id=settings.default_tenant_id,
                authority_host_override=settings.authority_host_override,
                timeout=settings.timeout_seconds,
            )
        credential_provider.validate(credential, environment)

        instance = cls(
            environment=environment,
            identity=identity,
            credential=credential,
            default_identifiers=default_identifiers,
            options=options,
            settings=settings,
            transport=transport,
            cache=cache,
            credential_provider=credential_provider,
        )
        if bootstrap is not None:
            instance._engine.seed(bootstrap)
        instance._start_refresh()

        instance._log.info(
            "client_created",
            environment=environment.name,
            agents=list(identity.agents),
            credential=credential.kind,
        )
        return instance

    @property
    def environment(self) -> Environment:
        """Environment fixed at creation."""
        return self._environment

    @property
    def identity(self) -> ClientIdentity:
        """Client name and agents."""
        return self._identity

    @property
    def credential(self) -> Credential:
        """Credential fixed at creation."""
        return self._credential

    @property
    def default_identifiers(self) -> RequestIdentifiers:
        """Identifiers sent with every request unless overridden."""
        return self._default_identifiers

    @property
    def state(self) -> ClientState:
        """Current lifecycle state."""
        return self._state.state

    def get_config(self, request_identifiers: IdentifiersArg = None) -> str:
        """Resolve the configuration document.

        Per-call identifiers replace defaults with the same name; new
        names are appended.

        Args:
            request_identifiers: Identifiers for this call only.

        Returns:
            The fresh document, or the cached one if the service failed.

        Raises:
            InvalidHandleError: If the client was destroyed.
            ClientDestroyedError: If destroy started while the call was in flight.
            AuthenticationFailedError: If credentials were rejected and nothing is cached.
            RemoteUnavailableError: If the service failed and nothing is cached.
        """
        with record_outcome():
            self._ensure_active()
            identifiers = merge_request_identifiers(
                self._default_identifiers, coerce_identifiers(request_identifiers)
            )
            return self._engine.resolve(identifiers).document

    async def get_config_async(self, request_identifiers: IdentifiersArg = None) -> str:
        """Resolve the configuration without blocking the event loop."""
        with record_outcome():
            return await asyncio.to_thread(self.get_config, request_identifiers)

    def last_known_config(self) -> str | None:
        """Return the cached document without contacting the service."""
        with record_outcome():
            self._ensure_active()
            entry = self._engine.last_known()
            return entry.document if entry is not None else None

    def add_options_monitor(
        self, receiver: OptionsUpdateReceiver, project_team: str, option_name: str
    ) -> None:
        """Keep ``receiver`` updated with ``document[project_team][option_name]``.

        Performs an initial resolution with the default identifiers.

        Raises:
            InvalidArgumentError: If the receiver is already monitored.
            OptionsUpdateError: If the initial section could not be applied.
        """
        with record_outcome():
            self._ensure_active()
            self._monitor.add(receiver, project_team, option_name)

            errors: list[Exception] = []

            def capture(error: Exception | None) -> None:
                if error is not None:
                    errors.append(error)

            self._monitor.register_callback(receiver, capture)
            try:
                self._engine.resolve(self._default_identifiers)
            finally:
                self._monitor.unregister_callback(receiver, capture)

            if errors:
                raise errors[0]

    def register_update_callback(
        self, receiver: OptionsUpdateReceiver, callback: UpdateCallback
    ) -> None:
        """Call ``callback`` whenever the receiver's section changes or fails.

        Raises:
            InvalidArgumentError: If the receiver has no options monitor.
        """
        with record_outcome():
            self._ensure_active()
            self._monitor.register_callback(receiver, callback)

    def trigger_update_callbacks(self) -> None:
        """Invoke every registered update callback with no error."""
        with record_outcome():
            self._ensure_active()
            self._monitor.trigger_all()

    def destroy(self) -> None:
        """Cancel in-flight work, stop callbacks and release resources.

        Raises:
            InvalidHandleError: If the client was already destroyed.
        """
        with record_outcome():
            try:
                self._state.transition(ClientState.DESTROYING)
            except ClientStateError as e:
                msg = "ECS client was already destroyed"
                raise InvalidHandleError(msg) from e

            self._engine.cancel()
            self._stop_refresh()
            self._notifier.close()
            self._cache.discard(self._identity)
            self._monitor.clear()
            self._state.transition(ClientState.DESTROYED)
            self._log.info("client_destroyed")

    def __enter__(self) -> "EcsClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._state.is_active():
            self.destroy()

    def _ensure_active(self) -> None:
        if not self._state.is_active():
            msg = "ECS client was destroyed"
            raise InvalidHandleError(msg)

    def _dispatch(self, record: EventRecord, document: str | None) -> bool:
        if not self._notifier.deliver(record):
            return False
        if document is not None:
            self._monitor.apply_document(document)
        else:
            self._monitor.apply_error(
                OptionsUpdateError(record.message or "Configuration could not be resolved")
            )
        return True

    def _start_refresh(self) -> None:
        if self._refresh_interval <= 0:
            return
        self._refresh_thread = threading.Thread(
            target=self._refresh_loop,
            name=f"ecs-refresh-{self._identity.client}",
            daemon=True,
        )
        self._refresh_thread.start()
        self._log.debug("refresh_started", interval_seconds=self._refresh_interval)

    def _stop_refresh(self) -> None:
        # The thread exits by itself once the cancel event is set; joining here
        # could deadlock when destroy runs inside an event callback.
        self._refresh_thread = None

    def _refresh_loop(self) -> None:
        while not self._cancel.wait(self._refresh_interval):
            try:
                self._engine.resolve(self._default_identifiers)
            except EcsError as e:
                if self._cancel.is_set():
                    return
                self._log.warning("background_refresh_failed", **e.to_dict())
