"""Resolve engine: remote call, retry, cache fallback and event commit.

Each resolution produces exactly one outcome:
- Fresh document from the service (cache written, CONFIGURATION_CHANGED)
- Cached document after a failure (CONFIGURATION_CHANGED_FROM_CACHE)
- Error with no cache (CONFIGURATION_ERROR, exception raised)

Cache writes and event delivery for an outcome happen under one commit
lock, so observers see outcomes in the order they were committed.
"""

import threading
import time
from collections.abc import Callable
from typing import Any

import structlog

from ecs_client.auth.credentials import Credential
from ecs_client.auth.provider import CredentialProvider
from ecs_client.cache.store import CacheStore
from ecs_client.constants import COMPONENT_FETCH, MAX_RETRY_AFTER_SECONDS
from ecs_client.errors import (
    AuthenticationConfigError,
    AuthenticationFailedError,
    ClientDestroyedError,
    RemoteUnavailableError,
)
from ecs_client.fetch.models import (
    ConfigRequest,
    RemoteCallError,
    RemoteError,
    RemoteErrorClass,
    RemoteResponse,
    RetryPolicy,
)
from ecs_client.fetch.transport import RemoteTransport
from ecs_client.models import (
    CacheEntry,
    ClientIdentity,
    Environment,
    EventRecord,
    EventType,
    RequestIdentifiers,
    ResolveOutcome,
    identifiers_fingerprint,
)
from ecs_client.observability.metrics import EcsMetrics


logger = structlog.get_logger()

# Receives an outcome and the document it carries (None for errors).
# Returns False when the client can no longer accept events.
Dispatch = Callable[[EventRecord, str | None], bool]


class FetchEngine:
    """Resolves configuration for one client.

    Features:
    - Retry with exponential backoff for transient failures
    - Conditional requests using the cached ETag
    - Cache fallback when the service cannot answer
    - Cancellation observed between attempts and before commit
    """

    def __init__(
        self,
        *,
        environment: Environment,
        identity: ClientIdentity,
        credential: Credential,
        credential_provider: CredentialProvider,
        transport: RemoteTransport,
        cache: CacheStore,
        dispatch: Dispatch,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
        enable_exp: bool = False,
        cancel_event: threading.Event | None = None,
        log: Any = None,
        metrics: EcsMetrics | None = None,
    ) -> None:
        self._environment = environment
        self._identity = identity
        self._credential = credential
        self._credential_provider = credential_provider
        self._transport = transport
        self._cache = cache
        self._dispatch = dispatch
        self._retry_policy = retry_policy or RetryPolicy()
        self._timeout = timeout
        self._enable_exp = enable_exp
        self._cancel_event = cancel_event or threading.Event()
        self._commit_lock = threading.RLock()
        self._metrics = metrics or EcsMetrics.get_instance()
        base_log = log if log is not None else logger
        self._log = base_log.bind(component=COMPONENT_FETCH)

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been signalled."""
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Signal cancellation and wait for an in-progress commit to finish.

        After this returns no further cache write or event is produced by
        this engine.
        """
        self._cancel_event.set()
        with self._commit_lock:
            pass

    def last_known(self) -> CacheEntry | None:
        """Cached entry for this client identity, without a network call."""
        return self._cache.get(self._identity)

    def seed(self, document: str) -> bool:
        """Store a bootstrap document when nothing is cached yet.

        Returns:
            True if the document was stored.
        """
        with self._commit_lock:
            if self._cache.get(self._identity) is not None:
                return False
            self._cache.put(self._identity, CacheEntry(document=document))
        self._log.debug("cache_seeded", client=self._identity.client)
        return True

    def resolve(self, identifiers: RequestIdentifiers) -> ResolveOutcome:
        """Resolve the configuration for a set of request identifiers.

        Args:
            identifiers: Merged identifiers for this call.

        Returns:
            The document and the event that was delivered for it.

        Raises:
            ClientDestroyedError: If cancellation was observed.
            AuthenticationFailedError: If credentials were rejected and
                nothing is cached.
            AuthenticationConfigError: If the credential cannot be used.
            RemoteUnavailableError: If the service failed and nothing is
                cached.
        """
        self._raise_if_cancelled()
        start = time.monotonic()
        try:
            return self._resolve(identifiers)
        finally:
            self._metrics.record_resolve((time.monotonic() - start) * 1000)

    def _resolve(self, identifiers: RequestIdentifiers) -> ResolveOutcome:
        fingerprint = identifiers_fingerprint(identifiers)
        cached = self._cache.get(self._identity)
        etag = (
            cached.etag
            if cached is not None and cached.identifiers_fingerprint == fingerprint
            else None
        )
        request = ConfigRequest(
            environment=self._environment,
            identity=self._identity,
            identifiers=identifiers,
            enable_exp=self._enable_exp,
            etag=etag,
        )
        log = self._log.bind(client=self._identity.client, conditional=etag is not None)

        try:
            response = self._fetch_with_retry(request, log)
            if response.not_modified and cached is None:
                raise RemoteCallError(
                    RemoteError(
                        error_class=RemoteErrorClass.INVALID_RESPONSE,
                        message="Service answered 304 but nothing is cached",
                        status_code=response.status_code,
                    )
                )
        except RemoteCallError as e:
            self._metrics.record_failure(e.error.error_class.value)
            return self._fall_back(
                e, auth_rejected=e.error.error_class == RemoteErrorClass.AUTH_REJECTED
            )
        except AuthenticationFailedError as e:
            self._metrics.record_failure(RemoteErrorClass.AUTH_REJECTED.value)
            return self._fall_back(e, auth_rejected=True)
        except AuthenticationConfigError as e:
            self._commit_error(e)
            raise

        return self._commit_success(response, fingerprint, cached, log)

    def _fetch_with_retry(self, request: ConfigRequest, log: Any) -> RemoteResponse:
        policy = self._retry_policy
        waited_retry_after = False

        for attempt in range(policy.max_retries + 1):
            if attempt > 0:
                self._metrics.record_retry()
                if not waited_retry_after:
                    delay_ms = policy.get_delay_ms(attempt - 1)
                    log.debug(
                        "retry_attempt",
                        attempt=attempt,
                        delay_ms=delay_ms,
                        max_retries=policy.max_retries,
                    )
                    self._wait(delay_ms / 1000.0)
                waited_retry_after = False

            try:
                auth = self._credential_provider.authenticate(
                    self._credential, self._environment
                )
                response = self._transport.fetch(request, auth, self._timeout)
            except RemoteCallError as e:
                self._metrics.record_remote_request(e.error.status_code or 0)
                log.info(
                    "remote_call_failed",
                    attempt=attempt,
                    error_class=e.error.error_class.value,
                    status_code=e.error.status_code,
                    error=e.error.message,
                )
                if not policy.should_retry(e.error, attempt):
                    raise

                retry_after = e.error.retry_after
                if e.error.error_class == RemoteErrorClass.RATE_LIMITED and retry_after:
                    log.info("rate_limited", retry_after=retry_after, attempt=attempt)
                    self._wait(min(retry_after, MAX_RETRY_AFTER_SECONDS))
                    waited_retry_after = True
                continue

            self._metrics.record_remote_request(response.status_code)
            return response

        # range() always yields at least once and every path returns or raises
        msg = "retry loop exited without an outcome"
        raise RuntimeError(msg)

    def _wait(self, seconds: float) -> None:
        if self._cancel_event.wait(seconds):
            raise ClientDestroyedError

    def _raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise ClientDestroyedError

    def _commit_success(
        self,
        response: RemoteResponse,
        fingerprint: str,
        cached: CacheEntry | None,
        log: Any,
    ) -> ResolveOutcome:
        if response.not_modified and cached is not None:
            document = cached.document
            entry = CacheEntry(
                document=document,
                etag=response.etag or cached.etag,
                identifiers_fingerprint=fingerprint,
            )
        else:
            document = response.document or ""
            entry = CacheEntry(
                document=document,
                etag=response.etag,
                identifiers_fingerprint=fingerprint,
            )

        record = EventRecord(event_type=EventType.CONFIGURATION_CHANGED)
        with self._commit_lock:
            self._raise_if_cancelled()
            self._cache.put(self._identity, entry)
            self._deliver(record, document)

        self._metrics.record_success()
        log.info(
            "config_resolved",
            not_modified=response.not_modified,
            status_code=response.status_code,
            size_bytes=len(document.encode("utf-8")),
        )
        return ResolveOutcome(document=document, event=record)

    def _fall_back(self, error: Exception, auth_rejected: bool) -> ResolveOutcome:
        reason = str(error)
        with self._commit_lock:
            self._raise_if_cancelled()
            cached = self._cache.get(self._identity)

            if cached is not None:
                record = EventRecord(
                    event_type=EventType.CONFIGURATION_CHANGED_FROM_CACHE,
                    message=reason,
                )
                self._deliver(record, cached.document)
                self._metrics.record_cache_fallback()
                self._log.warning(
                    "config_served_from_cache",
                    client=self._identity.client,
                    reason=reason,
                )
                return ResolveOutcome(document=cached.document, event=record)

            failure: AuthenticationFailedError | RemoteUnavailableError
            if auth_rejected:
                failure = AuthenticationFailedError(
                    f"Credentials rejected and no cached configuration: {reason}"
                )
            else:
                failure = RemoteUnavailableError(
                    f"Configuration service unavailable and no cached configuration: {reason}"
                )
            self._deliver(
                EventRecord(event_type=EventType.CONFIGURATION_ERROR, message=failure.message),
                None,
            )

        self._log.error(
            "config_unavailable",
            client=self._identity.client,
            error_class=failure.error_class.value,
            cause=reason,
        )
        raise failure from error

    def _commit_error(self, error: AuthenticationConfigError) -> None:
        with self._commit_lock:
            self._raise_if_cancelled()
            self._deliver(
                EventRecord(event_type=EventType.CONFIGURATION_ERROR, message=error.message),
                None,
            )
        self._log.error("credential_unusable", client=self._identity.client, **error.to_dict())

    def _deliver(self, record: EventRecord, document: str | None) -> None:
        if not self._dispatch(record, document):
            raise ClientDestroyedError
