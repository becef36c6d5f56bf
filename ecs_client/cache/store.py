"""Cache stores holding the last known good configuration per client identity.

The cache is what makes transient service failures invisible to callers
that have already resolved a configuration once.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol

import structlog
from pydantic import ValidationError

from ecs_client.constants import COMPONENT_CACHE
from ecs_client.models import CacheEntry, ClientIdentity


logger = structlog.get_logger()


class CacheStore(Protocol):
    """Protocol for configuration cache storage.

    Abstracts the storage layer to enable testing and alternative implementations.
    """

    def get(self, identity: ClientIdentity) -> CacheEntry | None:
        """Retrieve the cached entry for an identity.

        Args:
            identity: Client identity the entry belongs to.

        Returns:
            Cached entry if one exists, None otherwise.
        """
        ...

    def put(self, identity: ClientIdentity, entry: CacheEntry) -> None:
        """Store or replace the cached entry for an identity.

        Args:
            identity: Client identity the entry belongs to.
            entry: Entry to store.
        """
        ...

    def discard(self, identity: ClientIdentity) -> None:
        """Release in-process state held for an identity."""
        ...


class InMemoryCacheStore:
    """Process-local cache store. Entries do not survive the process."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, identity: ClientIdentity) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(identity.cache_key)

    def put(self, identity: ClientIdentity, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[identity.cache_key] = entry

    def discard(self, identity: ClientIdentity) -> None:
        with self._lock:
            self._entries.pop(identity.cache_key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class FileCacheStore:
    """Cache store persisting one JSON file per client identity.

    Writes go to a temporary file that is atomically renamed into place,
    so readers never observe a partially written entry. ``discard`` only
    drops the in-process copy; files are kept for the next process.
    """

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)
        self._memory = InMemoryCacheStore()
        self._lock = threading.Lock()
        self._log = logger.bind(component=COMPONENT_CACHE, directory=str(self._directory))

    @property
    def directory(self) -> Path:
        """Directory holding cache files."""
        return self._directory

    def path_for(self, identity: ClientIdentity) -> Path:
        """File path used for an identity."""
        return self._directory / f"{identity.cache_key}.json"

    def get(self, identity: ClientIdentity) -> CacheEntry | None:
        entry = self._memory.get(identity)
        if entry is not None:
            return entry

        path = self.path_for(identity)
        if not path.exists():
            return None

        try:
            entry = CacheEntry.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            self._log.warning("cache_read_failed", path=str(path), error=str(e))
            return None

        self._memory.put(identity, entry)
        self._log.debug("cache_loaded", client=identity.client)
        return entry

    def put(self, identity: ClientIdentity, entry: CacheEntry) -> None:
        self._memory.put(identity, entry)
        path = self.path_for(identity)

        with self._lock:
            tmp_name: str | None = None
            try:
                self._directory.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self._directory, prefix=".tmp-", suffix=".json"
                )
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(entry.model_dump_json())
                Path(tmp_name).replace(path)
            except OSError as e:
                if tmp_name is not None:
                    Path(tmp_name).unlink(missing_ok=True)
                self._log.warning("cache_write_failed", path=str(path), error=str(e))
                return

        self._log.debug("cache_written", client=identity.client, path=str(path))

    def discard(self, identity: ClientIdentity) -> None:
        self._memory.discard(identity)


def load_bootstrap_document(path: Path | str) -> str:
    """Read a bootstrap configuration file and check it is valid JSON.

    Args:
        path: Path to the default configuration document.

    Returns:
        The document text.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the content is not valid JSON.
    """
    text = Path(path).read_text(encoding="utf-8")
    json.loads(text)
    return text
