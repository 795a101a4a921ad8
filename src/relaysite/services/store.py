"""
Locally persisted configuration snapshot.

[ConfigStore][relaysite.services.store.ConfigStore] owns the partial
[ConfigSnapshot][relaysite.models.config.ConfigSnapshot] that survives
restarts. It is the only place the snapshot is mutated: every change goes
through [update()][relaysite.services.store.ConfigStore.update], which
reads the committed value, applies a pure updater, validates, persists,
commits and notifies subscribers as one step under an ``asyncio.Lock``.
Concurrent remote merges and local edits therefore serialize instead of
overwriting each other.

Blob format:

```json
{"version": 1, "data": {"theme": "light", "siteConfig": {...}, ...}}
```

A blob without the envelope is treated as version 0 data. Version 0 blobs
may carry the legacy navigation shape ``{"navigation": {"navigation": [...]}}``,
which is unwrapped on load.

See Also:
    [ConfigReconciler][relaysite.services.reconciler.ConfigReconciler]:
        Merges remote configuration through this store.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from relaysite.core.exceptions import ConfigCorruptError
from relaysite.core.logger import Logger
from relaysite.models import EMPTY_SNAPSHOT, STORAGE_KEY, STORAGE_VERSION, ConfigSnapshot


Updater = Callable[[ConfigSnapshot], ConfigSnapshot]
Subscriber = Callable[[ConfigSnapshot], None]


# ---------------------------------------------------------------------------
# Storage backends
# ---------------------------------------------------------------------------


class StorageBackend(Protocol):
    """Key/value persistence for serialized blobs."""

    async def read(self, key: str) -> str | None: ...

    async def write(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """In-process backend, used by tests and one-shot CLI runs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def read(self, key: str) -> str | None:
        return self.data.get(key)

    async def write(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileStorage:
    """One JSON file per key inside *directory*.

    Writes go to a temporary sibling first and are moved into place with
    ``os.replace`` so a crash never leaves a truncated blob. File I/O runs
    in a worker thread via ``asyncio.to_thread``.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self._directory / (re.sub(r"[^A-Za-z0-9_.-]", "_", key) + ".json")

    def _read(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, key: str, value: str) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)

    async def read(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, key)

    async def write(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)


# ---------------------------------------------------------------------------
# Blob codec
# ---------------------------------------------------------------------------


def _migrate(data: dict[str, Any]) -> dict[str, Any]:
    """Upgrade version 0 payloads in place of the current schema."""
    navigation = data.get("navigation")
    if isinstance(navigation, dict) and "navigation" in navigation:
        data = {**data, "navigation": navigation["navigation"]}
    return data


def decode_blob(raw: str) -> ConfigSnapshot:
    """Parse a persisted blob into a snapshot.

    Raises:
        ConfigCorruptError: If the blob is not JSON, not an object, has an
            unsupported version, or fails schema validation.
    """
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigCorruptError(f"stored configuration is not JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ConfigCorruptError("stored configuration must be a JSON object")

    if "version" in parsed and "data" in parsed:
        version, data = parsed["version"], parsed["data"]
        if version != STORAGE_VERSION or not isinstance(data, dict):
            raise ConfigCorruptError(f"unsupported stored configuration version {version!r}")
    else:
        data = _migrate(parsed)

    try:
        return ConfigSnapshot.model_validate(data)
    except ValidationError as e:
        raise ConfigCorruptError(f"stored configuration failed validation: {e}") from e


def encode_blob(snapshot: ConfigSnapshot) -> str:
    return json.dumps(
        {"version": STORAGE_VERSION, "data": snapshot.to_json_dict()},
        separators=(",", ":"),
        ensure_ascii=False,
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class ConfigStore:
    """Persisted partial configuration with serialized updates.

    Examples:
        ```python
        store = ConfigStore(JsonFileStorage(".relaysite"))
        await store.open()
        await store.update(lambda s: s.replace(theme="dark"))
        store.get().theme   # 'dark'
        ```
    """

    def __init__(
        self,
        backend: StorageBackend,
        key: str = STORAGE_KEY,
        *,
        logger: Logger | None = None,
    ) -> None:
        self._backend = backend
        self._key = key
        self._logger = logger or Logger("store")
        self._current: ConfigSnapshot = EMPTY_SNAPSHOT
        self._subscribers: list[Subscriber] = []
        self._lock = asyncio.Lock()

    @property
    def key(self) -> str:
        return self._key

    async def load(self) -> ConfigSnapshot:
        """Read and validate the persisted snapshot.

        An absent blob yields the empty snapshot. The loaded value is
        committed as the current snapshot.

        Raises:
            ConfigCorruptError: If the blob exists but cannot be decoded.
        """
        raw = await self._backend.read(self._key)
        snapshot = EMPTY_SNAPSHOT if raw is None else decode_blob(raw)
        self._current = snapshot
        return snapshot

    async def open(self) -> ConfigSnapshot:
        """[load()][relaysite.services.store.ConfigStore.load], falling back to
        the empty snapshot when the blob is corrupt."""
        try:
            return await self.load()
        except ConfigCorruptError as e:
            self._logger.warning("stored_config_discarded", key=self._key, error=str(e))
            self._current = EMPTY_SNAPSHOT
            return EMPTY_SNAPSHOT

    async def save(self, snapshot: ConfigSnapshot) -> None:
        """Persist *snapshot* without committing it or notifying subscribers."""
        await self._backend.write(self._key, encode_blob(snapshot))

    async def update(self, updater: Updater) -> ConfigSnapshot:
        """Apply *updater* to the committed snapshot atomically.

        The updater must be pure. Its result is re-validated, persisted and
        only then committed; if validation or persistence fails the
        committed snapshot is unchanged and the error propagates.

        Returns:
            The newly committed snapshot.
        """
        async with self._lock:
            candidate = updater(self._current)
            snapshot = ConfigSnapshot.model_validate(candidate.model_dump(by_alias=True))
            await self.save(snapshot)
            self._current = snapshot
        self._notify(snapshot)
        return snapshot

    def get(self) -> ConfigSnapshot:
        """Return the committed snapshot."""
        return self._current

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* for every committed update.

        Returns:
            A callable that removes the subscription (idempotent).
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, snapshot: ConfigSnapshot) -> None:
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:  # noqa: BLE001 - subscriber errors never reach the writer
                self._logger.error("subscriber_failed", key=self._key, error=str(e))
