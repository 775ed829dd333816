"""Durable local cache of every collection, one JSON blob per collection.

The store is the offline source of truth and the fallback when a remote
backend is unreachable. Nothing in here raises to the caller: unreadable or
corrupt blobs load as empty lists and failed writes are logged.
"""

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from watchfiles import Change, awatch

from bizdesk.core.notifier import ChangeNotifier
from bizdesk.models.enums import EntityType

logger = logging.getLogger(__name__)

BLOB_SUFFIX = ".json"


class LocalStore:
    """Per-collection snapshots persisted under one directory.

    Each collection lives in ``<directory>/<prefix>_<collection>_<version>.json``
    and is overwritten wholesale on every save.

    Args:
        directory: Directory holding the blobs; created on first save.
        key_prefix: Application prefix of every blob name.
        version: Schema version suffix; bumping it starts from empty blobs.
    """

    def __init__(self, directory: str | Path, key_prefix: str = "bizdesk", version: str = "v2") -> None:
        self.directory = Path(directory)
        self.key_prefix = key_prefix
        self.version = version
        self._snapshots: dict[str, list[dict[str, Any]]] = {}

    def path_for(self, collection: str) -> Path:
        return self.directory / f"{self.key_prefix}_{collection}_{self.version}{BLOB_SUFFIX}"

    def collection_for_path(self, path: str | Path) -> str | None:
        """Map a blob path back to its collection name, or None if foreign."""
        name = Path(path).name
        head = f"{self.key_prefix}_"
        tail = f"_{self.version}{BLOB_SUFFIX}"
        if not (name.startswith(head) and name.endswith(tail)):
            return None
        collection = name[len(head) : -len(tail)]
        return collection or None

    def load(self, collection: str) -> list[dict[str, Any]]:
        """Return the collection's records, reading the blob on first access."""
        if collection not in self._snapshots:
            self._snapshots[collection] = self._read(collection)
        return [dict(row) for row in self._snapshots[collection]]

    def save(self, collection: str, records: Iterable[dict[str, Any]]) -> None:
        """Replace the collection's records in memory and on disk."""
        rows = [dict(row) for row in records]
        self._snapshots[collection] = rows
        path = self.path_for(collection)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(rows, fh, ensure_ascii=False)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError):
            logger.exception(
                "Failed to persist local collection",
                extra={"collection": collection, "path": str(path)},
            )

    def reload(self, collection: str) -> bool:
        """Re-read a blob from disk. Returns True if it differs from memory."""
        rows = self._read(collection)
        changed = rows != self._snapshots.get(collection)
        self._snapshots[collection] = rows
        return changed

    def _read(self, collection: str) -> list[dict[str, Any]]:
        path = self.path_for(collection)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError:
            logger.warning("Local collection unreadable", extra={"path": str(path)}, exc_info=True)
            return []
        try:
            data = json.loads(text)
        except ValueError:
            logger.warning("Local collection is corrupt, starting empty", extra={"path": str(path)})
            return []
        if not isinstance(data, list):
            logger.warning("Local collection is not a list, starting empty", extra={"path": str(path)})
            return []
        return [row for row in data if isinstance(row, dict)]


class LocalStoreWatcher:
    """Reload blobs rewritten by other processes and notify subscribers.

    Our own saves leave the in-memory snapshot equal to the file, so
    ``reload`` reports no change for them and nothing is published.
    """

    def __init__(
        self,
        store: LocalStore,
        notifier: ChangeNotifier,
        collections: Iterable[EntityType] | None = None,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._collections = {
            EntityType(c).collection for c in (collections if collections is not None else EntityType)
        }
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def handle_changes(self, changes: Iterable[tuple[Change, str]]) -> list[EntityType]:
        """Process one batch of file events; returns the entity types published."""
        published: list[EntityType] = []
        for _change, path in changes:
            collection = self._store.collection_for_path(path)
            if collection is None or collection not in self._collections:
                continue
            entity_type = EntityType(collection)
            if entity_type in published:
                continue
            if self._store.reload(collection):
                logger.debug("Local collection changed externally", extra={"collection": collection})
                self._notifier.publish(entity_type)
                published.append(entity_type)
        return published

    async def start(self) -> None:
        if self.running:
            return
        self._store.directory.mkdir(parents=True, exist_ok=True)
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stop_event))
        logger.info("Local store watcher started", extra={"directory": str(self._store.directory)})

    async def stop(self) -> None:
        if self._task is None or self._stop_event is None:
            return
        self._stop_event.set()
        try:
            await self._task
        finally:
            self._task = None
            self._stop_event = None
        logger.info("Local store watcher stopped")

    async def _run(self, stop_event: asyncio.Event) -> None:
        async for changes in awatch(
            self._store.directory,
            stop_event=stop_event,
            recursive=False,
            watch_filter=lambda _change, path: path.endswith(BLOB_SUFFIX),
        ):
            self.handle_changes(changes)
