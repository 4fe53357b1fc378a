from __future__ import annotations

import asyncio
import json
import logging
import time
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, Optional, TypeVar, Union

from pydantic import ValidationError

from .errors import SerializationError, StorageError
from .models import Manifest, ManifestFile, Position

T = TypeVar("T")
PathLike = Union[str, Path]


def _dump_record(record: ManifestFile) -> str:
    try:
        payload = record.model_dump(mode="json")
        return json.dumps(payload, ensure_ascii=False, indent=2) + "\n"
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Cannot serialize manifest: {exc}") from exc


def write_manifest_file(path: Path, manifest: Manifest) -> ManifestFile:
    timestamp = int(time.time())
    record = ManifestFile(manifest=manifest, created_at=timestamp, updated_at=timestamp)
    text = _dump_record(record)
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise StorageError(f"Cannot write manifest {path}: {exc}") from exc
    return record


def read_manifest_file(path: Path) -> Optional[ManifestFile]:
    if not path.exists():
        return None
    try:
        raw = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise SerializationError(f"Manifest is not UTF-8 text: {path}") from exc
    except OSError as exc:
        raise StorageError(f"Cannot read manifest {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SerializationError(f"Manifest is not valid JSON: {path}: {exc}") from exc
    try:
        return ManifestFile.model_validate(data)
    except ValidationError as exc:
        raise SerializationError(f"Manifest has an unexpected shape: {path}: {exc}") from exc


async def _in_executor(work: Callable[[], T]) -> T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, work)


def with_position(manifest: Manifest, position: Position) -> Manifest:
    payload = manifest.model_dump()
    payload["last_position"] = position.model_dump()
    try:
        return Manifest.model_validate(payload)
    except ValidationError as exc:
        raise SerializationError(
            f"Position chapter {position.chapter_id}, paragraph {position.paragraph_id} "
            f"does not exist in {manifest.book_id}"
        ) from exc


@dataclass
class _PathLock:
    lock: asyncio.Lock
    users: int = 0


class ManifestStore:
    """JSON persistence for manifests.

    Calls are independent: ``update_last_position`` is a plain load, mutate and
    save with no locking, so two concurrent updates of one path can lose a
    write. Callers that need the cycle to be atomic wrap it in ``locked(path)``.
    Locks belong to the running event loop and are dropped once nobody holds
    or waits on them, so one store can serve several ``asyncio.run`` calls.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._log = logger or logging.getLogger(__name__)
        # event loop -> resolved path -> lock
        self._locks: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()

    @staticmethod
    def _lock_key(path: PathLike) -> str:
        return str(Path(path).resolve())

    @asynccontextmanager
    async def locked(self, path: PathLike) -> AsyncIterator[None]:
        key = self._lock_key(path)
        locks = self._locks.setdefault(asyncio.get_running_loop(), {})
        entry = locks.get(key)
        if entry is None:
            entry = locks[key] = _PathLock(asyncio.Lock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del locks[key]

    async def save(self, path: PathLike, manifest: Manifest) -> None:
        target = Path(path)
        record = await _in_executor(lambda: write_manifest_file(target, manifest))
        self._log.debug("Saved manifest %s to %s at %d.", manifest.book_id, target, record.updated_at)

    async def load_record(self, path: PathLike) -> Optional[ManifestFile]:
        target = Path(path)
        return await _in_executor(lambda: read_manifest_file(target))

    async def load(self, path: PathLike) -> Optional[Manifest]:
        record = await self.load_record(path)
        if record is None:
            self._log.debug("No manifest at %s.", path)
            return None
        return record.manifest

    async def update_last_position(self, path: PathLike, position: Position) -> None:
        manifest = await self.load(path)
        if manifest is None:
            self._log.debug("Ignoring position update for missing manifest %s.", path)
            return
        updated = with_position(manifest, position)
        await self.save(path, updated)

    async def get_last_position(self, path: PathLike) -> Optional[Position]:
        manifest = await self.load(path)
        if manifest is None:
            return None
        return manifest.last_position


async def save_manifest(
    path: PathLike, manifest: Manifest, logger: Optional[logging.Logger] = None
) -> None:
    await ManifestStore(logger).save(path, manifest)


async def load_manifest(
    path: PathLike, logger: Optional[logging.Logger] = None
) -> Optional[Manifest]:
    return await ManifestStore(logger).load(path)


async def update_last_position(
    path: PathLike, position: Position, logger: Optional[logging.Logger] = None
) -> None:
    await ManifestStore(logger).update_last_position(path, position)


async def get_last_position(
    path: PathLike, logger: Optional[logging.Logger] = None
) -> Optional[Position]:
    return await ManifestStore(logger).get_last_position(path)
