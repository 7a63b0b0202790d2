"""Local slot caches.

FileSlotCache keeps one file per slot under a cache directory, so a
reviewer's ratings survive a restart without any server. MemorySlotCache
backs ephemeral sessions and tests.

Slot files hold whatever bytes the caller hands in; the core writes JSON.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import threading
from pathlib import Path

from callrate_store.base import BaseSlotCache

logger = logging.getLogger(__name__)

_SLOT_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


def _check_slot(slot: str) -> str:
    if not _SLOT_NAME.match(slot):
        raise ValueError(f"Invalid cache slot name: {slot!r}")
    return slot


class FileSlotCache(BaseSlotCache):
    """Stores each slot as ``<cache_dir>/<slot>.json``.

    The directory is created lazily on the first write, so constructing the
    cache has no side effects. Writes go to a temporary file that is then
    renamed over the slot, so a crash mid-write never leaves a truncated
    blob behind.
    """

    def __init__(self, cache_dir: str | os.PathLike = ".callrate/cache"):
        self._dir = Path(cache_dir)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, slot: str) -> Path:
        return self._dir / f"{_check_slot(slot)}.json"

    def read(self, slot: str) -> bytes | None:
        path = self._path(slot)
        if not path.exists():
            return None
        return path.read_bytes()

    def write(self, slot: str, data: bytes) -> None:
        path = self._path(slot)
        self._dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(mode="wb", dir=self._dir, prefix=f".{slot}.", delete=False) as tmp:
            tmp.write(data)
            tmp_path = tmp.name
        try:
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
        logger.debug("Wrote %d bytes to cache slot %s", len(data), slot)


class MemorySlotCache(BaseSlotCache):
    """Keeps slots in a dict for the lifetime of the object."""

    def __init__(self, initial: dict[str, bytes] | None = None):
        self._slots: dict[str, bytes] = dict(initial or {})
        self._lock = threading.Lock()

    def read(self, slot: str) -> bytes | None:
        with self._lock:
            return self._slots.get(_check_slot(slot))

    def write(self, slot: str, data: bytes) -> None:
        with self._lock:
            self._slots[_check_slot(slot)] = bytes(data)
