"""Key-value blob storage for save slots.

The persistence layer only needs three operations: get, set and remove
on opaque string blobs. Two stores are provided:

    MemoryBlobStore — a dict; used by tests and ephemeral servers.
    FileBlobStore   — one file per key under a configurable base directory.

Directory layout of FileBlobStore:

    {base}/
      saves/
        {slug}.json   ← raw blob for one slot key
"""

from __future__ import annotations

import logging
import re
import unicodedata
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


def slugify(key: str) -> str:
    """Convert a slot key to a filesystem-safe slug.

    "xianxia_save_v2" → "xianxia-save-v2"
    """
    text = unicodedata.normalize("NFKD", key)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"['\"]", "", text)
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")
    return text or "untitled"


class MemoryBlobStore:
    def __init__(self) -> None:
        self._blobs: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._blobs.get(key)

    def set(self, key: str, value: str) -> None:
        self._blobs[key] = value

    def remove(self, key: str) -> None:
        self._blobs.pop(key, None)


class FileBlobStore:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._saves = base_path / "saves"
        self._saves.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self._saves / f"{slugify(key)}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        # Atomic replace: readers never see a partial blob
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)
        logger.debug("blob written key=%s bytes=%d", key, len(value))

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
