"""Keyed byte storage for flow artifacts."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from settings import get_settings


class ObjectBucket:
    """Byte objects addressed by ``/``-separated keys.

    With a ``root_path`` every object is mirrored to a file and files written
    by other processes are picked up: listing walks the directory, and
    contents are read on first access only. Without one the bucket lives in
    memory.
    """

    def __init__(self, name: str, root_path: Optional[Path] = None) -> None:
        self.name = name
        self.root_path = root_path
        self._loaded: Dict[str, bytes] = {}
        self._lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root_path.joinpath(*key.split("/"))

    def put_object(self, key: str, data: bytes) -> None:
        with self._lock:
            if self.root_path:
                path = self._path(key)
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)
            self._loaded[key] = data

    def get_object(self, key: str) -> bytes:
        with self._lock:
            if key in self._loaded:
                return self._loaded[key]
            path = self._path(key) if self.root_path else None
            if path is None or not path.is_file():
                raise KeyError(f"Object with key {key!r} not found in bucket {self.name!r}.")
            data = self._loaded[key] = path.read_bytes()
            return data

    def list_objects(self, prefix: str = "") -> List[str]:
        """Return the sorted keys starting with ``prefix`` without reading them."""
        with self._lock:
            keys = {key for key in self._loaded if key.startswith(prefix)}
        if self.root_path:
            # Only the directory holding the prefix needs walking.
            directory, _, _ = prefix.rpartition("/")
            base = self._path(directory) if directory else self.root_path
            if base.is_dir():
                for path in base.rglob("*"):
                    key = path.relative_to(self.root_path).as_posix()
                    if path.is_file() and key.startswith(prefix):
                        keys.add(key)
        return sorted(keys)


@lru_cache
def build_default_bucket(
    name: Optional[str] = None,
    root_path: Optional[str] = None,
) -> ObjectBucket:
    settings = get_settings()
    bucket_name = settings.flow_bucket_name if name is None else name
    bucket_root = settings.flow_bucket_root_path if root_path is None else root_path
    return ObjectBucket(name=bucket_name, root_path=Path(bucket_root) if bucket_root else None)
