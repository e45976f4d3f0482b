"""
Local file store for plan PDFs, thumbnails, drawings and photos.
Objects are addressed by "<bucket>/<name>" paths, mirroring the bucket layout
of the hosted object storage.
"""

import re
import time
from pathlib import Path
from typing import Iterable, List, Optional
from loguru import logger


DEFAULT_BUCKET = "plan-pdfs"

_UNSAFE_CHARS = re.compile(r'[^\w\s.-]', re.ASCII)
_WHITESPACE = re.compile(r'\s+')


def safe_storage_name(filename: str, timestamp_ms: Optional[int] = None) -> str:
    """
    Make a URL-safe storage name: non-ASCII and special characters become
    underscores, whitespace runs become one underscore, and a millisecond
    timestamp is prefixed.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    safe = _UNSAFE_CHARS.sub("_", filename)
    safe = _WHITESPACE.sub("_", safe)
    return f"{timestamp_ms}_{safe}"


class FileStore:
    """Stores binary objects below a root directory."""

    def __init__(self, root_dir: str = "storage", bucket: str = DEFAULT_BUCKET):
        self.root_dir = Path(root_dir)
        self.bucket = bucket
        (self.root_dir / self.bucket).mkdir(exist_ok=True, parents=True)
        self._key_pattern = re.compile(rf'{re.escape(bucket)}/(.+)$')

    def path_for(self, storage_path: str) -> Path:
        """Resolve a stored path to a file below the root directory."""
        match = self._key_pattern.search(storage_path)
        if not match:
            raise ValueError(f"Not a path in bucket {self.bucket}: {storage_path}")

        resolved = (self.root_dir / self.bucket / match.group(1)).resolve()
        bucket_dir = (self.root_dir / self.bucket).resolve()
        if bucket_dir not in resolved.parents:
            raise ValueError(f"Path escapes bucket: {storage_path}")
        return resolved

    def save(self, name: str, data: bytes, folder: Optional[str] = None) -> str:
        """
        Store data under the given name.

        Returns:
            Storage path "<bucket>/[<folder>/]<name>"
        """
        key = f"{folder}/{name}" if folder else name
        storage_path = f"{self.bucket}/{key}"
        target = self.path_for(storage_path)
        if target.exists():
            raise FileExistsError(f"Object already exists: {storage_path}")

        target.parent.mkdir(exist_ok=True, parents=True)
        target.write_bytes(data)

        logger.info(f"Stored {len(data)} bytes at {storage_path}")
        return storage_path

    def read(self, storage_path: str) -> bytes:
        return self.path_for(storage_path).read_bytes()

    def exists(self, storage_path: str) -> bool:
        try:
            return self.path_for(storage_path).exists()
        except ValueError:
            return False

    def remove(self, storage_paths: Iterable[str]) -> List[str]:
        """
        Remove stored objects. Missing or foreign paths are logged and skipped.

        Returns:
            Paths that were actually removed
        """
        removed = []
        for storage_path in storage_paths:
            try:
                target = self.path_for(storage_path)
                target.unlink()
                removed.append(storage_path)
            except (ValueError, FileNotFoundError) as e:
                logger.warning(f"Could not remove {storage_path}: {e}")
        return removed
