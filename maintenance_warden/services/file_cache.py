"""Maintenance file cache.

Holds the last successfully read maintenance page. The file is re-read only
when its modification time moves forward; a failed reload keeps the previous
content servable.
"""

from __future__ import annotations

import stat
from dataclasses import dataclass
from pathlib import Path

from maintenance_warden.logging_config import WardenLogger
from maintenance_warden.utils.errors import ErrorCode, MaintenanceFileError
from maintenance_warden.utils.rwlock import ReadWriteLock


@dataclass(frozen=True)
class FileCacheEntry:
    """Content of the maintenance file and the mtime it was read at."""

    content: bytes
    modified_ns: int


class FileCache:
    """Lazily reloaded copy of a maintenance file.

    Readers share the lock; a reload takes it exclusively only to swap the
    entry, never while reading from disk.
    """

    def __init__(self, path: Path | str, logger: WardenLogger | None = None):
        self._path = Path(path)
        self._logger = logger or WardenLogger()
        self._lock = ReadWriteLock()
        self._entry: FileCacheEntry | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def has_content(self) -> bool:
        with self._lock.read_locked():
            return self._entry is not None

    @property
    def last_modified_ns(self) -> int | None:
        with self._lock.read_locked():
            return self._entry.modified_ns if self._entry else None

    def load(self) -> bool:
        """Reload the file if it changed on disk.

        Returns:
            True if new content was installed, False if the cached copy is
            still current.

        Raises:
            MaintenanceFileError: The file is missing, not a regular file,
                unreadable or empty. The cached entry is left untouched.
        """
        try:
            file_stat = self._path.stat()
        except OSError as e:
            raise MaintenanceFileError(
                self._path, f"error accessing maintenance file: {e}"
            ) from e

        if stat.S_ISDIR(file_stat.st_mode):
            raise MaintenanceFileError(
                self._path, f"maintenance file is a directory: {self._path}"
            )

        with self._lock.read_locked():
            current = self._entry

        # Only reload if the file is newer than what we hold
        if current is not None and file_stat.st_mtime_ns <= current.modified_ns:
            return False

        try:
            content = self._read()
        except OSError as e:
            raise MaintenanceFileError(
                self._path, f"error reading maintenance file: {e}"
            ) from e

        if not content:
            raise MaintenanceFileError(
                self._path,
                f"maintenance file is empty: {self._path}",
                code=ErrorCode.FILE_EMPTY,
            )

        entry = FileCacheEntry(content=content, modified_ns=file_stat.st_mtime_ns)
        with self._lock.write_locked():
            # Another request may have installed the same or a newer version
            if self._entry is not None and self._entry.modified_ns >= entry.modified_ns:
                return False
            self._entry = entry

        self._logger.info(
            "maintenance_file_loaded",
            path=str(self._path),
            size=len(content),
        )
        return True

    def snapshot(self) -> bytes:
        """Return the cached maintenance page.

        Raises:
            MaintenanceFileError: Nothing was ever loaded.
        """
        with self._lock.read_locked():
            entry = self._entry
        if entry is None:
            raise MaintenanceFileError(
                self._path,
                f"maintenance file was never loaded: {self._path}",
                code=ErrorCode.FILE_NOT_LOADED,
            )
        return entry.content

    def _read(self) -> bytes:
        return self._path.read_bytes()
