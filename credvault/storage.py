"""Centralized file I/O operations.

Provides JSON loading, crash-safe atomic JSON writes and an exclusive
per-file session lock. All vault files get owner-only permissions on
Unix systems.
"""

import json
import logging
import os
import stat
import sys
import tempfile
from typing import Optional

from credvault.errors import CorruptVault, StorageIOFailure, VaultInUse

if sys.platform == "win32":
    import msvcrt
    fcntl = None
else:
    import fcntl
    msvcrt = None

logger = logging.getLogger(__name__)

# Secure file permission: owner read/write only (0600 in octal)
SECURE_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR


def _set_secure_permissions(filepath: str) -> None:
    """Set mode 0600 on a file. No-op on Windows, which uses ACLs."""
    if sys.platform == "win32":
        return
    try:
        os.chmod(filepath, SECURE_FILE_MODE)
    except OSError as e:
        logger.warning("Could not restrict permissions on %s: %s", filepath, e)


def _fsync_directory(directory: str) -> None:
    """Flush a directory entry so a completed rename survives a crash."""
    if sys.platform == "win32":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def ensure_parent_directory(filepath: str) -> None:
    """Create the directory holding ``filepath`` if it doesn't exist.

    On Unix systems, directories are created with mode 0700 (owner only).
    """
    directory = os.path.dirname(os.path.abspath(filepath))
    try:
        if sys.platform != "win32":
            os.makedirs(directory, mode=0o700, exist_ok=True)
        else:
            os.makedirs(directory, exist_ok=True)
    except OSError as e:
        raise StorageIOFailure(f"Failed to create {directory}: {e}") from e


def file_exists(filepath: str) -> bool:
    """Check if file exists."""
    return os.path.exists(filepath)


def load_json(filepath: str) -> Optional[dict]:
    """Load a JSON object from file.

    Returns:
        Parsed JSON object, or None if the file doesn't exist

    Raises:
        CorruptVault: If the file exists but is not a JSON object
        StorageIOFailure: If the file cannot be read
    """
    if not os.path.exists(filepath):
        return None

    try:
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CorruptVault(f"Invalid JSON in {filepath}: {e}") from e
    except OSError as e:
        raise StorageIOFailure(f"Failed to read {filepath}: {e}") from e

    if not isinstance(data, dict):
        raise CorruptVault(f"Unexpected top-level JSON type in {filepath}")
    return data


def write_json_synced(filepath: str, data: dict) -> None:
    """Write JSON to ``filepath`` and fsync it, without any rename.

    Used for staging files that are renamed into place later.

    Raises:
        StorageIOFailure: If the write fails
    """
    try:
        fd = os.open(filepath, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, SECURE_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        _set_secure_permissions(filepath)
    except OSError as e:
        raise StorageIOFailure(f"Failed to write {filepath}: {e}") from e


def save_json_atomic(filepath: str, data: dict) -> None:
    """Atomically replace ``filepath`` with JSON ``data``.

    Writes to a temporary file in the same directory, fsyncs it, then
    renames it over the target. Readers see either the old or the new
    content, never a partial file.

    Raises:
        StorageIOFailure: If any step fails (the target is left untouched)
    """
    directory = os.path.dirname(os.path.abspath(filepath))
    try:
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{os.path.basename(filepath)}.", suffix=".tmp", dir=directory
        )
    except OSError as e:
        raise StorageIOFailure(f"Failed to create temp file for {filepath}: {e}") from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        _set_secure_permissions(tmp_path)
        os.replace(tmp_path, filepath)
        _fsync_directory(directory)
    except OSError as e:
        try:
            os.remove(tmp_path)
        except OSError:
            pass
        raise StorageIOFailure(f"Failed to write {filepath}: {e}") from e


def replace_file(source: str, target: str) -> None:
    """Atomically rename ``source`` over ``target``."""
    try:
        os.replace(source, target)
        _fsync_directory(os.path.dirname(os.path.abspath(target)))
    except OSError as e:
        raise StorageIOFailure(f"Failed to move {source} to {target}: {e}") from e


def delete_file(filepath: str) -> bool:
    """Delete a file if it exists.

    Returns:
        True if file was deleted, False if it didn't exist
    """
    try:
        os.remove(filepath)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        raise StorageIOFailure(f"Failed to delete {filepath}: {e}") from e


class FileLock:
    """Exclusive, non-blocking lock on ``<path>.lock`` for one session.

    Usage:
        with FileLock(vault_path):
            ...  # no other FileLock on vault_path can be acquired here

    Raises VaultInUse from acquire() if another holder has the lock.
    """

    def __init__(self, path: str):
        self.lock_path = f"{path}.lock"
        self._fd: Optional[int] = None

    @property
    def is_held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        if self._fd is not None:
            return
        try:
            fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, SECURE_FILE_MODE)
        except OSError as e:
            raise StorageIOFailure(f"Failed to open lock file {self.lock_path}: {e}") from e

        try:
            if msvcrt is not None:
                msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
            else:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            os.close(fd)
            raise VaultInUse(f"Vault is already open elsewhere ({self.lock_path})") from e
        self._fd = fd

    def release(self) -> None:
        """Release the lock. Idempotent and never raises."""
        fd, self._fd = self._fd, None
        if fd is None:
            return
        try:
            if msvcrt is not None:
                os.lseek(fd, 0, os.SEEK_SET)
                msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
            else:
                fcntl.flock(fd, fcntl.LOCK_UN)
        except OSError as e:
            logger.warning("Failed to unlock %s: %s", self.lock_path, e)
        finally:
            os.close(fd)

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
