"""
Atomic JSON file transport over a shared directory.

Every write goes to a temporary file in the target's directory and is then
renamed over the target, so readers only ever see a complete document.
Read-modify-write cycles on shared files take a named lock via ``lock()``.
"""
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Optional, Union

from .file_lock import FileLock


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class FileTransport:
    """JSON reads/writes plus named locks kept in ``lock_dir``."""

    def __init__(self, lock_dir: PathLike, lock_timeout: float = 10.0,
                 lock_poll_interval: float = 0.05):
        self.lock_dir = Path(lock_dir)
        self.lock_timeout = lock_timeout
        self.lock_poll_interval = lock_poll_interval

    def ensure_dir(self, path: PathLike) -> Path:
        """Create ``path`` and its parents if missing. Idempotent."""
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def read_json(self, path: PathLike) -> Optional[Any]:
        """
        Read a JSON document.

        Returns:
            The decoded value, or None if the file does not exist
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            return None

    def write_json(self, path: PathLike, value: Any):
        """Atomically replace ``path`` with the JSON encoding of ``value``."""
        path = Path(path)
        self.ensure_dir(path.parent)
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            with open(tmp, 'w', encoding='utf-8') as f:
                json.dump(value, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            try:
                os.remove(tmp)
            except OSError:
                pass
            raise

    def exists(self, path: PathLike) -> bool:
        return Path(path).exists()

    def lock(self, name: str) -> FileLock:
        """
        Named exclusive lock for a read-modify-write cycle.

        Usage:
            with transport.lock('tasks'):
                state = transport.read_json(tasks_path)
                ...
                transport.write_json(tasks_path, state)

        Raises:
            LockTimeoutError: on entry, if the lock is not acquired in time
        """
        return FileLock(str(self.lock_dir), name, self.lock_timeout,
                        self.lock_poll_interval)
