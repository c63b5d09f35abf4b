"""
Named advisory file locks shared between agent processes.
"""
import fcntl
import logging
import os
import time
from contextlib import contextmanager
from typing import Optional

from ..errors import LockTimeoutError


logger = logging.getLogger(__name__)

MAX_BACKOFF = 0.5


class FileLock:
    """
    Exclusive OS-level lock on ``{lock_dir}/{name}.lock`` using fcntl.flock.

    The lock file is never removed, so every waiter locks the same inode.
    """

    def __init__(self, lock_dir: str, name: str, timeout: float = 10.0,
                 poll_interval: float = 0.05):
        """
        Initialize file lock.

        Args:
            lock_dir: Directory holding the lock files
            name: Name of the protected resource
            timeout: Maximum time to wait for lock acquisition (seconds)
            poll_interval: First retry delay; doubles up to MAX_BACKOFF
        """
        self.name = name
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.lock_file_path = os.path.join(lock_dir, f"{name}.lock")
        self.lock_fd = None

    @property
    def locked(self) -> bool:
        return self.lock_fd is not None

    def acquire(self, blocking: bool = True) -> bool:
        """
        Acquire the file lock.

        Args:
            blocking: If True, retry with backoff up to timeout. If False, try once.

        Returns:
            True if lock acquired, False otherwise
        """
        if self.lock_fd is not None:
            # Already have the lock
            return True

        os.makedirs(os.path.dirname(self.lock_file_path), exist_ok=True)
        self.lock_fd = open(self.lock_file_path, 'a')

        deadline = time.monotonic() + self.timeout
        delay = self.poll_interval
        while True:
            try:
                fcntl.flock(self.lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return True
            except BlockingIOError:
                remaining = deadline - time.monotonic()
                if not blocking or remaining <= 0:
                    self.lock_fd.close()
                    self.lock_fd = None
                    return False
                time.sleep(min(delay, remaining))
                delay = min(delay * 2, MAX_BACKOFF)

    def release(self):
        """Release the file lock."""
        if self.lock_fd is not None:
            try:
                fcntl.flock(self.lock_fd, fcntl.LOCK_UN)
                self.lock_fd.close()
            finally:
                self.lock_fd = None

    def __enter__(self):
        if not self.acquire():
            logger.warning("Timed out after %.2fs waiting for lock %s", self.timeout, self.name)
            raise LockTimeoutError(self.name, self.timeout)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    def __del__(self):
        self.release()


@contextmanager
def file_lock(lock_dir: str, name: str, timeout: float = 10.0,
              poll_interval: Optional[float] = None):
    """
    Context manager for a named lock.

    Usage:
        with file_lock(paths.locks_dir, 'tasks'):
            # Exclusive access to tasks.json
            ...
    """
    lock = FileLock(lock_dir, name, timeout,
                    poll_interval if poll_interval is not None else 0.05)
    with lock:
        yield lock
