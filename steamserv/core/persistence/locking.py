"""
State file lock — advisory exclusive access across processes.

Every mutating registry operation runs inside ``StateLock.hold()``. A second
process blocks for at most ``timeout`` seconds and then gets
``RegistryLockedError``; ``timeout=0`` fails fast. The lock is released
on every exit path, including exceptions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout

from steamserv.core.errors import RegistryLockedError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 10.0


def lock_path_for(state_path: Path) -> Path:
    """The lock file that guards a state file."""
    return state_path.with_name(state_path.name + ".lock")


class StateLock:
    """Reentrant advisory lock for one state file.

    Reentrant within one instance, so a registry method that already
    holds the lock may call another locked method.
    """

    def __init__(self, state_path: Path, timeout: float = DEFAULT_LOCK_TIMEOUT):
        self._path = lock_path_for(state_path)
        self._timeout = timeout
        self._lock: FileLock | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def is_locked(self) -> bool:
        return self._lock is not None and self._lock.is_locked

    def _file_lock(self) -> FileLock:
        if self._lock is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._lock = FileLock(str(self._path))
        return self._lock

    @contextmanager
    def hold(self) -> Iterator[None]:
        """Acquire for the duration of the ``with`` block."""
        lock = self._file_lock()
        try:
            lock.acquire(timeout=self._timeout)
        except Timeout as e:
            logger.warning("State file lock %s busy after %.1fs", self._path, self._timeout)
            raise RegistryLockedError(
                f"State file is locked by another steamserv process ({self._path}). "
                f"Gave up after {self._timeout:g}s."
            ) from e
        try:
            yield
        finally:
            lock.release()
