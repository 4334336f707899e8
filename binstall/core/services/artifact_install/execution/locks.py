"""
L4 Execution — Per-destination exclusive locks.

Two pipelines writing the same ``bin`` directory must not interleave
file placement and symlink creation.  Locks are keyed by the resolved
destination path and live for the whole process.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

_dest_locks: dict[str, threading.Lock] = {}
_dest_locks_guard = threading.Lock()


def _get_dest_lock(key: str) -> threading.Lock:
    """Get or create the lock for one destination."""
    with _dest_locks_guard:
        if key not in _dest_locks:
            _dest_locks[key] = threading.Lock()
        return _dest_locks[key]


def lock_key(path: Path) -> str:
    return str(path.expanduser().resolve())


@contextmanager
def destination_lock(path: Path) -> Iterator[None]:
    """Hold the exclusive lock for ``path`` for the ``with`` body."""
    lock = _get_dest_lock(lock_key(path))
    with lock:
        yield
