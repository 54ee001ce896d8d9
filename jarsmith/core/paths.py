"""Path-scoped locking and staged writes for files shared between tasks."""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator
import os
import tempfile
import threading

_PATH_LOCKS: Dict[Path, threading.RLock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def path_lock(path: Path) -> threading.RLock:
    """Process-wide lock serializing every writer of ``path``."""

    key = path.resolve()
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = _PATH_LOCKS[key] = threading.RLock()
        return lock


@contextmanager
def staged_file(target: Path) -> Iterator[Path]:
    """Yield a temporary sibling of ``target`` that replaces it on success.

    On any failure the temporary file is removed and ``target`` keeps its
    previous content.
    """

    target.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(dir=target.parent, prefix=f".{target.name}.", delete=False) as handle:
        staging = Path(handle.name)
    try:
        yield staging
        with path_lock(target):
            os.replace(staging, target)
    except BaseException:
        staging.unlink(missing_ok=True)
        raise


__all__ = ["path_lock", "staged_file"]
