# leadsync/lock.py
"""
Per-stage single-instance guard.

    with stage_lock("verify", lock_dir):
        ...

Takes a non-blocking exclusive advisory lock on <lock_dir>/leadsync-<stage>.lock.
A second invocation of the same stage fails fast with StageAlreadyRunningError
instead of queueing. The lock is released (and the file removed) on every
exit path, including exceptions. The OS drops the lock if the process dies.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from leadsync.exceptions import StageAlreadyRunningError

if os.name == "nt":  # pragma: no cover - exercised on Windows only
    import msvcrt

    def _try_lock(fd: int) -> bool:
        try:
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
        except OSError:
            return False
        return True

    def _unlock(fd: int) -> None:
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _try_lock(fd: int) -> bool:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    def _unlock(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_UN)


def lock_path_for(stage: str, lock_dir: str | Path) -> Path:
    return Path(lock_dir) / f"leadsync-{stage}.lock"


@contextmanager
def stage_lock(stage: str, lock_dir: str | Path) -> Iterator[Path]:
    path = lock_path_for(stage, lock_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    if not _try_lock(fd) or not _same_file(fd, path):
        os.close(fd)
        raise StageAlreadyRunningError(stage, str(path))

    try:
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        yield path
    finally:
        if os.name == "nt":  # pragma: no cover
            _unlock(fd)
            os.close(fd)
            _remove(path)
        else:
            # Unlink while still holding the lock; see _same_file().
            _remove(path)
            _unlock(fd)
            os.close(fd)


def _same_file(fd: int, path: Path) -> bool:
    """
    True if `path` still names the file we locked. A run that opened the
    file just before its previous holder unlinked it must not proceed.
    """
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return False
    own = os.fstat(fd)
    return (own.st_dev, own.st_ino) == (st.st_dev, st.st_ino)


def _remove(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


__all__ = ["lock_path_for", "stage_lock"]
