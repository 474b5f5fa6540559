"""Process-wide advisory lock around check-then-act sequences.

Two nfmini invocations racing between a ``-C`` check and the matching
``-A``/``-D`` can produce duplicate rules or failed deletes. Mutating
commands take this lock for their whole sequence.
"""

import fcntl
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from nfmini.core.exceptions import LockError


@contextmanager
def advisory_lock(path: Path) -> Generator[Path, None, None]:
    """Hold an exclusive flock on ``path`` for the duration of the block.

    Args:
        path: Lock file (created if missing)

    Raises:
        LockError: If the lock is held elsewhere or the file can't be opened
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
    except OSError as e:
        raise LockError(
            f"Cannot open lock file {path}: {e.strerror or e}",
            hint="Run as root, or change lock.path in the configuration",
        ) from e

    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise LockError(
                "Another nfmini command is running",
                hint=f"Wait for it to finish (lock: {path})",
            )
        try:
            os.ftruncate(fd, 0)
            os.write(fd, f"{os.getpid()}\n".encode())
            yield path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)
