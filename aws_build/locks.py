"""File-based locking.

Used to serialize image builds for the same tag and container builds of
the same project and mode across processes.
"""

from __future__ import annotations

import fcntl
import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

LOCK_POLL_INTERVAL = 0.1


def lock_file_name(name: str) -> str:
    """Sanitize a lock name for use as a file name."""
    return name.replace("/", "_").replace(":", "_") + ".lock"


@contextmanager
def file_lock(
    lock_dir: Path,
    name: str,
    timeout: float | None = None,
) -> Iterator[Path]:
    """Acquire an exclusive lock named ``name`` in ``lock_dir``.

    Args:
        lock_dir: Directory holding lock files (created if missing).
        name: Lock name.
        timeout: Lock acquisition timeout in seconds (None = blocking).

    Yields:
        Path of the lock file once the lock is held.

    Raises:
        TimeoutError: If lock cannot be acquired within timeout.
    """
    lock_dir.mkdir(parents=True, exist_ok=True)
    lock_path = lock_dir / lock_file_name(name)

    logger.debug("Acquiring lock %s", lock_path)

    fd = os.open(str(lock_path), os.O_RDWR | os.O_CREAT, 0o600)
    try:
        if timeout is not None:
            start = time.monotonic()
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError as e:
                    if time.monotonic() - start >= timeout:
                        raise TimeoutError(f"Timeout waiting for lock {name}") from e
                    time.sleep(LOCK_POLL_INTERVAL)
        else:
            fcntl.flock(fd, fcntl.LOCK_EX)

        logger.debug("Lock acquired %s", lock_path)
        yield lock_path
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)
        logger.debug("Lock released %s", lock_path)


__all__ = ["LOCK_POLL_INTERVAL", "file_lock", "lock_file_name"]
