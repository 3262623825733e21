"""Container runner for executing the in-container cargo build.

This module handles:
- Running the assembled container invocation as a blocking subprocess
- Forwarding termination signals to the container engine
- Enforcing an optional build timeout
- Podman ownership fix-ups for writable mounts

The child inherits stdout/stderr, so the compiler log streams to the
user as-is. There are no retries: a failed build raises BuildFailed.
"""

from __future__ import annotations

import logging
import shlex
import signal
import subprocess
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from aws_build.container.engine import (
    ContainerEngine,
    compose_run_command,
    current_user,
)
from aws_build.errors import BuildFailed
from aws_build.types import ContainerInvocation

logger = logging.getLogger(__name__)

# Script installed in the build image that runs `cargo build --release`
ENTRY_COMMAND = ("/build.sh",)

FORWARDED_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


@contextmanager
def forward_signals(proc: subprocess.Popen[bytes]) -> Iterator[None]:
    """Forward SIGTERM and SIGHUP received by this process to ``proc``.

    Handlers can only be installed from the main thread; elsewhere this
    is a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _forward(signum: int, frame: object) -> None:
        logger.debug("Forwarding signal %d to container engine", signum)
        proc.send_signal(signum)

    previous = {sig: signal.signal(sig, _forward) for sig in FORWARDED_SIGNALS}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _podman_chown(engine: ContainerEngine, user: str, directory: Path) -> None:
    cmd = [*engine.program, "unshare", "chown", "--recursive", user, str(directory)]
    logger.debug("Setting ownership: %s", shlex.join(cmd))
    result = subprocess.run(cmd, check=False)
    if result.returncode != 0:
        raise BuildFailed(
            f"Failed to set ownership of {directory} (exit code {result.returncode})",
            exit_code=result.returncode,
            code="permission_error",
        )


@contextmanager
def podman_ownership(
    engine: ContainerEngine,
    directories: Sequence[Path],
    user: str,
) -> Iterator[None]:
    """Hand writable directories to the container user for a podman run.

    Rootless podman maps the host user to root inside the user namespace,
    so the directories are chowned to ``user`` before the run and back to
    ``root:root`` (the host user) afterwards.
    """
    if not engine.is_podman:
        yield
        return

    for directory in directories:
        _podman_chown(engine, user, directory)
    try:
        yield
    except BaseException:
        for directory in directories:
            try:
                _podman_chown(engine, "root:root", directory)
            except BuildFailed as e:
                logger.error("Failed to reset permissions: %s", e)
        raise
    for directory in directories:
        _podman_chown(engine, "root:root", directory)


def run_container(
    engine: ContainerEngine,
    invocation: ContainerInvocation,
    writable_dirs: Sequence[Path] = (),
    timeout: int | None = None,
    entry_command: Sequence[str] = ENTRY_COMMAND,
) -> int:
    """Run the build container and wait for it to exit.

    Args:
        engine: Container engine.
        invocation: Assembled container invocation.
        writable_dirs: Host directories the container writes to.
        timeout: Build timeout in seconds (None = no timeout).
        entry_command: Command run inside the container.

    Returns:
        The exit status (always 0, failures raise).

    Raises:
        BuildFailed: If the engine cannot start, times out, or exits non-zero.
    """
    user = current_user()
    cmd = compose_run_command(engine, invocation, user, entry_command)
    logger.info("Running build: %s", shlex.join(cmd))
    logger.info("Working directory in container: %s", invocation.working_dir)

    with podman_ownership(engine, writable_dirs, user):
        try:
            proc = subprocess.Popen(cmd)
        except OSError as e:
            raise BuildFailed(
                f"Failed to run container engine {engine}: {e}",
                exit_code=None,
                code="execution_error",
            ) from e

        with forward_signals(proc):
            try:
                exit_code = proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired as e:
                proc.kill()
                proc.wait()
                raise BuildFailed(
                    f"Build timed out after {timeout} seconds",
                    exit_code=-1,
                    code="build_timeout",
                ) from e
            except KeyboardInterrupt:
                # The terminal delivers SIGINT to the engine too; let it stop
                proc.wait()
                raise

    if exit_code != 0:
        logger.error("Container build failed with exit code %d", exit_code)
        raise BuildFailed(
            f"Container build failed with exit code {exit_code}",
            exit_code=exit_code,
        )
    return exit_code


__all__ = [
    "ENTRY_COMMAND",
    "FORWARDED_SIGNALS",
    "forward_signals",
    "podman_ownership",
    "run_container",
]
