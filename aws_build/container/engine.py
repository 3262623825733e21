"""Container engine commands.

This module handles:
- Selecting the container engine program (docker, podman, sudo-docker)
- Composing `image inspect`, `build` and `run` command lines
- Checking for and building images

Output of the engine is never captured; it streams to the caller's
stdout/stderr so build logs reach the user unmodified.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from aws_build.errors import ResolutionError
from aws_build.types import ContainerInvocation

logger = logging.getLogger(__name__)

DEFAULT_CONTAINER_CMD = "docker"

# Engines probed, in order, when no command is configured
AUTO_DETECT_ORDER = ("docker", "podman")


@dataclass(frozen=True)
class ContainerEngine:
    """A container engine invocation prefix, e.g. ``("sudo", "docker")``."""

    program: tuple[str, ...]

    @classmethod
    def from_name(cls, name: str | None) -> ContainerEngine:
        """Create an engine from a user-facing name.

        Args:
            name: ``docker``, ``podman``, ``sudo-docker``, any other program
                name or path, or None to auto-detect.

        Returns:
            ContainerEngine instance.
        """
        if not name:
            return detect_engine()
        if name == "sudo-docker":
            return cls(("sudo", "docker"))
        return cls((name,))

    @property
    def is_podman(self) -> bool:
        """Whether the engine is podman."""
        return Path(self.program[-1]).name == "podman"

    def __str__(self) -> str:
        return " ".join(self.program)


def detect_engine() -> ContainerEngine:
    """Pick the first engine found on PATH, falling back to docker."""
    for name in AUTO_DETECT_ORDER:
        if shutil.which(name):
            logger.debug("Auto-detected container engine: %s", name)
            return ContainerEngine((name,))
    return ContainerEngine((DEFAULT_CONTAINER_CMD,))


def current_user() -> str:
    """Return ``uid:gid`` of the current process."""
    return f"{os.getuid()}:{os.getgid()}"


def compose_image_inspect_command(engine: ContainerEngine, image_tag: str) -> list[str]:
    """Compose the command that checks whether an image exists locally."""
    return [*engine.program, "image", "inspect", image_tag]


def compose_build_command(
    engine: ContainerEngine,
    image_tag: str,
    build_args: Mapping[str, str],
    context_dir: Path,
) -> list[str]:
    """Compose the image build command.

    Args:
        engine: Container engine.
        image_tag: Tag given to the built image.
        build_args: ``--build-arg`` values, emitted in sorted key order.
        context_dir: Build context containing the Dockerfile.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = [*engine.program, "build", "--tag", image_tag]
    for key in sorted(build_args):
        cmd.extend(["--build-arg", f"{key}={build_args[key]}"])
    cmd.append(str(context_dir))
    return cmd


def compose_run_command(
    engine: ContainerEngine,
    invocation: ContainerInvocation,
    user: str,
    entry_command: Sequence[str] = (),
) -> list[str]:
    """Compose the container run command.

    Args:
        engine: Container engine.
        invocation: Assembled mounts, build args and working directory.
        user: ``uid:gid`` the container runs as.
        entry_command: Command run inside the container.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = [*engine.program, "run", "--rm", "--init", "-u", user]

    for mount in invocation.mounts:
        cmd.extend(["-v", mount.arg()])

    for key in sorted(invocation.build_args):
        cmd.extend(["-e", f"{key}={invocation.build_args[key]}"])

    cmd.extend(["-w", invocation.working_dir])
    cmd.append(invocation.image_tag)
    cmd.extend(entry_command)
    return cmd


def image_exists(engine: ContainerEngine, image_tag: str) -> bool:
    """Check whether the engine has an image with this tag.

    Raises:
        ResolutionError: If the engine cannot be executed.
    """
    cmd = compose_image_inspect_command(engine, image_tag)
    logger.debug("Checking for image: %s", shlex.join(cmd))
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError as e:
        raise ResolutionError(
            f"Failed to run container engine {engine}: {e}",
            code="engine_not_found",
        ) from e
    return result.returncode == 0


def build_image(
    engine: ContainerEngine,
    image_tag: str,
    build_args: Mapping[str, str],
    context_dir: Path,
) -> None:
    """Build an image, streaming the engine output.

    Raises:
        ResolutionError: If the build cannot start or exits non-zero.
    """
    cmd = compose_build_command(engine, image_tag, build_args, context_dir)
    logger.info("Building image: %s", shlex.join(cmd))
    try:
        result = subprocess.run(cmd, check=False)
    except OSError as e:
        raise ResolutionError(
            f"Failed to run container engine {engine}: {e}",
            code="engine_not_found",
        ) from e

    if result.returncode != 0:
        raise ResolutionError(
            f"Image build for {image_tag} failed with exit code {result.returncode}",
            exit_code=result.returncode,
            code="image_build_failed",
        )


__all__ = [
    "AUTO_DETECT_ORDER",
    "DEFAULT_CONTAINER_CMD",
    "ContainerEngine",
    "build_image",
    "compose_build_command",
    "compose_image_inspect_command",
    "compose_run_command",
    "current_user",
    "detect_engine",
    "image_exists",
]
