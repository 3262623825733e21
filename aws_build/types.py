"""Shared type definitions for aws_build.

This module contains enums and dataclasses shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from aws_build.errors import ConfigError

DEFAULT_RUST_VERSION = "stable"


class BuildMode(str, Enum):
    """Target runtime for a build."""

    AL2 = "al2"
    LAMBDA = "lambda"

    @property
    def base_image(self) -> str:
        """Container image the build image is derived from."""
        if self is BuildMode.AL2:
            # https://hub.docker.com/_/amazonlinux
            return "docker.io/amazonlinux:2"
        # https://github.com/lambci/docker-lambda#documentation
        return "docker.io/lambci/lambda:build-provided.al2"


class Relabel(str, Enum):
    """SELinux relabeling applied to bind mounts."""

    SHARED = "shared"
    UNSHARED = "unshared"

    @property
    def mount_option(self) -> str:
        """Volume option understood by docker and podman."""
        return "z" if self is Relabel.SHARED else "Z"


@dataclass(frozen=True)
class BuildRequest:
    """Everything needed to run one build.

    Attributes:
        project_path: Absolute path of the crate to build.
        code_root: Absolute path mounted into the container; must contain
            project_path.
        mode: Target runtime.
        output_root: Directory receiving artifacts and latest pointers.
        cache_root: Directory holding the shared cargo caches.
        container_cmd: Container engine command name (None = auto-detect).
        rust_version: Toolchain passed to rustup.
        binary_names: Binary targets to build (empty = discover).
        extra_packages: yum packages installed in the build image.
        repo_url: Upstream repository for the build image (None = bundled).
        revision: Branch, tag or commit of repo_url.
        strip: Strip debug symbols from the compiled binary.
        relabel: SELinux relabel option for mounts.
    """

    project_path: Path
    code_root: Path
    mode: BuildMode
    output_root: Path
    cache_root: Path
    container_cmd: str | None = None
    rust_version: str = DEFAULT_RUST_VERSION
    binary_names: tuple[str, ...] = ()
    extra_packages: frozenset[str] = frozenset()
    repo_url: str | None = None
    revision: str = "HEAD"
    strip: bool = False
    relabel: Relabel | None = None

    def relative_project_path(self) -> Path:
        """Return project_path relative to code_root.

        Raises:
            ConfigError: If project_path is not inside code_root.
        """
        try:
            return self.project_path.relative_to(self.code_root)
        except ValueError:
            raise ConfigError(
                f"Project path {self.project_path} must be within the code root "
                f"{self.code_root}",
                code="project_outside_code_root",
            ) from None


@dataclass(frozen=True)
class ContainerImage:
    """A locally available build image."""

    repo_url: str | None
    revision: str
    local_tag: str
    built: bool = False


@dataclass(frozen=True)
class VolumeMount:
    """A bind mount from the host into the container."""

    host_path: Path
    container_path: str
    read_only: bool = False
    options: tuple[str, ...] = ()

    def arg(self) -> str:
        """Render as the value of a ``-v`` flag."""
        opts = ["ro" if self.read_only else "rw", *self.options]
        return f"{self.host_path}:{self.container_path}:{','.join(opts)}"


@dataclass(frozen=True)
class ContainerInvocation:
    """A fully assembled container run."""

    image_tag: str
    mounts: tuple[VolumeMount, ...]
    build_args: dict[str, str] = field(default_factory=dict)
    working_dir: str = "/code"


@dataclass
class BuildArtifact:
    """Information about a packaged artifact."""

    binary_name: str
    source_binary_path: Path
    output_path: Path
    fingerprint: str
    created_at: datetime
    mode: BuildMode
    size_bytes: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "binary_name": self.binary_name,
            "source_binary_path": str(self.source_binary_path),
            "output_path": str(self.output_path),
            "fingerprint": self.fingerprint,
            "created_at": self.created_at.isoformat(),
            "mode": self.mode.value,
            "size_bytes": self.size_bytes,
        }


__all__ = [
    "DEFAULT_RUST_VERSION",
    "BuildArtifact",
    "BuildMode",
    "BuildRequest",
    "ContainerImage",
    "ContainerInvocation",
    "Relabel",
    "VolumeMount",
]
