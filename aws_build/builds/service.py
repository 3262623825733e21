"""Build service module.

This module provides the high-level build API:
- create_build_request(): Turn CLI/config input into a validated BuildRequest
- run_build(): Main entry point - resolve image, assemble, run, package
- Locking to prevent concurrent builds of the same project and mode

The pipeline is strictly sequential and stops at the first error.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from aws_build.builds.assembler import (
    assemble,
    compiled_binary_path,
    host_cache_dirs,
    image_build_args,
    writable_cache_dirs,
)
from aws_build.builds.cargo import list_binary_targets, select_binaries
from aws_build.builds.packager import package_artifact
from aws_build.builds.pointers import pointer_for_mode
from aws_build.config import get_settings
from aws_build.container.engine import ContainerEngine
from aws_build.container.runner import run_container
from aws_build.errors import BuildLockError, ConfigError
from aws_build.image.service import resolve_image
from aws_build.locks import file_lock
from aws_build.types import BuildArtifact, BuildMode, BuildRequest, ContainerImage, Relabel

if TYPE_CHECKING:
    from aws_build.config import Settings

logger = logging.getLogger(__name__)

# Default artifact output root, relative to the project
DEFAULT_OUTPUT_SUBDIR = Path("target") / "aws-build"


@dataclass
class BuildOutput:
    """Result of a successful build.

    Attributes:
        artifacts: Packaged artifacts, one per binary target.
        pointer_path: Path of the latest-<mode> pointer.
        image: Build image that was used.
    """

    artifacts: list[BuildArtifact] = field(default_factory=list)
    pointer_path: Path | None = None
    image: ContainerImage | None = None

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "image": self.image.local_tag if self.image else None,
            "pointer_path": str(self.pointer_path) if self.pointer_path else None,
            "artifacts": [a.to_dict() for a in self.artifacts],
        }


def _resolve_dir(path: Path, what: str) -> Path:
    resolved = path.expanduser().resolve()
    if not resolved.is_dir():
        raise ConfigError(f"{what} is not a directory: {path}", code="path_not_found")
    return resolved


def create_build_request(
    mode: BuildMode,
    project_path: Path | None = None,
    code_root: Path | None = None,
    output_root: Path | None = None,
    settings: Settings | None = None,
    container_cmd: str | None = None,
    rust_version: str | None = None,
    binary_names: Iterable[str] = (),
    extra_packages: Iterable[str] = (),
    repo_url: str | None = None,
    revision: str | None = None,
    strip: bool = False,
    relabel: Relabel | None = None,
) -> BuildRequest:
    """Create a validated build request.

    Explicit arguments override settings. Paths are made absolute and the
    project must lie within the code root.

    Raises:
        ConfigError: If a path does not exist, the project is outside the
            code root, or a revision is given without a repository.
    """
    if settings is None:
        settings = get_settings()

    project = _resolve_dir(project_path or Path.cwd(), "Project path")
    root = _resolve_dir(code_root, "Code root") if code_root else project

    if output_root is not None:
        out = output_root.expanduser().resolve()
    elif settings.output_dir is not None:
        out = settings.output_dir.expanduser().resolve()
    else:
        out = project / DEFAULT_OUTPUT_SUBDIR

    if relabel is None and settings.relabel is not None:
        relabel = Relabel(settings.relabel)

    repo_url = repo_url or settings.image_repo_url
    if revision and not repo_url:
        raise ConfigError(
            f"Revision {revision!r} given without an image repository (--repo)",
            code="rev_without_repo",
        )

    request = BuildRequest(
        project_path=project,
        code_root=root,
        mode=mode,
        output_root=out,
        cache_root=settings.cache_dir.expanduser().resolve(),
        container_cmd=container_cmd or settings.container_cmd,
        rust_version=rust_version or settings.rust_version,
        binary_names=tuple(binary_names),
        extra_packages=frozenset(extra_packages),
        repo_url=repo_url,
        revision=revision or settings.image_revision,
        strip=strip,
        relabel=relabel,
    )
    request.relative_project_path()
    return request


def run_build(
    request: BuildRequest,
    settings: Settings | None = None,
    force_image_rebuild: bool = False,
) -> BuildOutput:
    """Build the project in a container and package the result.

    Steps:
    1. Validate the code root and pick the binary targets
    2. Take the per-project build lock
    3. Resolve the build image
    4. Assemble and run the container
    5. Package every binary and update the latest pointer

    Args:
        request: Build request.
        settings: Application settings (uses defaults if not provided).
        force_image_rebuild: Rebuild the image even if it exists.

    Returns:
        BuildOutput with the packaged artifacts.

    Raises:
        ConfigError: Invalid request or binary selection.
        BuildLockError: Lock timeout.
        ResolutionError: Image could not be resolved.
        BuildFailed: Container build failed.
        PackagingError: Artifact could not be written.
    """
    if settings is None:
        settings = get_settings()

    request.relative_project_path()

    targets = list_binary_targets(request.project_path)
    binaries = select_binaries(targets, request.binary_names)
    request = dataclasses.replace(request, binary_names=binaries)
    logger.info("Building %s for %s", ", ".join(binaries), request.mode.value)

    engine = ContainerEngine.from_name(request.container_cmd)

    try:
        for directory in host_cache_dirs(request):
            directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Failed to create cache directory: {e}") from e

    with ExitStack() as stack:
        try:
            stack.enter_context(
                file_lock(
                    request.output_root / ".locks",
                    request.mode.value,
                    timeout=settings.lock_timeout,
                )
            )
        except TimeoutError as e:
            raise BuildLockError(
                f"Another {request.mode.value} build of {request.project_path} "
                "is still running"
            ) from e

        image = resolve_image(
            engine,
            request.mode,
            image_build_args(request),
            request.cache_root,
            repo_url=request.repo_url,
            revision=request.revision,
            force_rebuild=force_image_rebuild,
        )

        invocation = assemble(request, image.local_tag)
        run_container(
            engine,
            invocation,
            writable_dirs=writable_cache_dirs(invocation),
            timeout=settings.build_timeout,
        )

        artifacts = [
            package_artifact(
                request,
                name,
                compiled_binary_path(request, name),
                strip_cmd=settings.strip_cmd,
            )
            for name in binaries
        ]

    pointer = pointer_for_mode(request.mode, request.output_root)
    return BuildOutput(artifacts=artifacts, pointer_path=pointer.path, image=image)


__all__ = [
    "DEFAULT_OUTPUT_SUBDIR",
    "BuildOutput",
    "create_build_request",
    "run_build",
]
