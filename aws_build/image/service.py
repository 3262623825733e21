"""Build image service module.

This module provides the high-level image API:
- resolve_image(): Ensure a build image exists locally, building it if needed
- bundled_container_files(): The Dockerfile and build script shipped with
  the package

Images are cached by the container engine only; a tag derived from all
image inputs is the sole bookkeeping.
"""

from __future__ import annotations

import hashlib
import logging
import tempfile
from collections.abc import Mapping
from importlib import resources
from pathlib import Path

from aws_build.container.engine import ContainerEngine, build_image, image_exists
from aws_build.errors import ResolutionError
from aws_build.image.git import checkout_revision
from aws_build.image.tag import (
    compute_files_digest,
    compute_image_tag,
    create_image_inputs,
    sanitize_tag_component,
)
from aws_build.locks import file_lock
from aws_build.types import DEFAULT_RUST_VERSION, BuildMode, ContainerImage

logger = logging.getLogger(__name__)

BUNDLED_FILES = ("Dockerfile", "build.sh")


def bundled_container_files() -> dict[str, bytes]:
    """Read the bundled container files.

    Returns:
        Mapping of file name to content.
    """
    root = resources.files("aws_build.container").joinpath("files")
    return {name: root.joinpath(name).read_bytes() for name in BUNDLED_FILES}


def write_container_files(dest_dir: Path) -> None:
    """Write the bundled container files into a build context directory."""
    for name, content in bundled_container_files().items():
        path = dest_dir / name
        path.write_bytes(content)
        if name.endswith(".sh"):
            path.chmod(0o755)


def repo_checkout_dir(cache_dir: Path, repo_url: str) -> Path:
    """Return the cache location of a repository clone.

    The URL hash keeps URLs that sanitize to the same name apart.
    """
    url_hash = hashlib.sha256(repo_url.encode("utf-8")).hexdigest()[:12]
    return cache_dir / "repos" / f"{sanitize_tag_component(repo_url)[:64]}-{url_hash}"


def image_tag_for(
    mode: BuildMode,
    build_args: Mapping[str, str],
    repo_url: str | None = None,
    revision: str | None = None,
) -> str:
    """Compute the deterministic local tag for an image source."""
    files_digest = None if repo_url else compute_files_digest(bundled_container_files())
    inputs = create_image_inputs(
        mode,
        build_args,
        repo_url=repo_url,
        revision=revision,
        files_digest=files_digest,
    )
    return compute_image_tag(
        inputs, build_args.get("RUST_VERSION", DEFAULT_RUST_VERSION)
    )


def resolve_image(
    engine: ContainerEngine,
    mode: BuildMode,
    build_args: Mapping[str, str],
    cache_dir: Path,
    repo_url: str | None = None,
    revision: str = "HEAD",
    force_rebuild: bool = False,
) -> ContainerImage:
    """Ensure a build image is available for use.

    This is the main entry point for image management. It:
    1. Computes the tag from the image source and build args
    2. Returns immediately if the engine already has that tag
    3. Otherwise acquires a lock, prepares the build context (repository
       checkout or bundled files) and builds the image

    Args:
        engine: Container engine.
        mode: Target runtime.
        build_args: Image build args (FROM_IMAGE, RUST_VERSION, DEV_PKGS).
        cache_dir: Root cache directory (locks and repository clones).
        repo_url: Repository holding a Dockerfile (None = bundled files).
        revision: Branch, tag or commit of repo_url.
        force_rebuild: Build even if the tag already exists.

    Returns:
        ContainerImage with the local tag.

    Raises:
        ResolutionError: If the revision cannot be fetched or the build fails.
    """
    tag = image_tag_for(mode, build_args, repo_url=repo_url, revision=revision)

    if not force_rebuild and image_exists(engine, tag):
        logger.info("Using cached image: %s", tag)
        return ContainerImage(repo_url=repo_url, revision=revision, local_tag=tag)

    try:
        with file_lock(cache_dir / ".locks", tag):
            # Re-check after acquiring lock (another process may have built it)
            if not force_rebuild and image_exists(engine, tag):
                logger.info("Image became available while waiting for lock: %s", tag)
                return ContainerImage(
                    repo_url=repo_url, revision=revision, local_tag=tag
                )

            if repo_url:
                context_dir = repo_checkout_dir(cache_dir, repo_url)
                checkout_revision(repo_url, revision, context_dir)
                if not (context_dir / "Dockerfile").is_file():
                    raise ResolutionError(
                        f"No Dockerfile in {repo_url} at {revision}",
                        code="dockerfile_missing",
                    )
                build_image(engine, tag, build_args, context_dir)
            else:
                with tempfile.TemporaryDirectory(prefix="aws-build-") as tmp:
                    context_dir = Path(tmp)
                    write_container_files(context_dir)
                    build_image(engine, tag, build_args, context_dir)
    except OSError as e:
        raise ResolutionError(f"Failed to prepare image build: {e}") from e

    logger.info("Image ready: %s", tag)
    return ContainerImage(repo_url=repo_url, revision=revision, local_tag=tag, built=True)


__all__ = [
    "BUNDLED_FILES",
    "bundled_container_files",
    "image_tag_for",
    "repo_checkout_dir",
    "resolve_image",
    "write_container_files",
]
