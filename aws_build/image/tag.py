"""Image tag computation for build images.

This module handles:
- Canonical input snapshot creation from the image source and build args
- Deterministic hash computation over normalized inputs
- Rendering a valid container image tag

Tags ensure that an image built from identical inputs is reused instead of
rebuilt, and that changing any input selects a different image.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from aws_build.types import BuildMode

# Schema version for tag inputs; bump when the tag format changes
IMAGE_TAG_SCHEMA_VERSION = "1"

IMAGE_NAME_PREFIX = "aws-build"

# Characters allowed in an image tag, other than the first
_TAG_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_.\-]")


@dataclass
class ImageInputs:
    """Canonical representation of everything that shapes a build image.

    Attributes:
        schema_version: Version of tag schema.
        mode: Target runtime.
        repo_url: Upstream repository (None for the bundled files).
        revision: Revision of repo_url, as given by the user.
        build_args: Image build args.
        files_digest: Digest of the bundled container files (None with a repo).
    """

    schema_version: str = IMAGE_TAG_SCHEMA_VERSION
    mode: str = BuildMode.AL2.value
    repo_url: str | None = None
    revision: str | None = None
    build_args: dict[str, str] = field(default_factory=dict)
    files_digest: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def compute_files_digest(files: Mapping[str, bytes]) -> str:
    """Hash a set of named files independent of their ordering.

    Args:
        files: Mapping of file name to content.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    for name in sorted(files):
        content = files[name]
        sha256.update(name.encode("utf-8"))
        sha256.update(len(content).to_bytes(8, "big"))
        sha256.update(content)
    return sha256.hexdigest()


def create_image_inputs(
    mode: BuildMode,
    build_args: Mapping[str, str],
    repo_url: str | None = None,
    revision: str | None = None,
    files_digest: str | None = None,
) -> ImageInputs:
    """Create canonical image inputs.

    The revision is only meaningful together with a repository, so it is
    dropped when repo_url is None.
    """
    return ImageInputs(
        schema_version=IMAGE_TAG_SCHEMA_VERSION,
        mode=mode.value,
        repo_url=repo_url,
        revision=revision if repo_url else None,
        build_args=dict(build_args),
        files_digest=None if repo_url else files_digest,
    )


def compute_image_digest(inputs: ImageInputs) -> str:
    """Compute a SHA-256 hash of the canonical JSON form of the inputs."""
    canonical_json = json.dumps(
        inputs.to_dict(),
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()


def sanitize_tag_component(value: str) -> str:
    """Replace characters not allowed in an image tag."""
    cleaned = _TAG_INVALID_CHARS.sub("_", value).lstrip(".-")
    return cleaned or "unknown"


def compute_image_tag(inputs: ImageInputs, rust_version: str) -> str:
    """Render the local image tag.

    Example: ``aws-build-lambda:stable-0123456789abcdef``.
    """
    digest = compute_image_digest(inputs)
    version = sanitize_tag_component(rust_version)[:64]
    return f"{IMAGE_NAME_PREFIX}-{inputs.mode}:{version}-{digest[:16]}"


__all__ = [
    "IMAGE_NAME_PREFIX",
    "IMAGE_TAG_SCHEMA_VERSION",
    "ImageInputs",
    "compute_files_digest",
    "compute_image_digest",
    "compute_image_tag",
    "create_image_inputs",
    "sanitize_tag_component",
]
