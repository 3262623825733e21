"""Build argument assembly.

This module handles:
- Image build args (base image, Rust version, dev packages)
- Volume mounts for the code root and the persistent caches
- The container environment and working directory
- Host locations of the cache directories and compiled binaries

Every function here is pure: the result depends only on the arguments,
and nothing touches the filesystem or the container engine.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from aws_build.types import BuildRequest, ContainerInvocation, VolumeMount

# Paths inside the container
CODE_MOUNT = "/code"
CARGO_REGISTRY_MOUNT = "/cargo/registry"
CARGO_GIT_MOUNT = "/cargo/git"
TARGET_MOUNT = "/target"


def compose_dev_packages(packages: frozenset[str] | set[str]) -> str:
    """Compose the DEV_PKGS value: sorted, space-separated, deduplicated."""
    return " ".join(sorted(packages))


def image_build_args(request: BuildRequest) -> dict[str, str]:
    """Compute the args baked into the build image."""
    return {
        "FROM_IMAGE": request.mode.base_image,
        "RUST_VERSION": request.rust_version,
        "DEV_PKGS": compose_dev_packages(request.extra_packages),
    }


def toolchain_cache_dir(request: BuildRequest) -> Path:
    """Cargo download cache, shared by all projects using the same toolchain."""
    return request.cache_root / f"cargo-{request.mode.value}-{request.rust_version}"


def target_cache_dir(request: BuildRequest) -> Path:
    """Cargo target directory for this project and mode."""
    return request.output_root / f"{request.mode.value}-target"


def host_cache_dirs(request: BuildRequest) -> list[Path]:
    """Host directories that must exist before the container starts."""
    toolchain = toolchain_cache_dir(request)
    return [toolchain / "registry", toolchain / "git", target_cache_dir(request)]


def compiled_binary_path(request: BuildRequest, binary_name: str) -> Path:
    """Host path where cargo leaves a release binary."""
    return target_cache_dir(request) / "release" / binary_name


def container_working_dir(request: BuildRequest) -> str:
    """Working directory inside the container: the project under /code.

    Raises:
        ConfigError: If the project is not inside the code root.
    """
    relative = request.relative_project_path()
    if relative == Path("."):
        return CODE_MOUNT
    return str(PurePosixPath(CODE_MOUNT, *relative.parts))


def assemble(request: BuildRequest, image_tag: str) -> ContainerInvocation:
    """Assemble the container invocation for a build request.

    Args:
        request: Build request with resolved binary names.
        image_tag: Local tag of the build image.

    Returns:
        ContainerInvocation with mounts, build args and working directory.

    Raises:
        ConfigError: If the project is not inside the code root.
    """
    working_dir = container_working_dir(request)
    options = (request.relabel.mount_option,) if request.relabel else ()
    toolchain = toolchain_cache_dir(request)

    mounts = (
        VolumeMount(request.code_root, CODE_MOUNT, read_only=False, options=options),
        VolumeMount(toolchain / "registry", CARGO_REGISTRY_MOUNT, options=options),
        VolumeMount(toolchain / "git", CARGO_GIT_MOUNT, options=options),
        VolumeMount(target_cache_dir(request), TARGET_MOUNT, options=options),
    )

    build_args = image_build_args(request)
    build_args["BIN_TARGETS"] = " ".join(request.binary_names)
    build_args["TARGET_DIR"] = TARGET_MOUNT

    return ContainerInvocation(
        image_tag=image_tag,
        mounts=mounts,
        build_args=build_args,
        working_dir=working_dir,
    )


def writable_cache_dirs(invocation: ContainerInvocation) -> list[Path]:
    """Host paths of the writable mounts other than the code root."""
    return [
        m.host_path
        for m in invocation.mounts
        if not m.read_only and m.container_path != CODE_MOUNT
    ]


__all__ = [
    "CARGO_GIT_MOUNT",
    "CARGO_REGISTRY_MOUNT",
    "CODE_MOUNT",
    "TARGET_MOUNT",
    "assemble",
    "compiled_binary_path",
    "compose_dev_packages",
    "container_working_dir",
    "host_cache_dirs",
    "image_build_args",
    "target_cache_dir",
    "toolchain_cache_dir",
    "writable_cache_dirs",
]
