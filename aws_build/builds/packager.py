"""Artifact packaging.

This module handles:
- Optionally stripping debug symbols from the compiled binary
- Computing content fingerprints
- Writing the AL2 binary or the Lambda zip under a unique name
- Updating the latest pointer for the mode

Unique names keep multiple versions side by side, so uploading them to
shared storage never overwrites an older, possibly still deployed, artifact.
"""

from __future__ import annotations

import hashlib
import io
import logging
import os
import shlex
import stat
import subprocess
import zipfile
from datetime import date, datetime, timezone
from pathlib import Path

from aws_build.builds.pointers import pointer_for_mode
from aws_build.errors import PackagingError
from aws_build.types import BuildArtifact, BuildMode, BuildRequest

logger = logging.getLogger(__name__)

# File name the Lambda provided runtime executes
LAMBDA_ENTRY_POINT = "bootstrap"

# Number of hex digits of the SHA-256 kept in file names
FINGERPRINT_LENGTH = 16

# Earliest timestamp a zip entry can hold; fixed so archives are reproducible
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

EXECUTABLE_MODE = 0o755


def compute_fingerprint(contents: bytes) -> str:
    """Return the truncated SHA-256 hex digest of ``contents``."""
    return hashlib.sha256(contents).hexdigest()[:FINGERPRINT_LENGTH]


def make_unique_name(mode: BuildMode, name: str, contents: bytes, when: date) -> str:
    """Create a unique output file name.

    The name is identifiable, sortable by time, unique and reasonably
    short. It includes:
    - build-mode prefix (al2 or lambda)
    - executable name
    - year, month, and day
    - first 16 digits of the sha256 hex hash

    Example: ``lambda-myexe-20200831-7097a82a108e78da``.
    """
    return f"{mode.value}-{name}-{when:%Y%m%d}-{compute_fingerprint(contents)}"


def make_lambda_zip(contents: bytes) -> bytes:
    """Create a zip holding ``contents`` as an executable ``bootstrap`` file.

    Identical input produces identical bytes.
    """
    info = zipfile.ZipInfo(LAMBDA_ENTRY_POINT, date_time=ZIP_EPOCH)
    info.create_system = 3  # unix, so external_attr carries the file mode
    info.external_attr = (stat.S_IFREG | EXECUTABLE_MODE) << 16
    info.compress_type = zipfile.ZIP_DEFLATED

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr(info, contents)
    return buffer.getvalue()


def strip_binary(path: Path, strip_cmd: str = "strip") -> None:
    """Run ``strip`` on a binary to remove symbols and decrease the size.

    Raises:
        PackagingError: If strip cannot run or fails.
    """
    cmd = [strip_cmd, str(path)]
    logger.info("Stripping: %s", shlex.join(cmd))
    try:
        subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        raise PackagingError(
            f"strip failed with exit code {e.returncode}", code="strip_failed"
        ) from e
    except OSError as e:
        raise PackagingError(f"Failed to run {strip_cmd}: {e}", code="strip_failed") from e


def write_file_atomic(path: Path, data: bytes, mode: int = 0o644) -> None:
    """Write ``data`` to a temporary sibling, then move it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        tmp_path.write_bytes(data)
        tmp_path.chmod(mode)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def package_artifact(
    request: BuildRequest,
    binary_name: str,
    compiled_binary_path: Path,
    strip_cmd: str = "strip",
    now: datetime | None = None,
) -> BuildArtifact:
    """Package a compiled binary for the request's mode.

    Args:
        request: Build request.
        binary_name: Binary target name.
        compiled_binary_path: Binary left by cargo in the target cache.
        strip_cmd: Program used when request.strip is set.
        now: Build time (current UTC time if not provided).

    Returns:
        BuildArtifact describing the written file.

    Raises:
        PackagingError: If the binary is missing or the artifact cannot be written.
    """
    if not compiled_binary_path.is_file():
        raise PackagingError(
            f"Compiled binary not found: {compiled_binary_path}",
            code="binary_missing",
        )

    if request.strip:
        strip_binary(compiled_binary_path, strip_cmd)

    if now is None:
        now = datetime.now(timezone.utc)

    artifact_dir = request.output_root / request.mode.value

    try:
        contents = compiled_binary_path.read_bytes()

        if request.mode is BuildMode.LAMBDA:
            data = make_lambda_zip(contents)
            file_mode = 0o644
            output_name = (
                make_unique_name(request.mode, binary_name, data, now.date()) + ".zip"
            )
        else:
            data = contents
            file_mode = EXECUTABLE_MODE
            output_name = make_unique_name(request.mode, binary_name, data, now.date())

        output_path = artifact_dir / output_name
        logger.info("Writing %s", output_path)
        write_file_atomic(output_path, data, mode=file_mode)

        pointer_for_mode(request.mode, request.output_root).update(output_path)
    except OSError as e:
        raise PackagingError(f"Failed to write artifact for {binary_name}: {e}") from e

    return BuildArtifact(
        binary_name=binary_name,
        source_binary_path=compiled_binary_path,
        output_path=output_path,
        fingerprint=compute_fingerprint(data),
        created_at=now,
        mode=request.mode,
        size_bytes=len(data),
    )


__all__ = [
    "EXECUTABLE_MODE",
    "FINGERPRINT_LENGTH",
    "LAMBDA_ENTRY_POINT",
    "ZIP_EPOCH",
    "compute_fingerprint",
    "make_lambda_zip",
    "make_unique_name",
    "package_artifact",
    "strip_binary",
    "write_file_atomic",
]
