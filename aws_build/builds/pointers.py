"""Latest-artifact pointers.

AL2 builds keep a ``latest-al2`` symlink to the newest binary. Lambda
builds keep a ``latest-lambda`` manifest: an append-only list of zip file
names, one per line, since several zips can come out of one run.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from aws_build.types import BuildMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SymlinkPointer:
    """A symlink that always references the most recent artifact."""

    path: Path

    def update(self, artifact_path: Path) -> None:
        """Point the symlink at ``artifact_path``, replacing it atomically."""
        target = os.path.relpath(artifact_path, self.path.parent)
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        tmp_path.unlink(missing_ok=True)
        tmp_path.symlink_to(target)
        os.replace(tmp_path, self.path)
        logger.info("Symlink: %s -> %s", self.path, target)

    def read(self) -> list[Path]:
        """Return the referenced artifact, or nothing if the link is missing."""
        if not self.path.is_symlink():
            return []
        return [self.path.resolve()]


@dataclass(frozen=True)
class ManifestPointer:
    """An append-only list of artifact names."""

    path: Path
    artifact_dir: Path

    def update(self, artifact_path: Path) -> None:
        """Append the artifact name to the manifest."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(f"{artifact_path.name}\n")
        logger.info("Appended %s to %s", artifact_path.name, self.path)

    def read(self) -> list[Path]:
        """Return every listed artifact, oldest first."""
        if not self.path.exists():
            return []
        names = self.path.read_text(encoding="utf-8").splitlines()
        return [self.artifact_dir / name for name in names if name.strip()]


LatestPointer = SymlinkPointer | ManifestPointer


def pointer_for_mode(mode: BuildMode, output_root: Path) -> LatestPointer:
    """Return the latest pointer for a build mode.

    Args:
        mode: Target runtime.
        output_root: Artifact output root.

    Returns:
        SymlinkPointer for AL2, ManifestPointer for Lambda.
    """
    path = output_root / f"latest-{mode.value}"
    if mode is BuildMode.AL2:
        return SymlinkPointer(path)
    return ManifestPointer(path, artifact_dir=output_root / mode.value)


__all__ = [
    "LatestPointer",
    "ManifestPointer",
    "SymlinkPointer",
    "pointer_for_mode",
]
