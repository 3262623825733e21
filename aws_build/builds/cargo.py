"""Binary target discovery.

Runs `cargo metadata` on the host to find the binary targets of a
project and selects which of them to build.
"""

from __future__ import annotations

import json
import logging
import shlex
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from aws_build.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class BinaryTargets:
    """Binary targets found in a project.

    Attributes:
        names: Binary target names, in metadata order.
        default_runs: ``default-run`` values declared by the packages.
    """

    names: list[str] = field(default_factory=list)
    default_runs: list[str] = field(default_factory=list)


def parse_metadata(metadata: dict[str, Any]) -> BinaryTargets:
    """Extract binary targets from `cargo metadata` JSON output."""
    targets = BinaryTargets()
    for package in metadata.get("packages", []):
        for target in package.get("targets", []):
            if "bin" in target.get("kind", []):
                targets.names.append(target["name"])
        default_run = package.get("default_run")
        if default_run:
            targets.default_runs.append(default_run)
    return targets


def list_binary_targets(project_path: Path) -> BinaryTargets:
    """List the binary targets of the project at ``project_path``.

    Raises:
        ConfigError: If cargo is missing, fails, or prints invalid output.
    """
    cmd = [
        "cargo",
        "metadata",
        "--no-deps",
        "--format-version",
        "1",
        "--manifest-path",
        str(project_path / "Cargo.toml"),
    ]
    logger.debug("Reading project metadata: %s", shlex.join(cmd))
    try:
        result = subprocess.run(
            cmd,
            cwd=project_path,
            capture_output=True,
            text=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        raise ConfigError(
            f"cargo metadata failed: {e.stderr.strip()}",
            code="cargo_metadata_error",
        ) from e
    except OSError as e:
        raise ConfigError(
            f"Failed to run cargo metadata: {e}",
            code="cargo_metadata_error",
        ) from e

    try:
        metadata = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ConfigError(
            f"Invalid cargo metadata output: {e}",
            code="cargo_metadata_error",
        ) from e
    return parse_metadata(metadata)


def select_binaries(targets: BinaryTargets, requested: Sequence[str]) -> tuple[str, ...]:
    """Choose the binary targets to build.

    Args:
        targets: Binary targets of the project.
        requested: Names given with ``--bin`` (may be empty).

    Returns:
        Binary names to build.

    Raises:
        ConfigError: If a requested name does not exist, the project has no
            binary targets, or the choice is ambiguous.
    """
    if requested:
        unknown = [name for name in requested if name not in targets.names]
        if unknown:
            raise ConfigError(
                f"Unknown binary target(s): {', '.join(unknown)}; "
                f"available: {', '.join(targets.names) or '(none)'}",
                code="unknown_binary",
            )
        return tuple(dict.fromkeys(requested))

    if not targets.names:
        raise ConfigError("Project has no binary targets", code="no_binary")
    if len(targets.names) == 1:
        return (targets.names[0],)
    if len(targets.default_runs) == 1 and targets.default_runs[0] in targets.names:
        return (targets.default_runs[0],)

    raise ConfigError(
        "Must specify --bin when the project has more than one binary target "
        f"({', '.join(targets.names)})",
        code="ambiguous_binary",
    )


__all__ = [
    "BinaryTargets",
    "list_binary_targets",
    "parse_metadata",
    "select_binaries",
]
