"""Checkout of upstream image repositories.

This module handles:
- Cloning a repository into the cache directory
- Re-pointing and fetching an existing clone
- Checking out a branch, tag or commit
- Resolving the checked-out commit hash
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path

from aws_build.errors import ResolutionError

logger = logging.getLogger(__name__)

COMMIT_HASH_LENGTH = 40


class GitCommandError(ResolutionError):
    """Raised when a git command fails."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "git_error",
    ) -> None:
        super().__init__(message, exit_code=exit_code, code=code)


def _run_git(args: list[str], check: bool = True) -> subprocess.CompletedProcess[str]:
    cmd = ["git", *args]
    cmd_str = shlex.join(cmd)
    logger.info("%s", cmd_str)
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as e:
        raise GitCommandError(f"Failed to run {cmd_str}: {e}") from e

    if check and result.returncode != 0:
        raise GitCommandError(
            f"Command {cmd_str} failed with exit code {result.returncode}: "
            f"{result.stderr.strip()}",
            exit_code=result.returncode,
        )
    return result


def clone(repo_url: str, repo_path: Path) -> None:
    """Clone ``repo_url`` to ``repo_path``."""
    repo_path.parent.mkdir(parents=True, exist_ok=True)
    _run_git(["clone", repo_url, str(repo_path)])


def fetch(repo_path: Path) -> None:
    """Run ``git fetch`` in an existing clone."""
    _run_git(["-C", str(repo_path), "fetch"])


def remote_set_url(repo_path: Path, repo_url: str) -> None:
    """Set the URL of the ``origin`` remote."""
    _run_git(["-C", str(repo_path), "remote", "set-url", "origin", repo_url])


def checkout(repo_path: Path, revision: str) -> None:
    """Check out the specified revision.

    ``origin/<rev>`` is tried first so a branch resolves to the latest
    fetched commit rather than a stale local branch. If that fails the
    revision is checked out directly, which works for tags and commits.
    """
    result = _run_git(
        ["-C", str(repo_path), "checkout", "--detach", f"origin/{revision}"],
        check=False,
    )
    if result.returncode != 0:
        _run_git(["-C", str(repo_path), "checkout", "--detach", revision])


def rev_parse(repo_path: Path, target: str = "HEAD") -> str:
    """Get the commit hash of ``target``.

    Example output: "46794db6816e4a07077cf02711ff1921d50e08d3".
    """
    result = _run_git(["-C", str(repo_path), "rev-parse", target])
    commit = result.stdout.strip()
    if len(commit) != COMMIT_HASH_LENGTH:
        raise GitCommandError(f"Invalid commit hash from rev-parse: {commit!r}")
    return commit


def checkout_revision(repo_url: str, revision: str, repo_path: Path) -> str:
    """Make ``repo_path`` a checkout of ``repo_url`` at ``revision``.

    Args:
        repo_url: Repository URL.
        revision: Branch, tag or commit.
        repo_path: Local clone location (created if missing).

    Returns:
        Commit hash that was checked out.

    Raises:
        GitCommandError: If any git step fails.
    """
    if (repo_path / ".git").is_dir():
        remote_set_url(repo_path, repo_url)
        fetch(repo_path)
    else:
        clone(repo_url, repo_path)

    checkout(repo_path, revision)
    commit = rev_parse(repo_path)
    logger.info("Checked out %s at %s", repo_url, commit)
    return commit


__all__ = [
    "COMMIT_HASH_LENGTH",
    "GitCommandError",
    "checkout",
    "checkout_revision",
    "clone",
    "fetch",
    "remote_set_url",
    "rev_parse",
]
