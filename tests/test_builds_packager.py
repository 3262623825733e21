"""Tests for builds/packager.py module.

Tests unique naming, the Lambda zip layout, and artifact writing.
"""

import io
import os
import subprocess
import zipfile
from datetime import date, datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from aws_build.builds.packager import (
    compute_fingerprint,
    make_lambda_zip,
    make_unique_name,
    package_artifact,
    strip_binary,
    write_file_atomic,
)
from aws_build.errors import PackagingError
from aws_build.types import BuildMode, BuildRequest

NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
BINARY = b"\x7fELF binary"


def make_request(tmp_path: Path, mode: BuildMode, strip: bool = False) -> BuildRequest:
    return BuildRequest(
        project_path=tmp_path,
        code_root=tmp_path,
        mode=mode,
        output_root=tmp_path / "out",
        cache_root=tmp_path / "cache",
        strip=strip,
    )


def make_binary(tmp_path: Path, contents: bytes = BINARY) -> Path:
    path = tmp_path / "out" / "target" / "release" / "app"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(contents)
    return path


class TestMakeUniqueName:
    """Tests for make_unique_name function."""

    def test_known_value(self):
        name = make_unique_name(
            BuildMode.LAMBDA, "testexecutable", b"testcontents", date(2020, 8, 31)
        )
        assert name == "lambda-testexecutable-20200831-7097a82a108e78da"

    def test_al2_prefix(self):
        name = make_unique_name(
            BuildMode.AL2, "testexecutable", b"testcontents", date(2020, 8, 31)
        )
        assert name == "al2-testexecutable-20200831-7097a82a108e78da"

    def test_contents_change_name(self):
        a = make_unique_name(BuildMode.AL2, "app", b"one", date(2020, 8, 31))
        b = make_unique_name(BuildMode.AL2, "app", b"two", date(2020, 8, 31))
        assert a != b

    def test_fingerprint_length(self):
        assert len(compute_fingerprint(b"")) == 16


class TestMakeLambdaZip:
    """Tests for make_lambda_zip function."""

    def test_layout(self):
        """The zip should hold a single executable bootstrap file."""
        data = make_lambda_zip(b"binary contents")

        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert zf.namelist() == ["bootstrap"]
            assert zf.read("bootstrap") == b"binary contents"
            info = zf.getinfo("bootstrap")

        assert (info.external_attr >> 16) & 0o777 == 0o755

    def test_deterministic(self):
        assert make_lambda_zip(b"same") == make_lambda_zip(b"same")


class TestWriteFileAtomic:
    """Tests for write_file_atomic function."""

    def test_write(self, tmp_path: Path):
        path = tmp_path / "sub" / "file"
        write_file_atomic(path, b"data", mode=0o755)
        assert path.read_bytes() == b"data"
        assert path.stat().st_mode & 0o777 == 0o755
        assert list(path.parent.iterdir()) == [path]

    def test_no_leftover_on_failure(self, tmp_path: Path):
        path = tmp_path / "file"
        with patch("aws_build.builds.packager.os.replace", side_effect=OSError("boom")):
            with pytest.raises(OSError):
                write_file_atomic(path, b"data")
        assert list(tmp_path.iterdir()) == []


class TestStripBinary:
    """Tests for strip_binary function."""

    def test_runs_strip(self, tmp_path: Path):
        binary = make_binary(tmp_path)
        with patch("aws_build.builds.packager.subprocess.run") as mock_run:
            strip_binary(binary, "llvm-strip")
        mock_run.assert_called_once_with(["llvm-strip", str(binary)], check=True)

    def test_strip_fails(self, tmp_path: Path):
        binary = make_binary(tmp_path)
        with patch("aws_build.builds.packager.subprocess.run") as mock_run:
            mock_run.side_effect = subprocess.CalledProcessError(1, ["strip"])
            with pytest.raises(PackagingError) as exc_info:
                strip_binary(binary)
        assert exc_info.value.code == "strip_failed"


class TestPackageArtifact:
    """Tests for package_artifact function."""

    def test_al2(self, tmp_path: Path):
        """AL2 artifacts are executable binaries behind a latest-al2 symlink."""
        request = make_request(tmp_path, BuildMode.AL2)
        binary = make_binary(tmp_path)

        artifact = package_artifact(request, "app", binary, now=NOW)

        expected_name = f"al2-app-20240102-{compute_fingerprint(BINARY)}"
        assert artifact.output_path == tmp_path / "out" / "al2" / expected_name
        assert artifact.output_path.read_bytes() == BINARY
        assert os.access(artifact.output_path, os.X_OK)
        assert artifact.binary_name == "app"
        assert artifact.mode is BuildMode.AL2
        assert artifact.size_bytes == len(BINARY)
        assert artifact.created_at == NOW

        latest = tmp_path / "out" / "latest-al2"
        assert latest.is_symlink()
        assert latest.resolve() == artifact.output_path.resolve()

    def test_lambda(self, tmp_path: Path):
        """Lambda artifacts are zips listed in the latest-lambda manifest."""
        request = make_request(tmp_path, BuildMode.LAMBDA)
        binary = make_binary(tmp_path)

        artifact = package_artifact(request, "app", binary, now=NOW)

        assert artifact.output_path.parent == tmp_path / "out" / "lambda"
        assert artifact.output_path.name.startswith("lambda-app-20240102-")
        assert artifact.output_path.suffix == ".zip"
        data = artifact.output_path.read_bytes()
        assert artifact.fingerprint == compute_fingerprint(data)
        assert artifact.output_path.name.endswith(f"-{artifact.fingerprint}.zip")
        with zipfile.ZipFile(artifact.output_path) as zf:
            assert zf.read("bootstrap") == BINARY

        manifest = tmp_path / "out" / "latest-lambda"
        assert manifest.read_text() == f"{artifact.output_path.name}\n"

    def test_lambda_manifest_accumulates(self, tmp_path: Path):
        request = make_request(tmp_path, BuildMode.LAMBDA)

        binary = make_binary(tmp_path, b"first")
        first = package_artifact(request, "app", binary, now=NOW)
        binary = make_binary(tmp_path, b"second")
        second = package_artifact(request, "app", binary, now=NOW)

        assert first.output_path != second.output_path
        assert first.output_path.exists()
        assert second.output_path.exists()
        lines = (tmp_path / "out" / "latest-lambda").read_text().splitlines()
        assert lines == [first.output_path.name, second.output_path.name]

    def test_identical_rebuild(self, tmp_path: Path):
        """Repackaging identical bytes should land on the same name."""
        request = make_request(tmp_path, BuildMode.AL2)
        binary = make_binary(tmp_path)

        first = package_artifact(request, "app", binary, now=NOW)
        second = package_artifact(request, "app", binary, now=NOW)

        assert first.output_path == second.output_path
        assert len(list((tmp_path / "out" / "al2").iterdir())) == 1

    def test_binary_missing(self, tmp_path: Path):
        request = make_request(tmp_path, BuildMode.AL2)

        with pytest.raises(PackagingError) as exc_info:
            package_artifact(request, "app", tmp_path / "missing", now=NOW)

        assert exc_info.value.code == "binary_missing"
        assert not (tmp_path / "out" / "al2").exists()
        assert not (tmp_path / "out" / "latest-al2").exists()

    def test_strip(self, tmp_path: Path):
        request = make_request(tmp_path, BuildMode.AL2, strip=True)
        binary = make_binary(tmp_path)

        with patch("aws_build.builds.packager.subprocess.run") as mock_run:
            package_artifact(request, "app", binary, strip_cmd="strip", now=NOW)

        mock_run.assert_called_once_with(["strip", str(binary)], check=True)

    def test_no_strip_by_default(self, tmp_path: Path):
        request = make_request(tmp_path, BuildMode.AL2)
        binary = make_binary(tmp_path)

        with patch("aws_build.builds.packager.subprocess.run") as mock_run:
            package_artifact(request, "app", binary, now=NOW)

        mock_run.assert_not_called()

    def test_write_failure(self, tmp_path: Path):
        request = make_request(tmp_path, BuildMode.AL2)
        binary = make_binary(tmp_path)

        with patch(
            "aws_build.builds.packager.write_file_atomic",
            side_effect=OSError(28, "No space left on device"),
        ):
            with pytest.raises(PackagingError) as exc_info:
                package_artifact(request, "app", binary, now=NOW)

        assert "No space left on device" in str(exc_info.value)
        assert not (tmp_path / "out" / "latest-al2").exists()
