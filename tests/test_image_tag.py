"""Tests for image/tag.py module.

Tests image tag computation, input normalization, and deterministic hashing.
"""

import re

import pytest

from aws_build.image.tag import (
    IMAGE_TAG_SCHEMA_VERSION,
    ImageInputs,
    compute_files_digest,
    compute_image_digest,
    compute_image_tag,
    create_image_inputs,
    sanitize_tag_component,
)
from aws_build.types import BuildMode


@pytest.fixture
def build_args() -> dict[str, str]:
    return {
        "FROM_IMAGE": BuildMode.AL2.base_image,
        "RUST_VERSION": "stable",
        "DEV_PKGS": "openssl-devel",
    }


class TestCreateImageInputs:
    """Tests for create_image_inputs function."""

    def test_bundled_source(self, build_args):
        """Without a repository the revision is dropped and the files digest kept."""
        inputs = create_image_inputs(
            BuildMode.AL2, build_args, revision="main", files_digest="abc"
        )

        assert inputs.schema_version == IMAGE_TAG_SCHEMA_VERSION
        assert inputs.mode == "al2"
        assert inputs.repo_url is None
        assert inputs.revision is None
        assert inputs.files_digest == "abc"
        assert inputs.build_args == build_args

    def test_repository_source(self, build_args):
        """With a repository the revision is kept and the files digest dropped."""
        inputs = create_image_inputs(
            BuildMode.LAMBDA,
            build_args,
            repo_url="https://example.com/build-image.git",
            revision="v1",
            files_digest="abc",
        )

        assert inputs.mode == "lambda"
        assert inputs.repo_url == "https://example.com/build-image.git"
        assert inputs.revision == "v1"
        assert inputs.files_digest is None

    def test_build_args_copied(self, build_args):
        inputs = create_image_inputs(BuildMode.AL2, build_args)
        build_args["DEV_PKGS"] = "changed"
        assert inputs.build_args["DEV_PKGS"] == "openssl-devel"


class TestComputeImageDigest:
    """Tests for compute_image_digest function."""

    def test_deterministic(self, build_args):
        """Same inputs should produce the same digest."""
        a = create_image_inputs(BuildMode.AL2, build_args, files_digest="abc")
        b = create_image_inputs(BuildMode.AL2, dict(build_args), files_digest="abc")
        assert compute_image_digest(a) == compute_image_digest(b)

    def test_build_arg_order_irrelevant(self, build_args):
        reordered = dict(reversed(list(build_args.items())))
        a = create_image_inputs(BuildMode.AL2, build_args)
        b = create_image_inputs(BuildMode.AL2, reordered)
        assert compute_image_digest(a) == compute_image_digest(b)

    def test_sha256_format(self, build_args):
        digest = compute_image_digest(create_image_inputs(BuildMode.AL2, build_args))
        assert re.fullmatch(r"[0-9a-f]{64}", digest)

    @pytest.mark.parametrize(
        "changes",
        [
            {"RUST_VERSION": "1.75.0"},
            {"DEV_PKGS": "openssl-devel zlib-devel"},
            {"FROM_IMAGE": BuildMode.LAMBDA.base_image},
        ],
    )
    def test_build_arg_change(self, build_args, changes):
        """Changing any build arg should change the digest."""
        base = create_image_inputs(BuildMode.AL2, build_args)
        changed = create_image_inputs(BuildMode.AL2, {**build_args, **changes})
        assert compute_image_digest(base) != compute_image_digest(changed)

    def test_files_change(self, build_args):
        a = create_image_inputs(BuildMode.AL2, build_args, files_digest="abc")
        b = create_image_inputs(BuildMode.AL2, build_args, files_digest="def")
        assert compute_image_digest(a) != compute_image_digest(b)

    def test_revision_change(self, build_args):
        url = "https://example.com/build-image.git"
        a = create_image_inputs(BuildMode.AL2, build_args, repo_url=url, revision="v1")
        b = create_image_inputs(BuildMode.AL2, build_args, repo_url=url, revision="v2")
        assert compute_image_digest(a) != compute_image_digest(b)

    def test_to_dict(self):
        inputs = ImageInputs(build_args={"A": "1"})
        data = inputs.to_dict()
        assert data["build_args"] == {"A": "1"}
        assert data["schema_version"] == IMAGE_TAG_SCHEMA_VERSION


class TestComputeFilesDigest:
    """Tests for compute_files_digest function."""

    def test_order_independent(self):
        a = compute_files_digest({"Dockerfile": b"FROM x", "build.sh": b"cargo"})
        b = compute_files_digest({"build.sh": b"cargo", "Dockerfile": b"FROM x"})
        assert a == b

    def test_content_change(self):
        a = compute_files_digest({"Dockerfile": b"FROM x"})
        b = compute_files_digest({"Dockerfile": b"FROM y"})
        assert a != b

    def test_boundary_between_files(self):
        """Moving bytes between files should change the digest."""
        a = compute_files_digest({"a": b"xy", "b": b"z"})
        b = compute_files_digest({"a": b"x", "b": b"yz"})
        assert a != b


class TestComputeImageTag:
    """Tests for compute_image_tag function."""

    def test_format(self, build_args):
        inputs = create_image_inputs(BuildMode.AL2, build_args)
        tag = compute_image_tag(inputs, "stable")
        assert re.fullmatch(r"aws-build-al2:stable-[0-9a-f]{16}", tag)
        assert tag.endswith(compute_image_digest(inputs)[:16])

    def test_lambda_name(self, build_args):
        inputs = create_image_inputs(BuildMode.LAMBDA, build_args)
        assert compute_image_tag(inputs, "1.75.0").startswith("aws-build-lambda:1.75.0-")


class TestSanitizeTagComponent:
    """Tests for sanitize_tag_component function."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("stable", "stable"),
            ("1.75.0", "1.75.0"),
            ("nightly-2024-01-01", "nightly-2024-01-01"),
            ("https://example.com/x.git", "https___example.com_x.git"),
            ("-leading", "leading"),
            ("", "unknown"),
        ],
    )
    def test_sanitize(self, value, expected):
        assert sanitize_tag_component(value) == expected
