"""aws-build - Build Rust projects in a container for Amazon Linux 2 or AWS Lambda.

This package wraps a container engine (Docker or Podman) to compile a project
in an image that matches the target runtime, then packages the executable
under a unique, sortable file name.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
