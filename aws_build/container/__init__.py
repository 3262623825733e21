"""Container engine module.

This module handles:
- Engine selection and command composition
- Running the build container
- The bundled Dockerfile and build script (files/)
"""

from aws_build.container.engine import ContainerEngine

__all__ = ["ContainerEngine"]
