"""Build image module.

This module handles:
- Image tag computation from the image inputs
- Upstream repository checkout
- Resolving (reusing or building) the build image
"""

from aws_build.image.service import resolve_image

__all__ = ["resolve_image"]
