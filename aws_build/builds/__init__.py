"""Build orchestration module.

This module handles:
- Binary target discovery
- Container invocation assembly
- Artifact packaging and latest pointers
- The end-to-end build pipeline
"""

from aws_build.builds.service import BuildOutput, create_build_request, run_build

__all__ = ["BuildOutput", "create_build_request", "run_build"]
