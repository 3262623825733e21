"""Error definitions for aws_build.

Every error carries a stable ``code`` for structured handling and a
``cli_exit_code`` that the CLI uses as the process exit status.
"""

# Process exit codes used by the CLI
EXIT_CONFIG_ERROR = 2
EXIT_RESOLUTION_ERROR = 3
EXIT_BUILD_FAILED = 4
EXIT_PACKAGING_ERROR = 5
EXIT_BUILD_LOCKED = 6


class AwsBuildError(Exception):
    """Base error for all aws_build failures."""

    cli_exit_code = 1

    def __init__(self, message: str, code: str = "aws_build_error") -> None:
        """Initialize AwsBuildError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class ConfigError(AwsBuildError):
    """Raised for bad flags, a project outside the code root, or an ambiguous binary."""

    cli_exit_code = EXIT_CONFIG_ERROR

    def __init__(self, message: str, code: str = "config_error") -> None:
        super().__init__(message, code=code)


class ResolutionError(AwsBuildError):
    """Raised when the build image cannot be fetched or built."""

    cli_exit_code = EXIT_RESOLUTION_ERROR

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "resolution_error",
    ) -> None:
        super().__init__(message, code=code)
        self.exit_code = exit_code


class BuildFailed(AwsBuildError):
    """Raised when the container build exits non-zero.

    The compiler log has already been streamed to the user, so the message
    only names the exit code.
    """

    cli_exit_code = EXIT_BUILD_FAILED

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "build_failed",
    ) -> None:
        super().__init__(message, code=code)
        self.exit_code = exit_code


class PackagingError(AwsBuildError):
    """Raised when the compiled binary is missing or the artifact cannot be written."""

    cli_exit_code = EXIT_PACKAGING_ERROR

    def __init__(self, message: str, code: str = "packaging_error") -> None:
        super().__init__(message, code=code)


class BuildLockError(AwsBuildError):
    """Raised when another build of the same project holds the lock too long."""

    cli_exit_code = EXIT_BUILD_LOCKED

    def __init__(self, message: str, code: str = "build_locked") -> None:
        super().__init__(message, code=code)


__all__ = [
    "EXIT_BUILD_FAILED",
    "EXIT_BUILD_LOCKED",
    "EXIT_CONFIG_ERROR",
    "EXIT_PACKAGING_ERROR",
    "EXIT_RESOLUTION_ERROR",
    "AwsBuildError",
    "BuildFailed",
    "BuildLockError",
    "ConfigError",
    "PackagingError",
    "ResolutionError",
]
