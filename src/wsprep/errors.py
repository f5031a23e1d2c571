"""Domain errors and exit codes for wsprep."""

from typing import Optional, Sequence

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_MISSING_CREDENTIAL = 2
EXIT_RUNNING_AS_ROOT = 3
EXIT_PRIVILEGE_DENIED = 4
EXIT_MISSING_COMMAND = 5
EXIT_INVALID_MANIFEST = 6
EXIT_INVALID_CONFIG = 7
EXIT_UNKNOWN_HOME = 9
EXIT_EXTERNAL_TOOL = 10
EXIT_UNEXPECTED = 99
EXIT_INTERRUPTED = 130


class PrepError(RuntimeError):
    """Raised when provisioning cannot continue safely."""

    exit_code = EXIT_EXTERNAL_TOOL

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class UsageError(PrepError):
    exit_code = EXIT_USAGE


class PreconditionError(PrepError):
    """A requirement for the run (or one of its phases) is not met."""

    exit_code = EXIT_MISSING_CREDENTIAL


class PrivilegeError(PreconditionError):
    exit_code = EXIT_PRIVILEGE_DENIED


class MissingCommandError(PreconditionError):
    exit_code = EXIT_MISSING_COMMAND


class ExternalToolError(PrepError):
    """A delegated command exited non-zero or could not be run."""

    exit_code = EXIT_EXTERNAL_TOOL

    def __init__(
        self,
        message: str,
        command: Optional[Sequence[str]] = None,
        exit_code: Optional[int] = None,
    ):
        super().__init__(message, exit_code=exit_code)
        self.command = list(command) if command else None


class ManifestError(PrepError):
    exit_code = EXIT_INVALID_MANIFEST


class ConfigError(PrepError):
    exit_code = EXIT_INVALID_CONFIG


class UnsupportedPlatformError(PrepError):
    """Raised by a phase that has nothing to do on the resolved platform.

    The orchestrator reports it as a warning and moves on to the next phase.
    """
