"""Typed errors raised by the pull engine.

Every error carries the process exit code the CLI uses for the whole run, and
optionally the pull (source -> target) it was raised for.
"""

from .constants import (
    EXIT_COMMAND,
    EXIT_CONFIGURATION,
    EXIT_FILESYSTEM,
    EXIT_GIT,
    EXIT_SOURCE,
)


class GraftError(Exception):
    """Base class for all Git Graft failures.

    Attributes:
        message (str): The human-readable description.
        pull (str | None): A `source -> target` label for the pull that failed,
            attached by the orchestrator.
    """

    kind = "Graft"
    exit_code = 1

    def __init__(self, message: str, pull: str | None = None):
        super().__init__(message)
        self.message = message
        self.pull = pull

    def for_pull(self, source: str, target: str) -> "GraftError":
        """Attaches the offending pull to the error and returns it."""
        if self.pull is None:
            self.pull = f"{source} -> {target}"
        return self

    def __str__(self) -> str:
        text = f"{self.kind} error: {self.message}"
        if self.pull:
            text += f" (pull {self.pull})"
        return text


class ConfigurationError(GraftError):
    """Invalid or missing configuration, including unset environment variables."""

    kind = "Configuration"
    exit_code = EXIT_CONFIGURATION


class SourceError(GraftError):
    """The requested source path is absent from the checkout or has the wrong kind."""

    kind = "Source"
    exit_code = EXIT_SOURCE


class CommandError(GraftError):
    """A post-copy command exited with a non-zero status."""

    kind = "Command"
    exit_code = EXIT_COMMAND

    def __init__(
        self,
        message: str,
        command: str = "",
        returncode: int = -1,
        pull: str | None = None,
    ):
        super().__init__(message, pull)
        self.command = command
        self.returncode = returncode


class GitError(GraftError):
    """A clone, fetch or checkout operation failed."""

    kind = "Git"
    exit_code = EXIT_GIT


class FilesystemError(GraftError):
    """A copy, write or remove operation failed.

    Attributes:
        path (str | None): The path the operation failed on.
    """

    kind = "Filesystem"
    exit_code = EXIT_FILESYSTEM

    def __init__(self, message: str, path: str | None = None, pull: str | None = None):
        super().__init__(message, pull)
        self.path = path
