"""Git Graft: pull files and directories out of Git repositories.

This package provides the command-line interface, the configuration layer and
the pull engine that sparse-checks out a path, copies it into the workspace,
rewrites placeholders and runs post-copy commands.
"""

from . import (
    checkout,
    cli,
    command_line,
    commands,
    config,
    constants,
    errors,
    git_wrapper,
    pull,
    replace,
    repository,
    system,
    transfer,
)

__all__ = [
    "checkout",
    "cli",
    "command_line",
    "commands",
    "config",
    "constants",
    "errors",
    "git_wrapper",
    "pull",
    "replace",
    "repository",
    "system",
    "transfer",
]
