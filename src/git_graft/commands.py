"""Post-copy shell command execution."""

import logging
from pathlib import Path

from .constants import APP_NAME
from .errors import CommandError, FilesystemError
from .system import System

logger = logging.getLogger(APP_NAME)


def run_commands(
    system: System, workdir: str | Path, commands: list[str] | tuple[str, ...]
) -> int:
    """Runs shell commands in order inside `workdir`, stopping at the first failure.

    Commands inherit this process's environment and standard streams; their
    output is not captured.

    Args:
        system (System): The system used to spawn the shell.
        workdir (str | Path): The working directory for every command.
        commands: The command strings.

    Returns:
        int: The number of commands run.

    Raises:
        FilesystemError: If `workdir` is not a directory.
        CommandError: If a command is empty, cannot be started or exits non-zero.
    """
    if not commands:
        return 0
    if not system.is_dir(workdir):
        raise FilesystemError(
            f"Working directory does not exist: {workdir}", path=str(workdir)
        )

    for number, command in enumerate(commands, start=1):
        if not command.strip():
            raise CommandError(f"Command #{number} is empty", command=command)
        logger.info(f"Running command #{number}: {command}")
        try:
            res = system.run(command, cwd=workdir, capture=False, shell=True)
        except OSError as e:
            raise CommandError(
                f"Failed to execute command #{number}: {command}: {e}", command=command
            ) from e
        if not res.ok:
            raise CommandError(
                f"Command #{number} failed with exit code {res.returncode}: {command}\n"
                f"Working directory: {workdir}",
                command=command,
                returncode=res.returncode,
            )
    return len(commands)
