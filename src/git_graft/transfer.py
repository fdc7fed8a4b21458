"""Copies a verified checkout into the target workspace.

A failure partway through a directory copy leaves the files copied so far in
place; nothing is rolled back.
"""

import logging
from pathlib import Path

from .checkout import TempCheckout
from .config import PullKind
from .constants import APP_NAME, VCS_METADATA_DIRS
from .errors import FilesystemError
from .system import System

logger = logging.getLogger(APP_NAME)


def copy_source(
    system: System, checkout: TempCheckout, target: str | Path, kind: PullKind, reset: bool
) -> int:
    """Copies the checkout's source path to `target`.

    Args:
        system (System): The system used for filesystem access.
        checkout (TempCheckout): The verified checkout to copy from.
        target (str | Path): The destination file or directory.
        kind (PullKind): Whether to copy a single file or a tree.
        reset (bool): For directories, remove `target` before copying.

    Returns:
        int: The number of files copied.

    Raises:
        FilesystemError: If any create, remove or copy fails.
    """
    target = Path(target)
    if kind is PullKind.FILE:
        return copy_file(system, checkout.source, target)
    if reset:
        reset_target(system, target)
    return copy_directory(system, checkout.source, target)


def copy_file(system: System, source: Path, target: Path) -> int:
    """Copies one file, creating parent directories and overwriting `target`."""
    create_parent_directories(system, target)
    if system.is_dir(target):
        raise FilesystemError(
            f"Cannot copy file to '{target}': a directory exists at that path",
            path=str(target),
        )
    try:
        size = system.copy_file(source, target)
    except OSError as e:
        raise FilesystemError(
            f"Failed to copy file from {source} to {target}: {e}", path=str(target)
        ) from e
    logger.debug(f"Copied {source} -> {target} ({size} bytes)")
    return 1


def copy_directory(system: System, source: Path, target: Path) -> int:
    """Recursively copies every regular file below `source` into `target`.

    Version-control metadata directories are skipped.
    """
    _create_dir(system, target)
    try:
        entries = system.walk(source, exclude=VCS_METADATA_DIRS)
    except OSError as e:
        raise FilesystemError(
            f"Failed to walk directory {source}: {e}", path=str(source)
        ) from e

    copied = 0
    for entry in entries:
        destination = target / entry.path.relative_to(source)
        if entry.is_dir:
            _create_dir(system, destination)
        elif entry.is_file:
            try:
                system.copy_file(entry.path, destination)
            except OSError as e:
                raise FilesystemError(
                    f"Failed to copy file from {entry.path} to {destination}: {e}",
                    path=str(destination),
                ) from e
            copied += 1
        else:
            raise FilesystemError(
                f"Failed to copy {entry.path}: not a regular file (broken symlink?)",
                path=str(entry.path),
            )
    logger.debug(f"Copied {copied} files from {source} to {target}")
    return copied


def reset_target(system: System, target: Path) -> None:
    """Removes `target` and everything below it. A missing target is fine."""
    if not system.exists(target):
        return
    logger.debug(f"Resetting target {target}")
    try:
        system.remove_dir_all(target)
    except OSError as e:
        raise FilesystemError(
            f"Failed to reset target directory {target}: {e}", path=str(target)
        ) from e


def create_parent_directories(system: System, path: Path) -> None:
    """Creates the parent directories of `path` if they do not exist."""
    parent = path.parent
    if str(parent) and not system.is_dir(parent):
        _create_dir(system, parent)


def _create_dir(system: System, path: Path) -> None:
    try:
        system.create_dir_all(path)
    except OSError as e:
        raise FilesystemError(
            f"Failed to create directory {path}: {e}", path=str(path)
        ) from e
