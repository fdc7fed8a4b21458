"""Literal placeholder substitution over copied files.

Replacements are plain substring substitutions applied left to right in
configuration order, each one operating on the output of the previous one.
All environment-variable values are resolved before any file is touched, so a
missing variable leaves the target unmodified.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from .config import Replacement
from .constants import (
    APP_NAME,
    BINARY_CONTROL_BYTES,
    BINARY_PROBE_BYTES,
    VCS_METADATA_DIRS,
)
from .errors import ConfigurationError, FilesystemError
from .system import System

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class ResolvedReplacement:
    """A replacement whose value is known.

    Attributes:
        pattern (str): The exact text to search for.
        value (str): The text substituted for it.
    """

    pattern: str
    value: str


def resolve_replacements(
    system: System, replacements: list[Replacement] | tuple[Replacement, ...]
) -> list[ResolvedReplacement]:
    """Looks up every replacement value.

    Args:
        system (System): The system whose environment is consulted.
        replacements: The configured replacements.

    Returns:
        list[ResolvedReplacement]: Values in the same order.

    Raises:
        ConfigurationError: If a referenced environment variable is unset.
    """
    resolved = []
    for r in replacements:
        if r.env_var:
            value = system.env_var(r.env_var)
            if value is None:
                raise ConfigurationError(
                    f"Environment variable '{r.env_var}' is not set "
                    f"(needed to replace '{r.pattern}')"
                )
        else:
            value = r.literal or ""
        resolved.append(ResolvedReplacement(r.pattern, value))
    return resolved


def looks_binary(data: bytes) -> bool:
    """Heuristic binary probe over the leading window of a file's content.

    A NUL byte or any non-whitespace control byte in the first
    BINARY_PROBE_BYTES bytes marks the content as binary.
    """
    window = data[:BINARY_PROBE_BYTES]
    return any(b in BINARY_CONTROL_BYTES for b in window)


def substitute(content: str, replacements: list[ResolvedReplacement]) -> str:
    """Applies the replacements to `content` in order."""
    for r in replacements:
        content = content.replace(r.pattern, r.value)
    return content


def apply_replacements(
    system: System,
    target: str | Path,
    replacements: list[Replacement] | tuple[Replacement, ...],
) -> int:
    """Rewrites placeholders in `target` (a file, or every file below a directory).

    Binary files and files that are not valid UTF-8 are skipped untouched.
    A file is written back only if its content changed.

    Args:
        system (System): The system used for environment and file access.
        target (str | Path): The copied file or directory.
        replacements: The configured replacements.

    Returns:
        int: The number of files modified.

    Raises:
        ConfigurationError: If an environment variable is unset (no file is
            modified in that case).
        FilesystemError: If the target is missing or a read/write fails.
    """
    if not replacements:
        return 0
    resolved = resolve_replacements(system, replacements)

    target = Path(target)
    if system.is_file(target):
        files = [target]
    elif system.is_dir(target):
        try:
            files = [
                e.path
                for e in system.walk(target, exclude=VCS_METADATA_DIRS)
                if e.is_file
            ]
        except OSError as e:
            raise FilesystemError(
                f"Failed to walk directory {target}: {e}", path=str(target)
            ) from e
    else:
        raise FilesystemError(f"Target does not exist: {target}", path=str(target))

    changed = 0
    for path in files:
        if _replace_in_file(system, path, resolved):
            changed += 1
    logger.debug(f"Applied {len(resolved)} replacements, {changed} files changed")
    return changed


def _replace_in_file(
    system: System, path: Path, replacements: list[ResolvedReplacement]
) -> bool:
    try:
        data = system.read_bytes(path)
    except OSError as e:
        raise FilesystemError(
            f"Failed to read file for text replacement: {path}: {e}", path=str(path)
        ) from e

    if looks_binary(data):
        logger.debug(f"Skipping binary file {path}")
        return False
    try:
        content = data.decode("utf-8")
    except UnicodeDecodeError:
        logger.debug(f"Skipping non UTF-8 file {path}")
        return False

    updated = substitute(content, replacements)
    if updated == content:
        return False
    try:
        system.write_bytes(path, updated.encode("utf-8"))
    except OSError as e:
        raise FilesystemError(
            f"Failed to write file after text replacement: {path}: {e}",
            path=str(path),
        ) from e
    return True
