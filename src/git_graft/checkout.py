"""Sparse checkout of a single path into a private temporary directory."""

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from .config import PullKind
from .constants import APP_NAME, MIN_GIT_VERSION, VCS_METADATA_DIRS
from .errors import GitError, SourceError
from .git_wrapper import GitRepo
from .repository import Repository
from .system import System

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class TempCheckout:
    """A materialized sparse checkout.

    Only valid inside the `checkout` context that produced it; the directory
    is deleted when that context exits.

    Attributes:
        root (Path): The temporary working tree.
        source_path (str): The requested path, relative to `root`.
        kind (PullKind): The verified kind of `source`.
        repository (Repository): Where the checkout came from.
    """

    root: Path
    source_path: str
    kind: PullKind
    repository: Repository

    @property
    def source(self) -> Path:
        return self.root / self.source_path


@contextmanager
def checkout(
    system: System, repository: Repository, source_path: str, kind: PullKind
) -> Iterator[TempCheckout]:
    """Fetches `source_path` at `repository.ref` into a temporary working tree.

    The checkout is created with a blob-less, depth-1 fetch restricted to a
    sparse-checkout cone containing only `source_path`. The temporary
    directory is removed when the context exits, including when it exits
    through an exception raised here or in the caller's block.

    Args:
        system (System): The system used for git and filesystem access.
        repository (Repository): The resolved repository and ref.
        source_path (str): The path to materialize, relative to the repo root.
        kind (PullKind): The kind `source_path` must have.

    Yields:
        TempCheckout: The verified checkout.

    Raises:
        GitError: If any git step fails.
        SourceError: If the path is missing or has the wrong kind.
    """
    with system.temp_dir() as root:
        logger.debug(f"Sparse checkout of '{source_path}' from {repository} into {root}")
        repo = GitRepo(system, root)
        repo.init()
        repo.remote_add("origin", repository.url)
        repo.sparse_checkout_init()
        repo.sparse_checkout_set(source_path)
        try:
            repo.fetch("origin", repository.ref)
        except GitError as e:
            raise GitError(
                f"Failed to fetch '{repository.ref}' from '{repository.original}': "
                f"{e.message}"
            ) from e
        try:
            repo.checkout("FETCH_HEAD")
        except GitError as e:
            raise GitError(
                f"Failed to checkout reference '{repository.ref}': {e.message}"
            ) from e

        result = TempCheckout(root, source_path, kind, repository)
        verify_source(system, repo, result)
        yield result


def verify_source(system: System, repo: GitRepo, result: TempCheckout) -> None:
    """Checks that the requested path was materialized with the expected kind.

    Raises:
        SourceError: If the path is absent or is a file where a directory was
            requested (or vice versa).
    """
    source = result.source
    where = f"repository '{result.repository.original}' at reference '{result.repository.ref}'"
    if not system.exists(source):
        raise SourceError(
            f"Source path '{result.source_path}' not found in {where}\n"
            f"{checkout_diagnostics(system, repo, result)}"
        )
    if result.kind is PullKind.FILE and not system.is_file(source):
        raise SourceError(
            f"Source path '{result.source_path}' in {where} is not a file"
        )
    if result.kind is PullKind.DIRECTORY and not system.is_dir(source):
        raise SourceError(
            f"Source path '{result.source_path}' in {where} is not a directory"
        )


def checkout_diagnostics(system: System, repo: GitRepo, result: TempCheckout) -> str:
    """Describes what a checkout actually contains, for error messages."""
    lines = [
        "Sparse checkout diagnostics:",
        f"  Repository: {result.repository.original}",
        f"  Reference: {result.repository.ref}",
        f"  Requested path: {result.source_path}",
        "  Checked out files:",
    ]
    try:
        found = [
            str(e.path.relative_to(result.root))
            for e in system.walk(result.root, exclude=VCS_METADATA_DIRS)
            if e.is_file
        ]
    except OSError:
        found = None
    if found is None:
        lines.append("    (unable to read directory)")
    elif not found:
        lines.append("    (empty - no files were checked out)")
    else:
        lines.extend(f"    - {name}" for name in found[:20])
        if len(found) > 20:
            lines.append(f"    ... and {len(found) - 20} more")
    patterns = repo.sparse_patterns()
    if patterns:
        lines.append("  Sparse-checkout patterns:")
        lines.extend(f"    {p}" for p in patterns)
    return "\n".join(lines)


def parse_git_version(version: str) -> tuple[int, int, int]:
    """Parses a version such as '2.39.2' or 'git version 2.39.2.windows.1'.

    Raises:
        ValueError: If no major.minor.patch triple is present.
    """
    match = re.search(r"(\d+)\.(\d+)\.(\d+)", version)
    if not match:
        raise ValueError(f"Invalid git version format '{version}'")
    major, minor, patch = (int(g) for g in match.groups())
    return major, minor, patch


def check_git_availability(system: System) -> str:
    """Ensures git is installed and new enough for cone-mode sparse checkout.

    Returns:
        str: The detected version string.

    Raises:
        GitError: If git is missing, broken or older than MIN_GIT_VERSION.
    """
    try:
        output = GitRepo(system, system.current_dir()).version()
    except GitError as e:
        raise GitError(
            "Git command not found. Please ensure Git is installed and "
            f"available in PATH ({e.message})"
        ) from e
    try:
        version = parse_git_version(output)
    except ValueError:
        logger.warning(f"Could not parse git version from '{output}'")
        return output
    if version < MIN_GIT_VERSION:
        required = ".".join(map(str, MIN_GIT_VERSION))
        raise GitError(
            f"Git version {'.'.join(map(str, version))} is too old. "
            f"Git {required} or later is required for sparse checkout support"
        )
    logger.debug(f"Using {output}")
    return output
