import logging
from pathlib import Path

from .constants import APP_NAME
from .errors import GitError
from .system import System

logger = logging.getLogger(APP_NAME)


class GitRepo:
    """A wrapper around the Git command-line interface for a specific working tree.

    Every invocation goes through the injected `System`, so the wrapper runs
    against a real git binary in production and against scripted handlers in
    tests.

    Attributes:
        system (System): The system used to spawn git.
        path (Path): The working tree root.
    """

    def __init__(self, system: System, path: Path):
        """Initializes the GitRepo instance.

        Args:
            system (System): The system used to spawn git.
            path (Path): The working tree root. It need not be a repository
                yet; see `init`.
        """
        self.system = system
        self.path = path

    def _run(self, args: list[str], capture: bool = True) -> str:
        """Executes a Git command within the working tree.

        Args:
            args (list[str]): Arguments to pass to git.
            capture (bool, optional): Whether to capture and return stdout.
                Defaults to True.

        Returns:
            str: The stripped stdout if captured, otherwise ''.

        Raises:
            GitError: If git cannot be started or exits non-zero.
        """
        logger.debug(f"git {' '.join(args)} (in {self.path})")
        try:
            res = self.system.run(["git", *args], cwd=self.path, capture=capture)
        except OSError as e:
            raise GitError(f"Could not run git: {e}") from e
        if not res.ok:
            detail = res.stderr.strip() or f"exit code {res.returncode}"
            raise GitError(f"'git {args[0]}' failed: {detail}")
        return res.stdout.strip() if capture else ""

    def init(self) -> None:
        """Creates an empty repository in the working tree."""
        self._run(["init", "--quiet"])

    def remote_add(self, name: str, url: str) -> None:
        """Registers a remote.

        Args:
            name (str): The remote name (e.g. 'origin').
            url (str): The clone URL.
        """
        self._run(["remote", "add", name, url])

    def sparse_checkout_init(self) -> None:
        """Enables sparse-checkout in cone mode."""
        self._run(["sparse-checkout", "init", "--cone"])

    def sparse_checkout_set(self, *paths: str) -> None:
        """Constrains the sparse-checkout cone to the given paths."""
        self._run(["sparse-checkout", "set", *paths])

    def fetch(self, remote: str, ref: str, depth: int | None = 1) -> None:
        """Fetches a single ref without downloading blobs up front.

        Args:
            remote (str): The remote name.
            ref (str): A branch, tag or commit hash.
            depth (int | None, optional): History depth. Defaults to 1.
        """
        cmd = ["fetch", "--quiet", "--filter=blob:none"]
        if depth:
            cmd.append(f"--depth={depth}")
        cmd.extend([remote, ref])
        self._run(cmd)

    def checkout(self, ref: str) -> None:
        """Materializes the working tree at `ref` (detached)."""
        self._run(["checkout", "--quiet", "--detach", ref])

    def sparse_patterns(self) -> list[str]:
        """Returns the configured sparse-checkout patterns, or [] if unavailable."""
        pattern_file = self.path / ".git" / "info" / "sparse-checkout"
        if not self.system.is_file(pattern_file):
            return []
        try:
            return self.system.read_text(pattern_file).splitlines()
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Could not read sparse-checkout patterns: {e}")
            return []

    def version(self) -> str:
        """Returns the raw `git --version` output."""
        return self._run(["--version"])
