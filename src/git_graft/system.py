import logging
import os
import posixpath
import shutil
import subprocess
import tempfile
from collections.abc import Callable, Collection, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

PathLike = str | os.PathLike


@dataclass(frozen=True)
class WalkEntry:
    """A single entry produced by a recursive directory walk.

    Attributes:
        path (Path): The entry path, prefixed with the walked root.
        is_file (bool): True for regular files.
        is_dir (bool): True for directories.
        size (int): Size in bytes (0 for directories).
    """

    path: Path
    is_file: bool
    is_dir: bool
    size: int = 0


@dataclass(frozen=True)
class ProcessResult:
    """The outcome of a child process.

    Attributes:
        returncode (int): The exit status.
        stdout (str): Captured standard output ('' when not captured).
        stderr (str): Captured standard error ('' when not captured).
    """

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class System:
    """Base class defining the interface for every side effect the engine performs.

    Nothing outside this module touches the environment, the filesystem or
    child processes directly, so an in-memory implementation can stand in for
    the operating system in tests.
    """

    # --- Environment ---

    def env_var(self, key: str) -> str | None:
        """Returns the value of an environment variable, or None if unset."""
        raise NotImplementedError

    def current_dir(self) -> Path:
        """Returns the current working directory."""
        raise NotImplementedError

    # --- Probes ---

    def exists(self, path: PathLike) -> bool:
        raise NotImplementedError

    def is_file(self, path: PathLike) -> bool:
        raise NotImplementedError

    def is_dir(self, path: PathLike) -> bool:
        raise NotImplementedError

    # --- Content ---

    def read_bytes(self, path: PathLike) -> bytes:
        raise NotImplementedError

    def read_text(self, path: PathLike) -> str:
        """Reads a file as UTF-8 text.

        Raises:
            UnicodeDecodeError: If the content is not valid UTF-8.
        """
        return self.read_bytes(path).decode("utf-8")

    def write_bytes(self, path: PathLike, data: bytes) -> None:
        """Writes bytes to a file, creating or truncating it."""
        raise NotImplementedError

    def copy_file(self, source: PathLike, target: PathLike) -> int:
        """Copies a single file, overwriting the target.

        Returns:
            int: The number of bytes copied.
        """
        raise NotImplementedError

    # --- Structure ---

    def create_dir_all(self, path: PathLike) -> None:
        """Creates a directory and any missing parents (no error if present)."""
        raise NotImplementedError

    def remove_dir_all(self, path: PathLike) -> None:
        """Removes a directory tree. A missing path is not an error."""
        raise NotImplementedError

    def remove_file(self, path: PathLike) -> None:
        raise NotImplementedError

    def walk(self, root: PathLike, exclude: Collection[str] = ()) -> list[WalkEntry]:
        """Recursively lists everything below `root` (excluding `root` itself).

        Args:
            root (PathLike): The directory to walk.
            exclude (Collection[str]): Directory names that are neither
                reported nor descended into.

        Returns:
            list[WalkEntry]: Entries in sorted, depth-first order.
        """
        raise NotImplementedError

    @contextmanager
    def temp_dir(self) -> Iterator[Path]:
        """Acquires a private temporary directory.

        The directory and everything in it are removed when the context exits,
        whether it exits normally, by early return or by an exception.

        Yields:
            Path: The temporary directory.
        """
        raise NotImplementedError
        yield  # pragma: no cover

    # --- Processes ---

    def run(
        self,
        args: list[str] | str,
        cwd: PathLike | None = None,
        capture: bool = True,
        shell: bool = False,
    ) -> ProcessResult:
        """Runs a child process to completion.

        Args:
            args (list[str] | str): The argv list, or a command string when
                `shell` is True.
            cwd (PathLike | None): Working directory for the child.
            capture (bool): Whether to capture stdout/stderr. When False the
                child's streams are inherited from this process.
            shell (bool): Whether to run `args` through the platform shell.

        Returns:
            ProcessResult: The exit status and any captured output.

        Raises:
            OSError: If the program cannot be started.
        """
        raise NotImplementedError


class RealSystem(System):
    """System implementation delegating to the operating system."""

    def env_var(self, key: str) -> str | None:
        return os.environ.get(key)

    def current_dir(self) -> Path:
        return Path.cwd()

    def exists(self, path: PathLike) -> bool:
        return os.path.lexists(path)

    def is_file(self, path: PathLike) -> bool:
        return os.path.isfile(path)

    def is_dir(self, path: PathLike) -> bool:
        return os.path.isdir(path)

    def read_bytes(self, path: PathLike) -> bytes:
        return Path(path).read_bytes()

    def write_bytes(self, path: PathLike, data: bytes) -> None:
        Path(path).write_bytes(data)

    def copy_file(self, source: PathLike, target: PathLike) -> int:
        shutil.copy2(source, target)
        return os.path.getsize(target)

    def create_dir_all(self, path: PathLike) -> None:
        os.makedirs(path, exist_ok=True)

    def remove_dir_all(self, path: PathLike) -> None:
        if os.path.islink(path) or os.path.isfile(path):
            os.unlink(path)
        elif os.path.isdir(path):
            shutil.rmtree(path)

    def remove_file(self, path: PathLike) -> None:
        os.unlink(path)

    def walk(self, root: PathLike, exclude: Collection[str] = ()) -> list[WalkEntry]:
        entries = []
        for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
            dirnames[:] = sorted(d for d in dirnames if d not in exclude)
            base = Path(dirpath)
            for name in dirnames:
                entries.append(WalkEntry(base / name, is_file=False, is_dir=True))
            for name in sorted(filenames):
                path = base / name
                is_file = path.is_file()
                size = path.stat().st_size if is_file else 0
                entries.append(WalkEntry(path, is_file=is_file, is_dir=False, size=size))
        return sorted(entries, key=lambda e: e.path.parts)

    @contextmanager
    def temp_dir(self) -> Iterator[Path]:
        with tempfile.TemporaryDirectory(prefix=f"{APP_NAME}-") as tmp:
            logger.debug(f"Created temporary directory {tmp}")
            yield Path(tmp)
        logger.debug(f"Removed temporary directory {tmp}")

    def run(
        self,
        args: list[str] | str,
        cwd: PathLike | None = None,
        capture: bool = True,
        shell: bool = False,
    ) -> ProcessResult:
        res = subprocess.run(
            args,
            cwd=cwd,
            capture_output=capture,
            text=True,
            shell=shell,
        )
        if capture:
            return ProcessResult(res.returncode, res.stdout, res.stderr)
        return ProcessResult(res.returncode)


CommandHandler = Callable[[list[str], PurePosixPath | None], ProcessResult]


class MockSystem(System):
    """In-memory system used for deterministic tests.

    Files are byte strings keyed by absolute POSIX path; directories are a set
    of paths. Child processes are served by handlers registered per program
    name with `on_command`. No method performs any OS I/O.

    Attributes:
        env (dict[str, str]): The simulated environment.
        cwd (PurePosixPath): The simulated working directory.
        files (dict[PurePosixPath, bytes]): File contents.
        dirs (set[PurePosixPath]): Existing directories.
        calls (list[tuple[list[str] | str, PurePosixPath | None]]): Every
            process invocation, in order.
        temp_dirs (list[PurePosixPath]): Every temporary directory handed out.
    """

    def __init__(self, cwd: str = "/work"):
        self.env: dict[str, str] = {}
        self.cwd = PurePosixPath(cwd)
        self.files: dict[PurePosixPath, bytes] = {}
        self.dirs: set[PurePosixPath] = set()
        self.handlers: dict[str, CommandHandler] = {}
        self.calls: list[tuple[list[str] | str, PurePosixPath | None]] = []
        self.temp_dirs: list[PurePosixPath] = []
        self.read_only: set[PurePosixPath] = set()
        self._ensure_dir(PurePosixPath("/"))
        self._ensure_dir(self.cwd)

    # --- Builders ---

    def with_env(self, key: str, value: str) -> "MockSystem":
        self.env[key] = value
        return self

    def with_file(self, path: PathLike, contents: bytes | str) -> "MockSystem":
        if isinstance(contents, str):
            contents = contents.encode("utf-8")
        self.write_bytes(path, contents, create_parents=True)
        return self

    def with_dir(self, path: PathLike) -> "MockSystem":
        self.create_dir_all(path)
        return self

    def with_read_only(self, path: PathLike) -> "MockSystem":
        """Makes writes at or below `path` fail with PermissionError."""
        self.read_only.add(self._abs(path))
        return self

    def on_command(self, program: str, handler: CommandHandler) -> "MockSystem":
        """Registers the handler serving invocations of `program`.

        Shell invocations are served by the handler registered for "sh", which
        receives the command string as its single argument.
        """
        self.handlers[program] = handler
        return self

    # --- Internals ---

    def _abs(self, path: PathLike) -> PurePosixPath:
        p = PurePosixPath(os.fspath(path))
        if not p.is_absolute():
            p = self.cwd / p
        return PurePosixPath(posixpath.normpath(str(p)))

    def _ensure_dir(self, path: PurePosixPath) -> None:
        for parent in reversed(path.parents):
            self.dirs.add(parent)
        self.dirs.add(path)

    def _check_writable(self, path: PurePosixPath) -> None:
        for blocked in self.read_only:
            if path == blocked or blocked in path.parents:
                raise PermissionError(f"Permission denied: '{path}'")

    # --- Environment ---

    def env_var(self, key: str) -> str | None:
        return self.env.get(key)

    def current_dir(self) -> Path:
        return Path(str(self.cwd))

    # --- Probes ---

    def exists(self, path: PathLike) -> bool:
        p = self._abs(path)
        return p in self.files or p in self.dirs

    def is_file(self, path: PathLike) -> bool:
        return self._abs(path) in self.files

    def is_dir(self, path: PathLike) -> bool:
        return self._abs(path) in self.dirs

    # --- Content ---

    def read_bytes(self, path: PathLike) -> bytes:
        p = self._abs(path)
        if p in self.dirs:
            raise IsADirectoryError(f"Is a directory: '{p}'")
        if p not in self.files:
            raise FileNotFoundError(f"No such file: '{p}'")
        return self.files[p]

    def write_bytes(
        self, path: PathLike, data: bytes, create_parents: bool = False
    ) -> None:
        p = self._abs(path)
        self._check_writable(p)
        if p in self.dirs:
            raise IsADirectoryError(f"Is a directory: '{p}'")
        if create_parents:
            self._ensure_dir(p.parent)
        elif p.parent not in self.dirs:
            raise FileNotFoundError(f"No such directory: '{p.parent}'")
        self.files[p] = bytes(data)

    def copy_file(self, source: PathLike, target: PathLike) -> int:
        data = self.read_bytes(source)
        self.write_bytes(target, data)
        return len(data)

    # --- Structure ---

    def create_dir_all(self, path: PathLike) -> None:
        p = self._abs(path)
        for candidate in [*reversed(p.parents), p]:
            if candidate in self.files:
                raise FileExistsError(f"File exists: '{candidate}'")
        if p not in self.dirs:
            self._check_writable(p)
        self._ensure_dir(p)

    def remove_dir_all(self, path: PathLike) -> None:
        p = self._abs(path)
        if p in self.files:
            self._check_writable(p)
            del self.files[p]
            return
        if p not in self.dirs:
            return
        self._check_writable(p)
        self.files = {f: d for f, d in self.files.items() if p not in f.parents}
        self.dirs = {d for d in self.dirs if d != p and p not in d.parents}

    def remove_file(self, path: PathLike) -> None:
        p = self._abs(path)
        if p not in self.files:
            raise FileNotFoundError(f"No such file: '{p}'")
        self._check_writable(p)
        del self.files[p]

    def walk(self, root: PathLike, exclude: Collection[str] = ()) -> list[WalkEntry]:
        base = self._abs(root)
        if base not in self.dirs:
            raise FileNotFoundError(f"No such directory: '{base}'")

        def visible(p: PurePosixPath) -> bool:
            rel = p.relative_to(base)
            return not any(part in exclude for part in rel.parts)

        entries = []
        for d in self.dirs:
            if base in d.parents and visible(d):
                rel = d.relative_to(base)
                entries.append(WalkEntry(Path(root) / rel, is_file=False, is_dir=True))
        for f, data in self.files.items():
            if base in f.parents and visible(f):
                rel = f.relative_to(base)
                entries.append(
                    WalkEntry(Path(root) / rel, is_file=True, is_dir=False, size=len(data))
                )
        return sorted(entries, key=lambda e: e.path.parts)

    @contextmanager
    def temp_dir(self) -> Iterator[Path]:
        path = PurePosixPath(f"/tmp/{APP_NAME}-{len(self.temp_dirs)}")
        self._ensure_dir(path)
        self.temp_dirs.append(path)
        try:
            yield Path(str(path))
        finally:
            self.remove_dir_all(path)

    # --- Processes ---

    def run(
        self,
        args: list[str] | str,
        cwd: PathLike | None = None,
        capture: bool = True,
        shell: bool = False,
    ) -> ProcessResult:
        workdir = self._abs(cwd) if cwd is not None else None
        self.calls.append((args, workdir))
        if shell:
            program, argv = "sh", [str(args)]
        else:
            program, argv = args[0], list(args[1:])
        handler = self.handlers.get(program)
        if handler is None:
            raise FileNotFoundError(f"No such program: '{program}'")
        result = handler(argv, workdir)
        if not capture:
            return ProcessResult(result.returncode)
        return result


def get_system() -> System:
    """Factory function returning the system implementation for this process.

    Returns:
        System: A RealSystem bound to the operating system.
    """
    return RealSystem()
