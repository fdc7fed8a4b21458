"""Shared fixtures: an in-memory system and a scripted git remote."""

from pathlib import PurePosixPath

import pytest

from git_graft.system import MockSystem, ProcessResult


class FakeRemote:
    """Serves `git` invocations against an in-memory remote repository.

    Supports the subset of git the checkout provider uses. `checkout`
    materializes the files inside the sparse-checkout cone (plus, as cone mode
    does, the files directly inside each ancestor directory of the cone).

    Attributes:
        files (dict[str, bytes]): Remote content keyed by repo-relative path.
        refs (set[str]): Refs that can be fetched.
        url (str | None): The URL registered with `git remote add`.
        fetched (list[str]): Every ref fetched, in order.
    """

    def __init__(
        self,
        system: MockSystem,
        files: dict[str, bytes | str],
        refs: set[str] | None = None,
        version: str = "git version 2.43.0",
    ):
        self.system = system
        self.files = {
            k: v.encode("utf-8") if isinstance(v, str) else v for k, v in files.items()
        }
        self.refs = refs if refs is not None else {"main"}
        self.version = version
        self.url: str | None = None
        self.cone: list[str] = []
        self.fetched: list[str] = []
        system.on_command("git", self)

    def _in_cone(self, path: str) -> bool:
        parent = str(PurePosixPath(path).parent)
        for cone in self.cone:
            if path == cone or path.startswith(cone + "/"):
                return True
            ancestors = {str(p) for p in PurePosixPath(cone).parents}
            if parent in ancestors:
                return True
        return False

    def __call__(self, argv: list[str], cwd: PurePosixPath | None) -> ProcessResult:
        cmd = argv[0]
        if cmd == "--version":
            return ProcessResult(0, self.version + "\n")
        assert cwd is not None
        if cmd == "init":
            self.system.create_dir_all(cwd / ".git")
        elif cmd == "remote":
            self.url = argv[3]
        elif cmd == "sparse-checkout" and argv[1] == "set":
            self.cone = list(argv[2:])
            self.system.with_file(
                cwd / ".git" / "info" / "sparse-checkout", "\n".join(self.cone)
            )
        elif cmd == "fetch":
            ref = argv[-1]
            if ref not in self.refs:
                return ProcessResult(128, "", f"fatal: couldn't find remote ref {ref}")
            self.fetched.append(ref)
        elif cmd == "checkout":
            for path, data in self.files.items():
                if self._in_cone(path):
                    self.system.with_file(cwd / path, data)
        return ProcessResult(0)


@pytest.fixture
def system() -> MockSystem:
    """An empty in-memory system rooted at /work."""
    return MockSystem()


@pytest.fixture
def make_remote(system: MockSystem):
    """Factory fixture registering a FakeRemote on the `system` fixture."""

    def factory(files: dict[str, bytes | str], **kwargs) -> FakeRemote:
        return FakeRemote(system, files, **kwargs)

    return factory
