from pathlib import Path

import pytest

from git_graft.checkout import TempCheckout
from git_graft.config import PullKind
from git_graft.errors import FilesystemError
from git_graft.repository import Repository
from git_graft.system import MockSystem, RealSystem
from git_graft.transfer import copy_source

REPO = Repository.resolve("org/tmpl", "main")


def _checkout(system: MockSystem, source: str, kind: PullKind) -> TempCheckout:
    system.with_dir("/tmp/co/.git")
    return TempCheckout(Path("/tmp/co"), source, kind, REPO)


def test_copy_file_creates_parents_and_overwrites(system: MockSystem) -> None:
    """Verifies that a file pull creates parent dirs and overwrites the target.

    Args:
        system (MockSystem): The in-memory system.
    """
    system.with_file("/tmp/co/a/b", "new").with_file("deep/dir/out", "old")
    co = _checkout(system, "a/b", PullKind.FILE)

    assert copy_source(system, co, "deep/dir/out", PullKind.FILE, reset=False) == 1
    assert system.read_text("deep/dir/out") == "new"

    assert copy_source(system, co, "fresh/path/out", PullKind.FILE, reset=False) == 1
    assert system.read_text("fresh/path/out") == "new"


def test_copy_file_onto_directory_fails(system: MockSystem) -> None:
    """Verifies that a file cannot replace an existing directory.

    Args:
        system (MockSystem): The in-memory system.
    """
    system.with_file("/tmp/co/a/b", "new").with_dir("out")
    co = _checkout(system, "a/b", PullKind.FILE)

    with pytest.raises(FilesystemError, match="a directory exists") as exc:
        copy_source(system, co, "out", PullKind.FILE, reset=False)

    assert exc.value.exit_code == 5
    assert exc.value.path == "out"


def test_copy_directory_skips_vcs_metadata(system: MockSystem) -> None:
    """Verifies that directory copies are recursive and never include .git.

    Args:
        system (MockSystem): The in-memory system.
    """
    (
        system.with_file("/tmp/co/src/a.txt", "a")
        .with_file("/tmp/co/src/nested/b.txt", "b")
        .with_file("/tmp/co/src/.git/HEAD", "ref")
        .with_dir("/tmp/co/src/empty")
    )
    co = _checkout(system, "src", PullKind.DIRECTORY)

    copied = copy_source(system, co, "out", PullKind.DIRECTORY, reset=False)

    assert copied == 2
    assert system.read_text("out/a.txt") == "a"
    assert system.read_text("out/nested/b.txt") == "b"
    assert system.is_dir("out/empty")
    assert not system.exists("out/.git")


def test_copy_directory_without_reset_keeps_unrelated_files(system: MockSystem) -> None:
    """Verifies that files not in the source survive a non-reset copy.

    Args:
        system (MockSystem): The in-memory system.
    """
    system.with_file("/tmp/co/src/a.txt", "new").with_file("out/a.txt", "old")
    system.with_file("out/local.txt", "mine")
    co = _checkout(system, "src", PullKind.DIRECTORY)

    copy_source(system, co, "out", PullKind.DIRECTORY, reset=False)

    assert system.read_text("out/a.txt") == "new"
    assert system.read_text("out/local.txt") == "mine"


def test_copy_directory_with_reset_removes_unrelated_files(system: MockSystem) -> None:
    """Verifies that reset wipes the target so it mirrors the source.

    Args:
        system (MockSystem): The in-memory system.
    """
    system.with_file("/tmp/co/src/a.txt", "new").with_file("out/local.txt", "mine")
    co = _checkout(system, "src", PullKind.DIRECTORY)

    copy_source(system, co, "out", PullKind.DIRECTORY, reset=True)

    assert system.read_text("out/a.txt") == "new"
    assert not system.exists("out/local.txt")


def test_copy_into_read_only_target_fails(system: MockSystem) -> None:
    """Verifies that a write failure surfaces as a FilesystemError.

    Args:
        system (MockSystem): The in-memory system.
    """
    system.with_file("/tmp/co/src/a.txt", "a").with_dir("out").with_read_only("out")
    co = _checkout(system, "src", PullKind.DIRECTORY)

    with pytest.raises(FilesystemError, match="Failed to copy file"):
        copy_source(system, co, "out", PullKind.DIRECTORY, reset=False)


def test_reset_of_read_only_target_fails(system: MockSystem) -> None:
    """Verifies that a failed reset surfaces as a FilesystemError.

    Args:
        system (MockSystem): The in-memory system.
    """
    system.with_file("/tmp/co/src/a.txt", "a").with_file("out/x", "x")
    system.with_read_only("out")
    co = _checkout(system, "src", PullKind.DIRECTORY)

    with pytest.raises(FilesystemError, match="Failed to reset target directory"):
        copy_source(system, co, "out", PullKind.DIRECTORY, reset=True)


def test_broken_symlink_is_a_filesystem_error(tmp_path: Path) -> None:
    """Verifies that a dangling symlink in the source fails the copy.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    source = tmp_path / "co" / "src"
    source.mkdir(parents=True)
    (source / "ok.txt").write_text("ok")
    (source / "dangling").symlink_to(tmp_path / "nowhere")
    co = TempCheckout(tmp_path / "co", "src", PullKind.DIRECTORY, REPO)

    with pytest.raises(FilesystemError, match="broken symlink"):
        copy_source(RealSystem(), co, tmp_path / "out", PullKind.DIRECTORY, reset=False)
