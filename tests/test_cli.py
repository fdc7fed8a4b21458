import logging
from unittest.mock import MagicMock

import pytest

from git_graft import cli
from git_graft.config import PullKind, Replacement
from git_graft.errors import ConfigurationError
from git_graft.system import MockSystem

CONFIG = """
repository: org/tmpl
pulls:
  - source: a/b
    target: ./out
    type: file
    replacements:
      - source: "{{X}}"
        target: "Y"
"""


def _run(system: MockSystem, *argv: str) -> int:
    return cli.run(cli.build_parser().parse_args(list(argv)), system)


def test_pull_options_group_by_source() -> None:
    """Verifies that each --pull-source opens a pull the later options attach to."""
    args = cli.build_parser().parse_args(
        [
            "--pull-source", "a", "--pull-target", "x",
            "--pull-commands", "c1", "--pull-commands", "c2",
            "--pull-source", "b", "--pull-target", "y",
            "--pull-reset", "--pull-type", "file",
            "--pull-replacement", "{{K}}=env:KEY",
        ]
    )  # fmt: skip

    assert args.pulls == [
        {"source": "a", "target": "x", "commands": ["c1", "c2"]},
        {
            "source": "b",
            "target": "y",
            "reset": True,
            "type": "file",
            "replacements": ["{{K}}=env:KEY"],
        },
    ]

    entries = cli.pulls_from_args(args.pulls)
    assert [e.from_cli for e in entries] == [True, True]
    assert entries[1].kind is PullKind.FILE
    assert entries[1].replacements == [Replacement("{{K}}", env_var="KEY")]


def test_pull_reset_accepts_explicit_value() -> None:
    """Verifies that --pull-reset takes an optional boolean."""
    args = cli.build_parser().parse_args(
        ["--pull-source", "a", "--pull-target", "x", "--pull-reset", "false"]
    )

    assert args.pulls[0]["reset"] is False


def test_pull_option_before_source_is_rejected() -> None:
    """Verifies that pull options must follow a --pull-source."""
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["--pull-target", "x"])


def test_pull_without_target_is_rejected() -> None:
    """Verifies that a source without a target is a configuration error."""
    with pytest.raises(ConfigurationError, match="has no --pull-target"):
        cli.pulls_from_args([{"source": "a"}])


def test_run_from_config_file(make_remote, system: MockSystem) -> None:
    """Verifies a full run driven by ./graft.yaml.

    Args:
        make_remote: Factory for the scripted git remote.
        system (MockSystem): The in-memory system.
    """
    make_remote({"a/b": "hello {{X}}"})
    system.with_file("graft.yaml", CONFIG)

    assert _run(system) == 0
    assert system.read_text("out") == "hello Y"


def test_run_from_command_line_only(make_remote, system: MockSystem) -> None:
    """Verifies that pulls can be given entirely on the command line.

    Args:
        make_remote: Factory for the scripted git remote.
        system (MockSystem): The in-memory system.
    """
    remote = make_remote({"a/b": "hello {{X}}"}, refs={"v2"})

    code = _run(
        system,
        "--repository", "org/tmpl", "--tag", "v2",
        "--pull-source", "a/b", "--pull-target", "copy.txt", "--pull-type", "file",
        "--pull-replacement", "{{X}}=env:WHO",
    )  # fmt: skip

    assert code == 1
    assert system.read_text("copy.txt") == "hello {{X}}"

    system.with_env("WHO", "world")
    code = _run(
        system,
        "--repository", "org/tmpl", "--tag", "v2",
        "--pull-source", "a/b", "--pull-target", "copy.txt", "--pull-type", "file",
        "--pull-replacement", "{{X}}=env:WHO",
    )  # fmt: skip

    assert code == 0
    assert system.read_text("copy.txt") == "hello world"
    assert remote.fetched == ["v2", "v2"]


def test_run_missing_source_exits_2(
    make_remote, system: MockSystem, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that a missing source path exits with the Source error code.

    Args:
        make_remote: Factory for the scripted git remote.
        system (MockSystem): The in-memory system.
        capsys (pytest.CaptureFixture): Pytest fixture capturing output.
    """
    make_remote({"elsewhere": "x"})
    system.with_file("graft.yaml", CONFIG)

    assert _run(system) == 2
    assert "Source error" in capsys.readouterr().err


def test_run_without_any_configuration(
    system: MockSystem, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that running with neither a file nor pulls is a config error.

    Args:
        system (MockSystem): The in-memory system.
        capsys (pytest.CaptureFixture): Pytest fixture capturing output.
    """
    assert _run(system) == 1
    assert "No configuration found" in capsys.readouterr().err
    assert system.calls == []


def test_run_with_missing_explicit_config(system: MockSystem) -> None:
    """Verifies that an explicit --config path must exist.

    Args:
        system (MockSystem): The in-memory system.
    """
    assert _run(system, "--config", "custom.yaml") == 1


def test_run_with_missing_git(system: MockSystem) -> None:
    """Verifies that a missing git binary exits with the Git error code.

    Args:
        system (MockSystem): The in-memory system.
    """
    system.with_file("graft.yaml", CONFIG)

    assert _run(system) == 4


def test_to_command_line_prints_and_skips_git(
    system: MockSystem, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that --to-command-line prints the argv and performs no pulls.

    Args:
        system (MockSystem): The in-memory system.
        capsys (pytest.CaptureFixture): Pytest fixture capturing output.
    """
    system.with_file("graft.yaml", CONFIG)

    assert _run(system, "--to-command-line", "--output-format", "json") == 0

    out = capsys.readouterr().out
    assert '"--pull-source"' in out
    assert '"{{X}}=Y"' in out
    assert system.calls == []


def test_dry_run_writes_nothing(make_remote, system: MockSystem) -> None:
    """Verifies that --dry-run leaves the workspace untouched.

    Args:
        make_remote: Factory for the scripted git remote.
        system (MockSystem): The in-memory system.
    """
    make_remote({"a/b": "hello {{X}}"})
    system.with_file("graft.yaml", CONFIG)

    assert _run(system, "--dry-run") == 0
    assert not system.exists("out")


@pytest.mark.parametrize(
    "argv, level",
    [
        ([], logging.INFO),
        (["-v"], logging.DEBUG),
        (["--to-command-line"], logging.ERROR),
        (["--to-config"], logging.ERROR),
    ],
)
def test_main_sets_log_level_and_exit_code(
    mocker: MagicMock, argv: list[str], level: int
) -> None:
    """Verifies that `main` configures logging and exits with the run's code.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
        argv (list[str]): Command-line arguments.
        level (int): The expected logging level.
    """
    mock_logging = mocker.patch("git_graft.cli.setup_logging")
    mocker.patch("git_graft.cli.run", return_value=3)

    with pytest.raises(SystemExit) as exc:
        cli.main(argv)

    assert exc.value.code == 3
    mock_logging.assert_called_once_with(level)


def test_to_config_prints_yaml(system: MockSystem, capsys: pytest.CaptureFixture) -> None:
    """Verifies that --to-config prints command-line pulls as a config file.

    Args:
        system (MockSystem): The in-memory system.
        capsys (pytest.CaptureFixture): Pytest fixture capturing output.
    """
    code = _run(
        system,
        "--repository", "my_organization/repo", "--tag", "main",
        "--pull-source", "src", "--pull-target", "dst", "--pull-reset", "true",
        "--pull-replacement", "{{VAR}}=env:MY_ENV",
        "--to-config",
    )  # fmt: skip

    out = capsys.readouterr().out
    assert code == 0
    assert "repository: my_organization/repo" in out
    assert "reset: true" in out
    assert "valueFromEnv: MY_ENV" in out
    assert system.calls == []


def test_conversion_modes_are_exclusive() -> None:
    """Verifies that --to-config and --to-command-line cannot be combined."""
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["--to-config", "--to-command-line"])
