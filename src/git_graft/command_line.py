"""Renders a merged configuration as an equivalent invocation or config file."""

import json
import shlex
from enum import Enum

import yaml

from .config import GraftConfig, PullEntry, PullKind
from .constants import APP_NAME
from .errors import ConfigurationError


class OutputFormat(str, Enum):
    SHELL = "shell"
    JSON = "json"

    @classmethod
    def parse(cls, value: str) -> "OutputFormat":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Invalid format: {value}. Use 'shell' or 'json'"
            ) from None


def build_command_args(config: GraftConfig) -> list[str]:
    """Builds the argv that reproduces `config` without a config file.

    Per-pull repository and tag are emitted only where they differ from the
    global values; the pull type only where it is not the default.
    """
    args = [APP_NAME]
    repository = config.effective_repository
    tag = config.effective_tag
    if repository:
        args.extend(["--repository", repository])
    if tag:
        args.extend(["--tag", tag])
    for pull in config.pulls:
        args.extend(_pull_args(config, pull, repository, tag))
    return args


def _pull_args(
    config: GraftConfig, pull: PullEntry, repository: str | None, tag: str | None
) -> list[str]:
    args = ["--pull-source", pull.source, "--pull-target", pull.target]
    if pull.kind is not PullKind.DIRECTORY:
        args.extend(["--pull-type", pull.kind.value])
    pull_repository = config.repository_for(pull)
    if pull_repository and pull_repository != repository:
        args.extend(["--pull-repository", pull_repository])
    pull_tag = config.tag_for(pull)
    if pull_tag and pull_tag != tag:
        args.extend(["--pull-tag", pull_tag])
    if pull.reset:
        args.append("--pull-reset")
    for replacement in pull.replacements:
        args.extend(["--pull-replacement", replacement.to_argument()])
    for command in pull.commands:
        args.extend(["--pull-commands", command])
    return args


def format_as_shell(args: list[str]) -> str:
    """Formats argv as a shell command, one option per continuation line."""
    lines = [shlex.quote(args[0])]
    i = 1
    while i < len(args):
        token = shlex.quote(args[i])
        if i + 1 < len(args) and not args[i + 1].startswith("--"):
            token += " " + shlex.quote(args[i + 1])
            i += 1
        lines.append(token)
        i += 1
    return " \\\n  ".join(lines)


def generate_command_line(config: GraftConfig, fmt: OutputFormat) -> str:
    """Converts `config` to a shell command or a JSON argv array."""
    args = build_command_args(config)
    if fmt is OutputFormat.JSON:
        return json.dumps(args, indent=2)
    return format_as_shell(args)


def generate_config(config: GraftConfig) -> str:
    """Converts `config` (command-line overrides included) to config-file YAML."""
    return yaml.safe_dump(
        config.to_dict(), sort_keys=False, default_flow_style=False, allow_unicode=True
    )
