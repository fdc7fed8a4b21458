import argparse
import logging
import sys
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import pull
from .checkout import check_git_availability
from .command_line import OutputFormat, generate_command_line, generate_config
from .config import GraftConfig, PullEntry, PullKind, Replacement
from .constants import APP_NAME, DEFAULT_CONFIG_FILE, EXIT_SUCCESS
from .errors import ConfigurationError, GraftError
from .pull import RunReport
from .system import System, get_system

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "1", "on"):
        return True
    if lowered in ("false", "no", "0", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got '{value}'")


class PullOptionAction(argparse.Action):
    """Collects `--pull-*` options into per-pull dictionaries.

    Every `--pull-source` opens a new pull; the other `--pull-*` options
    attach to the most recently opened one.
    """

    def __init__(self, option_strings: list[str], dest: str, key: str, **kwargs: Any):
        self.key = key
        super().__init__(option_strings, dest, **kwargs)

    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: Any,
        option_string: str | None = None,
    ) -> None:
        pulls = list(getattr(namespace, self.dest, None) or [])
        if self.key == "source":
            pulls.append({"source": values})
        elif not pulls:
            parser.error(f"{option_string} must follow a --pull-source option")
        elif self.key in ("commands", "replacements"):
            pulls[-1].setdefault(self.key, []).append(values)
        else:
            pulls[-1][self.key] = values
        setattr(namespace, self.dest, pulls)


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser for the `git-graft` command."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=(
            "Fetch files and directories from Git repositories into the "
            "local workspace."
        ),
    )
    parser.add_argument("--repository", metavar="REPO", help="Repository URL or account/repo")
    parser.add_argument("--tag", metavar="REF", help="Branch, tag or commit hash")
    parser.add_argument(
        "--config",
        metavar="PATH",
        default=DEFAULT_CONFIG_FILE,
        help=f"Configuration file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Check out and verify sources only"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    convert = parser.add_mutually_exclusive_group()
    convert.add_argument(
        "--to-command-line",
        action="store_true",
        help="Print the merged configuration as a command line and exit",
    )
    convert.add_argument(
        "--to-config",
        action="store_true",
        help="Print the merged configuration as YAML and exit",
    )
    parser.add_argument(
        "--output-format",
        default="shell",
        choices=[f.value for f in OutputFormat],
        help="Format for --to-command-line (default: shell)",
    )

    group = parser.add_argument_group(
        "pull options", "Each --pull-source starts a new pull; other --pull-* options apply to it."
    )
    group.add_argument(
        "--pull-source", action=PullOptionAction, dest="pulls", key="source",
        metavar="PATH", help="Source path in the repository",
    )
    group.add_argument(
        "--pull-target", action=PullOptionAction, dest="pulls", key="target",
        metavar="PATH", help="Target path in the local workspace",
    )
    group.add_argument(
        "--pull-type", action=PullOptionAction, dest="pulls", key="type",
        choices=[k.value for k in PullKind], help="file or directory (default: directory)",
    )
    group.add_argument(
        "--pull-repository", action=PullOptionAction, dest="pulls", key="repository",
        metavar="REPO", help="Repository for this pull",
    )
    group.add_argument(
        "--pull-tag", action=PullOptionAction, dest="pulls", key="tag",
        metavar="REF", help="Git reference for this pull",
    )
    group.add_argument(
        "--pull-reset", action=PullOptionAction, dest="pulls", key="reset",
        nargs="?", const=True, type=_parse_bool, metavar="BOOL",
        help="Remove the target directory before copying",
    )
    group.add_argument(
        "--pull-replacement", action=PullOptionAction, dest="pulls", key="replacements",
        metavar="SOURCE=VALUE", help="Replacement; use SOURCE=env:VAR to read a variable",
    )
    group.add_argument(
        "--pull-commands", action=PullOptionAction, dest="pulls", key="commands",
        metavar="COMMAND", help="Command to run after copying (repeatable)",
    )
    return parser


def pulls_from_args(raw_pulls: list[dict] | None) -> list[PullEntry]:
    """Converts the collected `--pull-*` dictionaries into pull entries.

    Raises:
        ConfigurationError: If a pull has no target or an invalid replacement.
    """
    entries = []
    for i, raw in enumerate(raw_pulls or []):
        if not raw.get("target"):
            raise ConfigurationError(
                f"Pull operation #{i + 1} ('{raw['source']}') has no --pull-target. "
                "Each source must have a corresponding target"
            )
        entries.append(
            PullEntry(
                source=raw["source"],
                target=raw["target"],
                kind=PullKind.parse(raw.get("type", PullKind.DIRECTORY.value)),
                repository=raw.get("repository"),
                tag=raw.get("tag"),
                reset=bool(raw.get("reset", False)),
                commands=list(raw.get("commands", [])),
                replacements=[Replacement.parse(r) for r in raw.get("replacements", [])],
                from_cli=True,
            )
        )
    return entries


def load_config(args: argparse.Namespace, system: System) -> GraftConfig:
    """Loads the config file (if any) and merges the command-line overrides.

    Raises:
        ConfigurationError: If no usable configuration exists.
    """
    cli_pulls = pulls_from_args(args.pulls)
    if system.is_file(args.config):
        config = GraftConfig.load(system, args.config)
    elif args.config != DEFAULT_CONFIG_FILE:
        raise ConfigurationError(f"Configuration file not found: {args.config}")
    elif cli_pulls:
        config = GraftConfig()
    else:
        raise ConfigurationError(
            "No configuration found. Create a graft.yaml file or provide "
            "pull arguments via the command line"
        )
    return config.merge(repository=args.repository, tag=args.tag, pulls=cli_pulls)


def setup_logging(level: int) -> None:
    """Configures the application logger to write to stderr.

    Args:
        level (int): The logging threshold.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)


def show_report(report: RunReport) -> None:
    """Prints a summary table of the attempted pulls."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Source", style="cyan")
    table.add_column("Target", style="cyan")
    table.add_column("Status")
    if report.dry_run:
        table.add_column("Would copy", justify="right")
        table.add_column("Would run")
    else:
        table.add_column("Files", justify="right")
        table.add_column("Replaced", justify="right")
        table.add_column("Commands", justify="right")

    for o in report.outcomes:
        if o.ok:
            status = "[green]Planned[/green]" if report.dry_run else "[green]Done[/green]"
        else:
            status = f"[bold red]Failed ({o.failed_at.value if o.failed_at else '?'})[/bold red]"
        row = [str(o.index + 1), escape(o.spec.source), escape(o.spec.target), status]
        if report.dry_run:
            plan = o.plan
            row.append(str(len(plan.files)) if plan else "-")
            row.append(escape("; ".join(plan.commands)) if plan and plan.commands else "-")
        else:
            row.extend([str(o.files_copied), str(o.files_replaced), str(o.commands_run)])
        table.add_row(*row)
    console.print(table)

    if report.dry_run:
        for o in report.outcomes:
            if o.plan and o.plan.reset:
                console.print(
                    f"   Pull #{o.index + 1} would reset [cyan]{escape(o.spec.target)}[/cyan]",
                    style="yellow",
                )
        if report.ok:
            console.print("Dry run complete. Run without --dry-run to apply.", style="yellow")
    elif report.ok:
        console.print(
            f"[bold green]✔ Completed {len(report.outcomes)} pull(s):[/bold green] "
            f"{report.files_copied} files copied, {report.files_replaced} files "
            f"rewritten, {report.commands_run} commands run."
        )
    if report.error is not None:
        err_console.print(f"[bold red]ERROR:[/bold red] {escape(str(report.error))}")


def run(args: argparse.Namespace, system: System) -> int:
    """Executes the command described by `args`.

    Returns:
        int: The process exit code.
    """
    try:
        config = load_config(args, system)
        if args.to_command_line:
            config.validate()
            fmt = OutputFormat.parse(args.output_format)
            print(generate_command_line(config, fmt))
            return EXIT_SUCCESS
        if args.to_config:
            config.validate()
            print(generate_config(config), end="")
            return EXIT_SUCCESS

        specs = config.resolve(base_dir=system.current_dir())
        check_git_availability(system)
    except GraftError as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {escape(str(e))}")
        return e.exit_code

    report = pull.execute(specs, system=system, dry_run=args.dry_run)
    show_report(report)
    return report.exit_code


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Git Graft CLI."""
    args = build_parser().parse_args(argv)
    if args.to_command_line or args.to_config:
        level = logging.ERROR
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    setup_logging(level)
    sys.exit(run(args, get_system()))


if __name__ == "__main__":
    main()
