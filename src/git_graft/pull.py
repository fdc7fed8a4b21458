"""Pull orchestration: checkout, copy, replace and run commands for each pull.

Pulls run strictly one after another in configuration order. The first
failing pull stops the run; its error, and every pull attempted before it,
are recorded in the returned `RunReport`.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .checkout import TempCheckout, checkout
from .commands import run_commands
from .config import PullKind, PullSpec
from .constants import APP_NAME, EXIT_SUCCESS, VCS_METADATA_DIRS
from .errors import FilesystemError, GraftError
from .replace import apply_replacements
from .system import System, get_system
from .transfer import copy_source

logger = logging.getLogger(APP_NAME)


class PullState(str, Enum):
    """Lifecycle of a single pull.

    PENDING -> CHECKED_OUT -> COPIED -> REPLACED -> COMMANDS_RUN -> DONE, with
    FAILED reachable from any state.
    """

    PENDING = "pending"
    CHECKED_OUT = "checked-out"
    COPIED = "copied"
    REPLACED = "replaced"
    COMMANDS_RUN = "commands-run"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    PullState.PENDING: {PullState.CHECKED_OUT},
    PullState.CHECKED_OUT: {PullState.COPIED, PullState.DONE},
    PullState.COPIED: {PullState.REPLACED},
    PullState.REPLACED: {PullState.COMMANDS_RUN},
    PullState.COMMANDS_RUN: {PullState.DONE},
    PullState.DONE: set(),
    PullState.FAILED: set(),
}


@dataclass(frozen=True)
class PullPlan:
    """What a pull would do, as reported by a dry run.

    Attributes:
        files (tuple[str, ...]): Files that would be copied, relative to the
            source path (the source file name for file pulls).
        reset (bool): Whether the target would be wiped first.
        replacements (int): Number of replacements that would be applied.
        commands (tuple[str, ...]): Commands that would be run.
    """

    files: tuple[str, ...]
    reset: bool
    replacements: int
    commands: tuple[str, ...]


@dataclass
class PullOutcome:
    """The result of executing one pull.

    Attributes:
        index (int): Zero-based position in the run.
        spec (PullSpec): The pull that was executed.
        state (PullState): The final state (DONE or FAILED on completion).
        failed_at (PullState | None): The last state reached before failing.
        error (GraftError | None): The failure, if any.
        files_copied (int): Files copied into the target.
        files_replaced (int): Files modified by replacements.
        commands_run (int): Commands that exited successfully.
        plan (PullPlan | None): The dry-run plan, when in dry-run mode.
    """

    index: int
    spec: PullSpec
    state: PullState = PullState.PENDING
    failed_at: PullState | None = None
    error: GraftError | None = None
    files_copied: int = 0
    files_replaced: int = 0
    commands_run: int = 0
    plan: PullPlan | None = None

    @property
    def ok(self) -> bool:
        return self.state is PullState.DONE

    def advance(self, state: PullState) -> None:
        """Moves to `state`.

        Raises:
            RuntimeError: If the transition is not part of the lifecycle.
        """
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid pull transition {self.state.value} -> {state.value}")
        logger.debug(f"Pull #{self.index + 1}: {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, error: GraftError) -> None:
        self.failed_at = self.state
        self.error = error.for_pull(self.spec.source, self.spec.target)
        self.state = PullState.FAILED


@dataclass
class RunReport:
    """The ordered outcomes of every pull attempted in a run.

    Attributes:
        outcomes (list[PullOutcome]): One entry per attempted pull.
        dry_run (bool): Whether the run was a dry run.
    """

    outcomes: list[PullOutcome] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def error(self) -> GraftError | None:
        for o in self.outcomes:
            if o.error is not None:
                return o.error
        return None

    @property
    def exit_code(self) -> int:
        error = self.error
        return error.exit_code if error is not None else EXIT_SUCCESS

    @property
    def files_copied(self) -> int:
        return sum(o.files_copied for o in self.outcomes)

    @property
    def files_replaced(self) -> int:
        return sum(o.files_replaced for o in self.outcomes)

    @property
    def commands_run(self) -> int:
        return sum(o.commands_run for o in self.outcomes)


class PullOrchestrator:
    """Executes pulls through the checkout, copy, replace and command engines.

    Attributes:
        system (System): The system every side effect goes through.
        dry_run (bool): If True, stop each pull after checkout and
            verification and record a `PullPlan` instead.
    """

    def __init__(self, system: System, dry_run: bool = False):
        self.system = system
        self.dry_run = dry_run

    def execute(self, pulls: list[PullSpec]) -> RunReport:
        """Runs `pulls` in order, stopping at the first failure.

        Args:
            pulls (list[PullSpec]): The resolved pulls.

        Returns:
            RunReport: Outcomes for exactly the pulls attempted.
        """
        report = RunReport(dry_run=self.dry_run)
        for index, spec in enumerate(pulls):
            logger.info(f"Pull #{index + 1}: {spec.label} ({spec.kind.value})")
            outcome = self.run_pull(index, spec)
            report.outcomes.append(outcome)
            if not outcome.ok:
                logger.error(str(outcome.error))
                remaining = len(pulls) - index - 1
                if remaining:
                    logger.info(f"Skipping {remaining} remaining pull(s)")
                break
        return report

    def run_pull(self, index: int, spec: PullSpec) -> PullOutcome:
        """Executes a single pull and records its outcome.

        The temporary checkout is always removed before this returns.
        """
        outcome = PullOutcome(index, spec)
        try:
            with checkout(
                self.system, spec.repository, spec.source, spec.kind
            ) as temp:
                outcome.advance(PullState.CHECKED_OUT)
                if self.dry_run:
                    outcome.plan = self._plan(temp, spec)
                    outcome.advance(PullState.DONE)
                    return outcome
                self._transfer(temp, spec, outcome)
            outcome.advance(PullState.DONE)
        except GraftError as e:
            outcome.fail(e)
        except OSError as e:
            outcome.fail(FilesystemError(str(e), path=getattr(e, "filename", None)))
        return outcome

    def _transfer(self, temp: TempCheckout, spec: PullSpec, outcome: PullOutcome) -> None:
        outcome.files_copied = copy_source(
            self.system, temp, spec.target, spec.kind, spec.reset
        )
        outcome.advance(PullState.COPIED)

        outcome.files_replaced = apply_replacements(
            self.system, spec.target, spec.replacements
        )
        outcome.advance(PullState.REPLACED)

        workdir = Path(spec.target)
        if spec.kind is PullKind.FILE:
            workdir = workdir.parent
        outcome.commands_run = run_commands(self.system, workdir, spec.commands)
        outcome.advance(PullState.COMMANDS_RUN)

    def _plan(self, temp: TempCheckout, spec: PullSpec) -> PullPlan:
        if spec.kind is PullKind.FILE:
            files = (temp.source.name,)
        else:
            files = tuple(
                str(e.path.relative_to(temp.source))
                for e in self.system.walk(temp.source, exclude=VCS_METADATA_DIRS)
                if e.is_file
            )
        return PullPlan(
            files=files,
            reset=spec.reset,
            replacements=len(spec.replacements),
            commands=spec.commands,
        )


def execute(
    pulls: list[PullSpec], system: System | None = None, dry_run: bool = False
) -> RunReport:
    """Executes a run of pulls.

    Args:
        pulls (list[PullSpec]): The resolved pulls, in execution order.
        system (System | None): The system to use. Defaults to `get_system()`.
        dry_run (bool): Stop each pull after checkout and verification.

    Returns:
        RunReport: The outcomes of the attempted pulls.
    """
    return PullOrchestrator(system or get_system(), dry_run=dry_run).execute(pulls)
