import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path, PurePath
from typing import Any

import yaml

from .constants import APP_NAME, DEFAULT_REF
from .errors import ConfigurationError
from .repository import Repository
from .system import System

logger = logging.getLogger(APP_NAME)

_TOP_LEVEL_KEYS = {"repository", "tag", "pulls"}
_PULL_KEYS = {
    "source",
    "target",
    "type",
    "repository",
    "tag",
    "reset",
    "commands",
    "replacements",
}
_REPLACEMENT_KEYS = {"source", "target", "valueFromEnv"}


class PullKind(str, Enum):
    """Whether a pull transfers a single file or a directory tree."""

    FILE = "file"
    DIRECTORY = "directory"

    @classmethod
    def parse(cls, value: str, context: str = "") -> "PullKind":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            prefix = f"{context}: " if context else ""
            raise ConfigurationError(
                f"{prefix}Invalid pull type '{value}'. Must be 'file' or 'directory'"
            ) from None


@dataclass(frozen=True)
class Replacement:
    """A literal placeholder substitution.

    Exactly one of `literal` and `env_var` is set. The value of an `env_var`
    replacement is read when the replacement engine runs, not at load time.

    Attributes:
        pattern (str): The exact text to search for.
        literal (str | None): The replacement text.
        env_var (str | None): Name of the environment variable holding the
            replacement text.
    """

    pattern: str
    literal: str | None = None
    env_var: str | None = None

    def __post_init__(self) -> None:
        if not self.pattern:
            raise ConfigurationError("Replacement source cannot be empty")
        has_literal = bool(self.literal)
        has_env = bool(self.env_var and self.env_var.strip())
        if has_literal and has_env:
            raise ConfigurationError(
                f"Replacement for '{self.pattern}' cannot specify both "
                "'target' and 'valueFromEnv'"
            )
        if not has_literal and not has_env:
            raise ConfigurationError(
                f"Replacement for '{self.pattern}' must specify either "
                "'target' or 'valueFromEnv'"
            )

    @classmethod
    def from_dict(cls, data: Any, context: str) -> "Replacement":
        """Builds a replacement from its YAML mapping.

        Args:
            data (Any): The parsed mapping (`source`, `target`, `valueFromEnv`).
            context (str): A label used in error messages.

        Raises:
            ConfigurationError: If the mapping is malformed.
        """
        if not isinstance(data, dict):
            raise ConfigurationError(f"{context}: Replacement must be a mapping")
        _warn_unknown_keys(context, data, _REPLACEMENT_KEYS)
        literal = data.get("target")
        env_var = data.get("valueFromEnv")
        try:
            return cls(
                pattern=str(data.get("source") or ""),
                literal=None if literal is None else str(literal),
                env_var=None if env_var is None else str(env_var),
            )
        except ConfigurationError as e:
            raise ConfigurationError(f"{context}: {e.message}") from None

    @classmethod
    def parse(cls, text: str) -> "Replacement":
        """Parses the command-line form `SOURCE=VALUE` or `SOURCE=env:VAR`.

        Raises:
            ConfigurationError: If there is no '=' separator.
        """
        pattern, sep, value = text.partition("=")
        if not sep:
            raise ConfigurationError(
                f"Invalid replacement '{text}'. Expected SOURCE=VALUE or SOURCE=env:VAR"
            )
        if value.startswith("env:"):
            return cls(pattern=pattern, env_var=value[len("env:") :])
        return cls(pattern=pattern, literal=value)

    def to_argument(self) -> str:
        """Renders the command-line form understood by `parse`."""
        if self.env_var:
            return f"{self.pattern}=env:{self.env_var}"
        return f"{self.pattern}={self.literal}"

    def to_dict(self) -> dict[str, str]:
        if self.env_var:
            return {"source": self.pattern, "valueFromEnv": self.env_var}
        return {"source": self.pattern, "target": self.literal or ""}


@dataclass(frozen=True)
class PullSpec:
    """One fully resolved, immutable pull.

    Attributes:
        source (str): Path inside the repository.
        target (str): Local destination path.
        repository (Repository): The resolved repository and ref.
        kind (PullKind): File or directory transfer.
        reset (bool): Whether to wipe a directory target before copying.
        commands (tuple[str, ...]): Shell commands run after copying.
        replacements (tuple[Replacement, ...]): Substitutions, in order.
    """

    source: str
    target: str
    repository: Repository
    kind: PullKind = PullKind.DIRECTORY
    reset: bool = False
    commands: tuple[str, ...] = ()
    replacements: tuple[Replacement, ...] = ()

    @property
    def label(self) -> str:
        return f"{self.source} -> {self.target}"


@dataclass
class PullEntry:
    """A pull as written in the config file or on the command line.

    Repository and tag are optional here; they are filled in from the global
    values when the config is resolved into `PullSpec`s.

    Attributes:
        from_cli (bool): True if the entry came from `--pull-*` options, in
            which case its own repository/tag beat the `--repository`/`--tag`
            overrides.
    """

    source: str
    target: str
    kind: PullKind = PullKind.DIRECTORY
    repository: str | None = None
    tag: str | None = None
    reset: bool = False
    commands: list[str] = field(default_factory=list)
    replacements: list[Replacement] = field(default_factory=list)
    from_cli: bool = False

    @classmethod
    def from_dict(cls, data: Any, index: int) -> "PullEntry":
        """Builds an entry from a YAML mapping.

        Args:
            data (Any): The parsed mapping.
            index (int): Zero-based position, used in error messages.

        Raises:
            ConfigurationError: If the mapping is malformed.
        """
        context = f"Pull operation #{index + 1}"
        if not isinstance(data, dict):
            raise ConfigurationError(f"{context}: Pull must be a mapping")
        _warn_unknown_keys(context, data, _PULL_KEYS)

        commands = data.get("commands") or []
        if not isinstance(commands, list):
            raise ConfigurationError(f"{context}: 'commands' must be a list")
        replacements = data.get("replacements") or []
        if not isinstance(replacements, list):
            raise ConfigurationError(f"{context}: 'replacements' must be a list")
        reset = data.get("reset", False)
        if not isinstance(reset, bool):
            raise ConfigurationError(f"{context}: 'reset' must be true or false")

        return cls(
            source=str(data.get("source") or ""),
            target=str(data.get("target") or ""),
            kind=PullKind.parse(data.get("type", PullKind.DIRECTORY.value), context),
            repository=_optional_str(data.get("repository")),
            tag=_optional_str(data.get("tag")),
            reset=reset,
            commands=[str(c) for c in commands],
            replacements=[
                Replacement.from_dict(r, f"Pull #{index + 1}, Replacement #{i + 1}")
                for i, r in enumerate(replacements)
            ],
        )

    def validate(self, index: int) -> None:
        """Checks the entry for missing fields and unsafe paths.

        Raises:
            ConfigurationError: On the first problem found.
        """
        context = f"Pull operation #{index + 1}"
        if not self.source.strip():
            raise ConfigurationError(f"{context}: Source path cannot be empty")
        if not self.target.strip():
            raise ConfigurationError(f"{context}: Target path cannot be empty")
        target = PurePath(self.target)
        if ".." in target.parts:
            raise ConfigurationError(
                f"{context}: Path contains unsafe directory traversal: '{self.target}'"
            )
        if target.is_absolute():
            raise ConfigurationError(
                f"{context}: Absolute paths are not allowed: '{self.target}'. "
                "Use relative paths instead."
            )
        for i, command in enumerate(self.commands):
            if not command.strip():
                raise ConfigurationError(f"{context}: Command #{i + 1} cannot be empty")


@dataclass
class GraftConfig:
    """The merged configuration for one run.

    Attributes:
        repository (str | None): Global repository from the config file.
        tag (str | None): Global ref from the config file.
        pulls (list[PullEntry]): The pulls, in execution order.
        override_repository (str | None): `--repository` from the command line.
        override_tag (str | None): `--tag` from the command line.
    """

    repository: str | None = None
    tag: str | None = None
    pulls: list[PullEntry] = field(default_factory=list)
    override_repository: str | None = None
    override_tag: str | None = None

    @classmethod
    def load(cls, system: System, path: str | Path) -> "GraftConfig":
        """Reads and parses a YAML configuration file.

        Args:
            system (System): The system used to read the file.
            path (str | Path): The configuration file.

        Returns:
            GraftConfig: The parsed (not yet validated) configuration.

        Raises:
            ConfigurationError: If the file is missing, unreadable or malformed.
        """
        if not system.is_file(path):
            raise ConfigurationError(
                f"Configuration file not found: {path}\n"
                "Create a graft.yaml file or specify a different path with --config"
            )
        try:
            text = system.read_text(path)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(
                f"Failed to read configuration file {path}: {e}"
            ) from e
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Config syntax error in {path}: {e}") from e
        logger.debug(f"Loaded configuration from {path}")
        return cls.from_dict(data if data is not None else {}, str(path))

    @classmethod
    def from_dict(cls, data: Any, origin: str = "<config>") -> "GraftConfig":
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration in {origin} must be a mapping")
        _warn_unknown_keys(origin, data, _TOP_LEVEL_KEYS)
        pulls = data.get("pulls") or []
        if not isinstance(pulls, list):
            raise ConfigurationError(f"'pulls' in {origin} must be a list")
        return cls(
            repository=_optional_str(data.get("repository")),
            tag=_optional_str(data.get("tag")),
            pulls=[PullEntry.from_dict(p, i) for i, p in enumerate(pulls)],
        )

    def merge(
        self,
        repository: str | None = None,
        tag: str | None = None,
        pulls: list[PullEntry] | None = None,
    ) -> "GraftConfig":
        """Applies command-line overrides.

        `repository` and `tag` take precedence over every value from the file.
        A non-empty `pulls` list replaces the file's pulls entirely.

        Returns:
            GraftConfig: A new, merged configuration.
        """
        merged = replace(self)
        if repository:
            merged.override_repository = repository
        if tag:
            merged.override_tag = tag
        if pulls:
            merged.pulls = list(pulls)
        return merged

    @property
    def effective_repository(self) -> str | None:
        return self.override_repository or self.repository

    @property
    def effective_tag(self) -> str | None:
        return self.override_tag or self.tag

    def repository_for(self, pull: PullEntry) -> str | None:
        """Returns the repository `pull` runs against, before normalization.

        Command-line pulls keep their own `--pull-repository` over
        `--repository`; file pulls are overridden by `--repository`.
        """
        if pull.from_cli:
            return pull.repository or self.override_repository or self.repository
        return self.override_repository or pull.repository or self.repository

    def tag_for(self, pull: PullEntry) -> str | None:
        """Returns the ref `pull` runs at (None means DEFAULT_REF)."""
        if pull.from_cli:
            return pull.tag or self.override_tag or self.tag
        return self.override_tag or pull.tag or self.tag

    def to_dict(self) -> dict[str, Any]:
        """Serializes the merged configuration in the config-file schema.

        Overrides are folded in, so loading the result reproduces the same
        pulls without any command-line options. Per-pull repository and tag
        are kept only where they differ from the global values.
        """
        repository = self.effective_repository
        tag = self.effective_tag
        data: dict[str, Any] = {}
        if repository:
            data["repository"] = repository
        if tag:
            data["tag"] = tag
        pulls = []
        for pull in self.pulls:
            entry: dict[str, Any] = {"source": pull.source, "target": pull.target}
            if pull.kind is not PullKind.DIRECTORY:
                entry["type"] = pull.kind.value
            pull_repository = self.repository_for(pull)
            if pull_repository and pull_repository != repository:
                entry["repository"] = pull_repository
            pull_tag = self.tag_for(pull)
            if pull_tag and pull_tag != tag:
                entry["tag"] = pull_tag
            if pull.reset:
                entry["reset"] = True
            if pull.commands:
                entry["commands"] = list(pull.commands)
            if pull.replacements:
                entry["replacements"] = [r.to_dict() for r in pull.replacements]
            pulls.append(entry)
        data["pulls"] = pulls
        return data

    def validate(self) -> None:
        """Checks the configuration as a whole.

        Raises:
            ConfigurationError: On the first problem found.
        """
        if not self.pulls:
            raise ConfigurationError(
                "Configuration must contain at least one pull operation"
            )
        for i, pull in enumerate(self.pulls):
            pull.validate(i)

    def resolve(self, base_dir: Path | None = None) -> list[PullSpec]:
        """Validates the configuration and resolves every pull.

        Repository and ref follow `repository_for` and `tag_for`; the ref
        falls back to DEFAULT_REF.

        Args:
            base_dir (Path | None): Directory that relative local repository
                paths are resolved against.

        Returns:
            list[PullSpec]: Immutable pulls, in configuration order.

        Raises:
            ConfigurationError: If validation fails or a pull has no repository.
        """
        self.validate()
        specs = []
        for i, pull in enumerate(self.pulls):
            repo = self.repository_for(pull)
            ref = self.tag_for(pull)
            if not repo:
                raise ConfigurationError(
                    f"No repository specified for pull operation #{i + 1}"
                )
            try:
                repository = Repository.resolve(repo, ref or DEFAULT_REF, base_dir)
            except ConfigurationError as e:
                raise ConfigurationError(
                    f"Pull operation #{i + 1}: {e.message}"
                ) from None
            specs.append(
                PullSpec(
                    source=pull.source.strip().strip("/"),
                    target=pull.target,
                    repository=repository,
                    kind=pull.kind,
                    reset=pull.reset,
                    commands=tuple(pull.commands),
                    replacements=tuple(pull.replacements),
                )
            )
        return specs


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _warn_unknown_keys(section: str, data: dict, valid: set[str]) -> None:
    invalid_keys = set(data.keys()) - valid
    if invalid_keys:
        logger.warning(
            f"Unknown config keys in [{section}]: "
            f"{', '.join(sorted(map(str, invalid_keys)))}. Ignoring."
        )
