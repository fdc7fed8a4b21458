"""Repository string normalization.

Accepts short `account/repo` names, HTTPS/HTTP URLs, SSH URLs, `file://` URLs
and local paths, and turns them into a URL git can fetch from.
"""

import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from .constants import DEFAULT_HOST
from .errors import ConfigurationError

_SHORT_FORM = re.compile(r"^[\w.-]+/[\w.-]+$")

SUPPORTED_FORMATS = (
    "Supported formats:\n"
    "  - Short: myorg/repo\n"
    "  - HTTPS: https://github.com/myorg/repo.git\n"
    "  - SSH: git@github.com:myorg/repo.git\n"
    "  - Local: file:///path/to/repo, /path/to/repo or ./relative/repo"
)


def is_local_path(url: str) -> bool:
    """Returns True if `url` names a repository on the local filesystem."""
    return url.startswith(("/", "./", "../", "file://")) or url in (".", "..")


def normalize_repository_url(url: str, base_dir: Path | None = None) -> str:
    """Converts a repository string into a canonical clone URL.

    Args:
        url (str): The repository as written by the user.
        base_dir (Path | None): Directory that relative local paths are
            resolved against. Relative paths are returned unchanged if None.

    Returns:
        str: The clone URL.

    Raises:
        ConfigurationError: If the string matches no supported format.
    """
    url = url.strip()
    if not url:
        raise ConfigurationError(f"Repository URL cannot be empty.\n{SUPPORTED_FORMATS}")

    if url.startswith(("https://", "http://")):
        return url if url.endswith(".git") else f"{url}.git"
    if url.startswith(("git@", "ssh://")):
        return url
    if url.startswith("file://"):
        return url
    if is_local_path(url):
        if url.startswith("/") or base_dir is None:
            return url
        return str(PurePosixPath(base_dir.as_posix()) / url)
    if _SHORT_FORM.match(url):
        return f"{DEFAULT_HOST}/{url}.git"

    raise ConfigurationError(
        f"Unsupported repository URL format: '{url}'\n{SUPPORTED_FORMATS}"
    )


@dataclass(frozen=True)
class Repository:
    """A repository reference resolved for one pull.

    Attributes:
        original (str): The repository string as configured.
        url (str): The normalized clone URL.
        ref (str): The branch, tag or commit to fetch.
    """

    original: str
    url: str
    ref: str

    @classmethod
    def resolve(
        cls, original: str, ref: str, base_dir: Path | None = None
    ) -> "Repository":
        """Normalizes `original` and pairs it with `ref`.

        Raises:
            ConfigurationError: If the URL is unsupported or the ref is empty.
        """
        if not ref or not ref.strip():
            raise ConfigurationError("Git reference (tag/branch) cannot be empty")
        return cls(original, normalize_repository_url(original, base_dir), ref.strip())

    def __str__(self) -> str:
        return f"{self.original}@{self.ref}"
