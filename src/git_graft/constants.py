"""Global constants for Git Graft.

This module defines application identifiers, default file locations, and the
tunables shared by the checkout, copy and replacement engines.
"""

# --- Identity ---
APP_NAME = "git-graft"
"""str: The human-readable application name (also the logger name)."""

# --- Configuration ---
DEFAULT_CONFIG_FILE = "./graft.yaml"
"""str: The configuration file read when `--config` is not given."""

DEFAULT_REF = "main"
"""str: The git reference used when neither the pull nor the config sets one."""

DEFAULT_HOST = "https://github.com"
"""str: The host prepended to short `account/repo` repository strings."""

# --- Git ---
MIN_GIT_VERSION = (2, 25, 0)
"""tuple[int, int, int]: Oldest git release with `sparse-checkout --cone`."""

VCS_METADATA_DIRS = frozenset({".git", ".hg", ".svn"})
"""frozenset[str]: Directory names never copied out of a checkout."""

# --- Replacement ---
BINARY_PROBE_BYTES = 8192
"""int: Size of the leading window inspected by the binary-content probe."""

BINARY_CONTROL_BYTES = frozenset(
    set(range(0x00, 0x09)) | {0x0B} | set(range(0x0E, 0x1B)) | set(range(0x1C, 0x20))
)
"""
frozenset[int]: Control bytes that mark a file as binary. Tab, newline,
carriage return, form feed and escape are allowed in text.
"""

# --- Exit codes ---
EXIT_SUCCESS = 0
EXIT_CONFIGURATION = 1
EXIT_SOURCE = 2
EXIT_COMMAND = 3
EXIT_GIT = 4
EXIT_FILESYSTEM = 5
