"""
Line-preserving key/value config store for the Withings CLI.

Config files are TOML-like: one ``key = "quoted value"`` per line, ``#`` and
``//`` comments (whole-line and inline, quote-aware), ``[section]`` headers
tolerated but not modeled. The store keeps the raw lines so that a
hand-edited file keeps its layout: Set rewrites a key's line in place,
Unset removes exactly that line, everything else is written back verbatim.

Two independent instances are used per invocation:
- project: ``withings-cli.toml`` in the current working directory
- user: ``~/.config/withings-cli/config.toml`` (or the --config override)

The store is not safe for concurrent multi-process mutation and does not
write atomically (no temp file + rename); the last writer wins.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .exceptions import ConfigStoreError

logger = logging.getLogger(__name__)

CONFIG_KEY_ACCESS_TOKEN = "access_token"
CONFIG_KEY_REFRESH_TOKEN = "refresh_token"
CONFIG_KEY_TOKEN_TYPE = "token_type"
CONFIG_KEY_SCOPE = "scope"
CONFIG_KEY_USER_ID = "user_id"
CONFIG_KEY_TOKEN_EXPIRES_AT = "token_expires_at"
CONFIG_KEY_TOKEN_OBTAINED_AT = "token_obtained_at"

TOKEN_KEYS = (
    CONFIG_KEY_ACCESS_TOKEN,
    CONFIG_KEY_REFRESH_TOKEN,
    CONFIG_KEY_TOKEN_TYPE,
    CONFIG_KEY_SCOPE,
    CONFIG_KEY_USER_ID,
    CONFIG_KEY_TOKEN_EXPIRES_AT,
    CONFIG_KEY_TOKEN_OBTAINED_AT,
)

PROJECT_CONFIG_FILENAME = "withings-cli.toml"
DEFAULT_USER_CONFIG_REL_PATH = Path(".config") / "withings-cli" / "config.toml"

CONFIG_DIR_MODE = 0o700
CONFIG_FILE_MODE = 0o600
LINE_ENDING = "\n"


class _QuoteState:
    """Two-flag lexer state: inside a single-quoted or double-quoted run."""

    def __init__(self) -> None:
        self.in_single = False
        self.in_double = False

    def toggle(self, char: str) -> bool:
        """Update state for a quote character; True if char was a quote."""
        if char == '"':
            if not self.in_single:
                self.in_double = not self.in_double
            return True
        if char == "'":
            if not self.in_double:
                self.in_single = not self.in_single
            return True
        return False

    @property
    def quoted(self) -> bool:
        return self.in_single or self.in_double


def comment_start_index(line: str) -> int:
    """
    Index where an inline comment starts, or -1.

    ``#`` and ``//`` only start a comment outside single and double quotes.
    Inside a double-quoted run a backslash escapes the next character.
    """
    state = _QuoteState()
    escaped = False
    for index, char in enumerate(line):
        if escaped:
            escaped = False
            continue
        if char == "\\" and state.in_double:
            escaped = True
            continue
        if state.toggle(char):
            continue
        if state.quoted:
            continue
        if char == "#":
            return index
        if char == "/" and line[index + 1 : index + 2] == "/":
            return index
    return -1


def strip_inline_comment(line: str) -> str:
    index = comment_start_index(line)
    if index == -1:
        return line
    return line[:index]


def quote_value(value: str) -> str:
    """Encode a value as a double-quoted literal."""
    return json.dumps(value, ensure_ascii=False)


def unquote_value(value: str) -> str:
    """
    Decode a stored value.

    Double-quoted literals are decoded with their escapes; anything that
    does not decode cleanly has surrounding quote characters trimmed.
    """
    if not value:
        return ""
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        try:
            decoded = json.loads(value)
        except ValueError:
            decoded = None
        if isinstance(decoded, str):
            return decoded
    return value.strip("\"'")


def parse_config_line(line: str) -> Optional[Tuple[str, str]]:
    """
    Parse one raw line into (key, value), or None if it holds no pair.

    Blank lines, comment lines and section headers hold no pair.
    """
    trimmed = line.strip()
    if not trimmed:
        return None
    if trimmed.startswith("#") or trimmed.startswith("//"):
        return None
    if trimmed.startswith("["):
        return None

    without_comment = strip_inline_comment(trimmed)
    key, sep, value = without_comment.partition("=")
    if not sep:
        return None
    key = key.strip()
    if not key:
        return None
    return key, unquote_value(value.strip())


@dataclass
class ConfigStore:
    """
    A config file held as raw lines plus a key index.

    Attributes:
        path: File location
        lines: Raw lines, in file order
        values: key -> decoded value
        key_index: key -> index into lines
        exists: False when the file was absent at load time
    """

    path: Path
    lines: List[str] = field(default_factory=list)
    values: Dict[str, str] = field(default_factory=dict)
    key_index: Dict[str, int] = field(default_factory=dict)
    exists: bool = False

    @classmethod
    def load(cls, path) -> "ConfigStore":
        """
        Load a config file.

        A missing file yields an empty store with exists=False.

        Raises:
            ConfigStoreError: If the file exists but cannot be read
        """
        store = cls(path=Path(path))
        try:
            with open(store.path, "r", encoding="utf-8") as f:
                data = f.read()
        except FileNotFoundError:
            logger.debug(f"No config file at {store.path}")
            return store
        except OSError as e:
            raise ConfigStoreError(f"read config {store.path}: {e}") from e

        store.exists = True
        store.lines = data.split(LINE_ENDING)
        store._parse_lines()
        logger.debug(f"Loaded {len(store.values)} keys from {store.path}")
        return store

    def _parse_lines(self) -> None:
        self.values = {}
        self.key_index = {}
        for index, line in enumerate(self.lines):
            pair = parse_config_line(line)
            if pair is None:
                continue
            key, value = pair
            self.values[key] = value
            self.key_index[key] = index

    def value(self, key: str) -> str:
        """Stored value for key, or empty string."""
        return self.values.get(key, "")

    def set(self, key: str, value: str) -> None:
        """
        Store a key/value pair.

        An existing key has its line rewritten in place; a new key gets a
        new line at the end of the file.
        """
        line = f"{key} = {quote_value(value)}"
        if key in self.key_index:
            self.lines[self.key_index[key]] = line
            self.values[key] = value
            return

        # A loaded file ending in a newline splits into a trailing empty
        # element; new lines go before it so the file keeps one final newline.
        if self.lines and self.lines[-1] == "":
            index = len(self.lines) - 1
            self.lines.insert(index, line)
        else:
            self.lines.append(line)
            index = len(self.lines) - 1
        self.key_index[key] = index
        self.values[key] = value

    def unset(self, key: str) -> None:
        """Remove a key and its line. Absent keys are a no-op."""
        index = self.key_index.get(key)
        if index is None:
            return

        del self.lines[index]
        del self.values[key]
        del self.key_index[key]
        for other, other_index in self.key_index.items():
            if other_index > index:
                self.key_index[other] = other_index - 1

    def save(self) -> None:
        """
        Write the store back to disk.

        Creates the parent directory (0700) and writes the file (0600).

        Raises:
            ConfigStoreError: If the directory or file cannot be written
        """
        try:
            self.path.parent.mkdir(mode=CONFIG_DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigStoreError(f"create config dir: {e}") from e

        data = LINE_ENDING.join(self.lines)
        if self.lines and not data.endswith(LINE_ENDING):
            data += LINE_ENDING

        try:
            fd = os.open(
                self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CONFIG_FILE_MODE
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
        except OSError as e:
            raise ConfigStoreError(f"write config {self.path}: {e}") from e

        self.exists = True
        logger.debug(f"Config saved to {self.path}")


@dataclass
class ConfigSources:
    """The project-scoped and user-scoped stores for one invocation."""

    project: ConfigStore
    user: ConfigStore


def project_config_path(cwd: Optional[Path] = None) -> Path:
    return Path(cwd if cwd is not None else os.getcwd()) / PROJECT_CONFIG_FILENAME


def user_config_path(override: str = "") -> Path:
    """User config location; an explicit override replaces it entirely."""
    if override:
        return Path(override).expanduser()
    return Path.home() / DEFAULT_USER_CONFIG_REL_PATH


def load_config_sources(config_override: str = "", cwd: Optional[Path] = None) -> ConfigSources:
    """Load both config stores."""
    project = ConfigStore.load(project_config_path(cwd))
    user = ConfigStore.load(user_config_path(config_override))
    return ConfigSources(project=project, user=user)
