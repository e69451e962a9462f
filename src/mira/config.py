"""Configuration file loading.

The configuration is a JSON document::

    {
      "workspace": "/var/lib/mira",
      "configurations": [
        {"name": "G2G", "mirrors": [
          {"name": "Mira", "src": "ssh://gitea/x.git", "dest": "git@github.com:x.git"}
        ]}
      ]
    }

Only the document's *structure* is checked here.  Whether names are safe
as directory segments, and unique, is checked per mirror by the run
driver so that one bad name does not abort the whole run.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from .exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mirror:
    """One source -> destination replication unit."""
    name: str
    src: str
    dest: str


@dataclass(frozen=True)
class Configuration:
    """A named group of mirrors sharing a workspace subdirectory."""
    name: str
    mirrors: tuple[Mirror, ...] = ()


@dataclass(frozen=True)
class RootConfig:
    workspace: Path
    configurations: tuple[Configuration, ...] = ()

    @property
    def mirror_count(self) -> int:
        return sum(len(c.mirrors) for c in self.configurations)


def _require_str(obj: dict, key: str, where: str) -> str:
    if key not in obj:
        raise ConfigError(f"{where}: missing required key {key!r}")
    value = obj[key]
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{where}.{key}: expected a non-empty string")
    return value


def _require_list(obj: dict, key: str, where: str) -> list:
    if key not in obj:
        raise ConfigError(f"{where}: missing required key {key!r}")
    value = obj[key]
    if not isinstance(value, list):
        raise ConfigError(f"{where}.{key}: expected a list")
    return value


def _parse_mirror(raw, where: str) -> Mirror:
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: expected an object")
    return Mirror(
        name=_require_str(raw, "name", where),
        src=_require_str(raw, "src", where),
        dest=_require_str(raw, "dest", where),
    )


def _parse_configuration(raw, where: str) -> Configuration:
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: expected an object")
    name = _require_str(raw, "name", where)
    mirrors = tuple(
        _parse_mirror(m, f"{where}.mirrors[{i}]")
        for i, m in enumerate(_require_list(raw, "mirrors", where))
    )
    return Configuration(name=name, mirrors=mirrors)


def parse_config(data, *, workspace: str | Path | None = None) -> RootConfig:
    """Validate an already-decoded configuration document.

    Args:
        data: The decoded JSON document.
        workspace: Overrides the document's ``workspace`` when given; the
            document may then omit it.

    Raises ``ConfigError`` naming the offending location.
    """
    if not isinstance(data, dict):
        raise ConfigError("configuration: expected a JSON object at top level")
    if workspace is None:
        workspace = _require_str(data, "workspace", "configuration")
    configurations = tuple(
        _parse_configuration(c, f"configurations[{i}]")
        for i, c in enumerate(_require_list(data, "configurations", "configuration"))
    )
    return RootConfig(workspace=Path(workspace).absolute(), configurations=configurations)


def load_config(path: str | Path, *, workspace: str | Path | None = None) -> RootConfig:
    """Read and validate the configuration file at *path*."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read configuration file {path}: {exc}") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    root = parse_config(data, workspace=workspace)
    logger.debug(
        f"Loaded {len(root.configurations)} configuration(s), "
        f"{root.mirror_count} mirror(s) from {path}"
    )
    return root
