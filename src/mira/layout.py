"""Workspace layout: where each mirror's local repository lives.

    <workspace>/<configuration name>/<mirror name>

Names are used verbatim as directory segments, so they are validated
first.  Names may not start with a dot; that namespace is reserved for
staging directories of in-progress clones.
"""

from __future__ import annotations

import os
from pathlib import Path

from .exceptions import InvalidNameError

STAGING_SUFFIX = ".cloning"


def validate_name(name: str, kind: str = "name") -> str:
    """Return *name* unchanged if it is safe as a single directory segment.

    Raises ``InvalidNameError`` otherwise.  *kind* is only used in the
    error message ("configuration name", "mirror name").
    """
    if not isinstance(name, str) or not name:
        raise InvalidNameError(f"Invalid {kind} {name!r}: must be a non-empty string")
    if name in (".", ".."):
        raise InvalidNameError(f"Invalid {kind} {name!r}: path traversal")
    if name.startswith("."):
        raise InvalidNameError(f"Invalid {kind} {name!r}: must not start with '.'")
    separators = {"/", "\\", os.sep}
    if os.altsep:
        separators.add(os.altsep)
    for ch in name:
        if ch in separators:
            raise InvalidNameError(f"Invalid {kind} {name!r}: contains path separator {ch!r}")
        if ord(ch) < 32 or ch == "\x7f":
            raise InvalidNameError(f"Invalid {kind} {name!r}: contains control character")
    return name


def resolve_path(workspace: str | Path, configuration_name: str, mirror_name: str) -> Path:
    """Map a (configuration, mirror) pair to its local repository path.

    Pure and deterministic; touches neither the filesystem nor the network.
    """
    validate_name(configuration_name, "configuration name")
    validate_name(mirror_name, "mirror name")
    return Path(workspace) / configuration_name / mirror_name


def staging_path(local_path: str | Path) -> Path:
    """Hidden sibling directory an in-progress clone of *local_path* uses."""
    p = Path(local_path)
    return p.parent / f".{p.name}{STAGING_SUFFIX}"
