"""Classify a mirror's local directory as cloned or not."""

from __future__ import annotations

import enum
from pathlib import Path

from dulwich.errors import NotGitRepository
from dulwich.repo import Repo as _DRepo


class MirrorState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"


def classify(path: str | Path) -> MirrorState:
    """Return INITIALIZED if *path* holds a git repository.

    A missing path, an empty directory, or a directory without a
    recognizable repository layout are all UNINITIALIZED.
    """
    p = Path(path)
    if not p.is_dir():
        return MirrorState.UNINITIALIZED
    try:
        drepo = _DRepo(str(p))
    except NotGitRepository:
        return MirrorState.UNINITIALIZED
    drepo.close()
    return MirrorState.INITIALIZED
