"""Mirror sync engine: clone-or-fetch, then push-mirror, for one mirror.

A mirror's local repository is in one of two states (see
:mod:`mira.state`).  UNINITIALIZED means clone, INITIALIZED means fetch;
both continue with configuring the ``mirror`` remote and pushing every
branch and tag to it.

Failures never escape :meth:`MirrorSyncEngine.sync`: any ``MiraError``
becomes a failed :class:`SyncOutcome`, and anything else is wrapped in a
``SyncError`` first, so that one broken mirror cannot stop the others.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .config import Mirror
from .exceptions import CorruptWorkspaceError, MiraError, SyncError
from .layout import staging_path
from .mirror import MirrorDiff
from .ops import ORIGIN, RepositoryOperations
from .state import MirrorState, classify as _classify

logger = logging.getLogger(__name__)

MIRROR_REMOTE = "mirror"


@dataclass
class SyncOutcome:
    """Result of one mirror's sync attempt.

    Attributes:
        configuration: Name of the configuration the mirror belongs to.
        mirror: Mirror name.
        path: Local repository path, or ``None`` if it could not be resolved.
        action: ``"clone"`` or ``"fetch"``; ``None`` if the mirror failed
            before either was attempted.
        diff: Ref changes pushed (or, in dry-run mode, that would be pushed).
        error: The failure, or ``None`` on success.
    """
    configuration: str
    mirror: str
    path: Path | None = None
    action: str | None = None
    diff: MirrorDiff | None = None
    error: MiraError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def key(self) -> tuple[str, str]:
        return (self.configuration, self.mirror)

    @classmethod
    def failure(cls, configuration: str, mirror: str, error: MiraError,
                path: Path | None = None) -> SyncOutcome:
        return cls(configuration=configuration, mirror=mirror, path=path, error=error)


class MirrorSyncEngine:
    """Bring one mirror's destination in line with its source.

    Args:
        ops: Repository backend (see :class:`~mira.ops.RepositoryOperations`).
        classify: State detector; injectable for tests.
        dry_run: Clone/fetch into the local cache as usual but only compute
            what would be pushed.
    """

    def __init__(
        self,
        ops: RepositoryOperations,
        *,
        classify: Callable[[Path], MirrorState] = _classify,
        dry_run: bool = False,
    ):
        self._ops = ops
        self._classify = classify
        self.dry_run = dry_run

    def __repr__(self) -> str:
        return f"MirrorSyncEngine({self._ops!r}, dry_run={self.dry_run})"

    def sync(self, mirror: Mirror, local_path: str | Path, configuration: str = "") -> SyncOutcome:
        local_path = Path(local_path)
        extra = {"configuration": configuration, "mirror": mirror.name}
        outcome = SyncOutcome(configuration=configuration, mirror=mirror.name, path=local_path)
        try:
            if self._classify(local_path) is MirrorState.UNINITIALIZED:
                outcome.action = "clone"
                logger.info(f"Cloning {mirror.src} into {local_path}", extra=extra)
                self._clone(mirror, local_path)
            else:
                outcome.action = "fetch"
                logger.info(f"Fetching {mirror.src} into {local_path}", extra=extra)
                self._ops.set_remote(local_path, ORIGIN, mirror.src)
                self._ops.fetch(local_path)

            self._ops.set_remote(local_path, MIRROR_REMOTE, mirror.dest)

            if self.dry_run:
                outcome.diff = self._ops.diff_refs(local_path, MIRROR_REMOTE)
            else:
                logger.info(f"Pushing mirror to {mirror.dest}", extra=extra)
                outcome.diff = self._ops.push_mirror(local_path, MIRROR_REMOTE)
        except MiraError as exc:
            outcome.error = exc
            logger.error(f"{configuration}/{mirror.name} failed: {exc}", extra=extra)
            return outcome
        except Exception as exc:
            outcome.error = SyncError(
                f"Unexpected error syncing {mirror.name}", f"{exc.__class__.__name__}: {exc}",
            )
            outcome.error.__cause__ = exc
            logger.error(
                f"{configuration}/{mirror.name} failed: {outcome.error}",
                extra=extra, exc_info=True,
            )
            return outcome

        changes = outcome.diff.total if outcome.diff is not None else 0
        logger.info(
            f"{configuration}/{mirror.name} synced ({outcome.action}, {changes} ref change(s))",
            extra=extra,
        )
        return outcome

    def _clone(self, mirror: Mirror, local_path: Path) -> None:
        """Clone into a staging directory, then move it into place.

        A clone interrupted half-way therefore never looks INITIALIZED.
        """
        staging = staging_path(local_path)
        try:
            if local_path.exists():
                if not local_path.is_dir() or any(local_path.iterdir()):
                    raise CorruptWorkspaceError(
                        f"{local_path} exists but is not a git repository; "
                        f"remove it to let mira clone again"
                    )
                local_path.rmdir()
            if staging.exists():
                logger.warning(f"Removing stale partial clone {staging}")
                shutil.rmtree(staging)
            local_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CorruptWorkspaceError(f"Cannot prepare {local_path}: {exc}") from exc

        try:
            self._ops.clone(mirror.src, staging)
        except Exception:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        try:
            staging.rename(local_path)
        except OSError as exc:
            raise CorruptWorkspaceError(
                f"Cannot move clone {staging} into place: {exc}"
            ) from exc
