"""Run driver: sync every configured mirror and aggregate the outcomes."""

from __future__ import annotations

import logging
import os
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

from .config import Configuration, Mirror
from .engine import MirrorSyncEngine, SyncOutcome
from .exceptions import InvalidNameError, MiraError, WorkspaceError
from .layout import resolve_path

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """All outcomes of one run, in configuration/mirror input order."""
    outcomes: list[SyncOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def failures(self) -> list[SyncOutcome]:
        """Failed outcomes sorted by (configuration, mirror)."""
        return sorted((o for o in self.outcomes if not o.ok), key=lambda o: o.key)

    @property
    def succeeded(self) -> list[SyncOutcome]:
        return [o for o in self.outcomes if o.ok]

    def by_configuration(self) -> dict[str, list[SyncOutcome]]:
        grouped: dict[str, list[SyncOutcome]] = {}
        for o in self.outcomes:
            grouped.setdefault(o.configuration, []).append(o)
        return grouped


def prepare_workspace(path: str | Path) -> Path:
    """Create the workspace root if needed and check it is writable.

    Raises ``WorkspaceError``; callers treat it as fatal.
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise WorkspaceError(f"Failed to create workspace directory {path}: {exc}") from exc
    if not os.access(path, os.W_OK | os.X_OK):
        raise WorkspaceError(f"Workspace directory {path} is not writable")
    return path


@dataclass
class _Task:
    index: int
    configuration: Configuration
    mirror: Mirror
    path: Path | None = None
    error: MiraError | None = None


def _plan(configurations: Sequence[Configuration], workspace: Path) -> list[_Task]:
    """Resolve every mirror's path, rejecting unsafe and colliding names.

    Collisions are compared case-insensitively: on case-insensitive
    filesystems ``Repo`` and ``repo`` would share a directory.  Every
    member of a collision is rejected.
    """
    config_counts = Counter(c.name.casefold() for c in configurations)
    tasks: list[_Task] = []
    for cfg in configurations:
        mirror_counts = Counter(m.name.casefold() for m in cfg.mirrors)
        for mirror in cfg.mirrors:
            task = _Task(index=len(tasks), configuration=cfg, mirror=mirror)
            try:
                if config_counts[cfg.name.casefold()] > 1:
                    raise InvalidNameError(f"Duplicate configuration name {cfg.name!r}")
                if mirror_counts[mirror.name.casefold()] > 1:
                    raise InvalidNameError(
                        f"Duplicate mirror name {mirror.name!r} in configuration {cfg.name!r}"
                    )
                task.path = resolve_path(workspace, cfg.name, mirror.name)
            except InvalidNameError as exc:
                task.error = exc
            tasks.append(task)
    return tasks


def run(
    configurations: Iterable[Configuration],
    workspace: str | Path,
    engine: MirrorSyncEngine,
    *,
    jobs: int = 1,
    on_outcome: Callable[[SyncOutcome], None] | None = None,
) -> RunResult:
    """Sync every mirror of every configuration.

    Mirrors run in input order, sequentially when *jobs* is 1, otherwise on
    a pool of *jobs* threads (one task per mirror; each mirror has its own
    directory so tasks never share one).  A failing mirror never stops the
    others.  *on_outcome* is called in the calling thread as each outcome
    becomes available.
    """
    if jobs < 1:
        raise ValueError(f"jobs must be >= 1, got {jobs}")
    configurations = list(configurations)
    workspace = Path(workspace)
    tasks = _plan(configurations, workspace)
    results: list[SyncOutcome | None] = [None] * len(tasks)

    def _record(task: _Task, outcome: SyncOutcome) -> None:
        results[task.index] = outcome
        if on_outcome is not None:
            on_outcome(outcome)

    def _reject(task: _Task) -> None:
        logger.error(
            f"Skipping {task.configuration.name}/{task.mirror.name}: {task.error}",
            extra={"configuration": task.configuration.name, "mirror": task.mirror.name},
        )
        _record(task, SyncOutcome.failure(
            task.configuration.name, task.mirror.name, task.error,
        ))

    if jobs == 1:
        current = None
        for task in tasks:
            if task.configuration is not current:
                current = task.configuration
                logger.info(f"Processing configuration {current.name}")
            if task.error is not None:
                _reject(task)
                continue
            _record(task, engine.sync(task.mirror, task.path, task.configuration.name))
    else:
        logger.info(f"Processing {len(tasks)} mirror(s) with {jobs} workers")
        with ThreadPoolExecutor(max_workers=jobs, thread_name_prefix="mira") as pool:
            futures = {}
            for task in tasks:
                if task.error is not None:
                    _reject(task)
                    continue
                future = pool.submit(engine.sync, task.mirror, task.path, task.configuration.name)
                futures[future] = task
            for future in as_completed(futures):
                _record(futures[future], future.result())

    result = RunResult(outcomes=[o for o in results if o is not None])
    if result.ok:
        logger.info(f"All {len(result.outcomes)} mirror(s) synced")
    else:
        logger.warning(f"{len(result.failures)} of {len(result.outcomes)} mirror(s) failed")
    return result
