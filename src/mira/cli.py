"""mira CLI: mirror git repositories listed in a JSON configuration file."""

from __future__ import annotations

import itertools
import logging

import click

from . import __version__
from .config import load_config
from .engine import MirrorSyncEngine, SyncOutcome
from .exceptions import (
    CloneError,
    ConfigError,
    CorruptWorkspaceError,
    FetchError,
    InvalidNameError,
    PushError,
    RemoteConfigError,
    WorkspaceError,
)
from .logging_config import LOG_FORMATS, setup_logging
from .ops import BACKENDS, get_operations
from .runner import RunResult, prepare_workspace, run

logger = logging.getLogger(__name__)

_FAILURE_VERBS = (
    (CloneError, "Failed to clone"),
    (FetchError, "Failed to fetch changes for"),
    (RemoteConfigError, "Failed to process remotes for"),
    (PushError, "Failed to push"),
    (InvalidNameError, "Invalid name for"),
    (CorruptWorkspaceError, "Unusable workspace directory for"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _failure_line(outcome: SyncOutcome) -> str:
    for cls, verb in _FAILURE_VERBS:
        if isinstance(outcome.error, cls):
            return f"{verb} {outcome.mirror}: {outcome.error}"
    return f"Failed to mirror {outcome.mirror}: {outcome.error}"


def _print_diff(diff) -> None:
    """Pretty-print a MirrorDiff to stdout."""
    if diff.in_sync:
        click.echo("  Nothing to push, already in sync.")
        return
    for c in diff.add:
        click.echo(f"  create  {c.ref}  {c.new_target[:7]}")
    for c in diff.update:
        click.echo(f"  update  {c.ref}  {c.old_target[:7]} -> {c.new_target[:7]}")
    for c in diff.delete:
        click.echo(f"  delete  {c.ref}  {c.old_target[:7]}")
    click.echo(f"  {diff.total} ref(s) would be changed.")


def _report(configurations, result: RunResult, dry_run: bool) -> None:
    # Outcomes are in input order, one per mirror, configuration by configuration
    outcomes = iter(result.outcomes)
    for cfg in configurations:
        click.echo(f"Processing config {cfg.name}.")
        for outcome in itertools.islice(outcomes, len(cfg.mirrors)):
            if not outcome.ok:
                click.echo(_failure_line(outcome))
            elif dry_run:
                click.echo(f"{outcome.mirror} checked ({outcome.action}).")
                if outcome.diff is not None:
                    _print_diff(outcome.diff)
            else:
                click.echo(f"{outcome.mirror} mirrored successfully.")

    total = len(result.outcomes)
    if result.ok:
        click.echo(f"All {total} mirror(s) synced.")
        return
    failures = result.failures
    click.echo(f"{len(failures)} of {total} mirror(s) failed:")
    for outcome in failures:
        click.echo(f"  {outcome.configuration}/{outcome.mirror}: {outcome.error}")


def _progress_cb(verbose: bool):
    """Return a transport progress callback if verbose mode is on, else None."""
    if not verbose:
        return None
    progress_logger = logging.getLogger("mira.progress")

    def _on_progress(msg):
        text = msg.decode(errors="replace").strip()
        if text:
            progress_logger.debug(text)
    return _on_progress


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------

@click.command()
@click.version_option(version=__version__, prog_name="mira")
@click.option("-c", "--config", "config_path", required=True, type=click.Path(dir_okay=False),
              envvar="MIRA_CONFIG", help="Path to the JSON configuration file (or set MIRA_CONFIG).")
@click.option("-w", "--workspace", type=click.Path(file_okay=False), envvar="MIRA_WORKSPACE",
              default=None, help="Override the configuration's workspace directory.")
@click.option("-j", "--jobs", type=click.IntRange(min=1), default=1, show_default=True,
              envvar="MIRA_JOBS", help="Number of mirrors to sync in parallel.")
@click.option("-n", "--dry-run", is_flag=True, default=False,
              help="Update local copies but only show what would be pushed.")
@click.option("--backend", type=click.Choice(BACKENDS), default="dulwich", show_default=True,
              envvar="MIRA_BACKEND", help="Git implementation used for clone/fetch/push.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging, including transport progress.")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"],
                                               case_sensitive=False),
              default=None, help="Log level (default: MIRA_LOG_LEVEL or INFO).")
@click.option("--log-format", type=click.Choice(LOG_FORMATS), default=None,
              help="Log format (default: MIRA_LOG_FORMAT or text).")
def main(config_path, workspace, jobs, dry_run, backend, verbose, log_level, log_format):
    """Keep git mirrors in sync from a JSON configuration file.

    Every mirror's source is cloned (first run) or fetched (later runs)
    into WORKSPACE/CONFIGURATION/MIRROR, then all branches and tags are
    pushed to the destination, deleting those removed upstream.

    \b
    Configuration:
      {"workspace": "/var/lib/mira",
       "configurations": [
         {"name": "G2G", "mirrors": [
           {"name": "Mira", "src": "ssh://gitea/x.git",
            "dest": "git@github.com:x.git"}]}]}

    Authentication is ambient (ssh-agent, git credential helpers).
    Exits non-zero if any mirror failed.
    """
    setup_logging(level="DEBUG" if verbose else log_level, format_type=log_format)

    try:
        root = load_config(config_path, workspace=workspace)
        workspace_path = prepare_workspace(root.workspace)
    except (ConfigError, WorkspaceError) as exc:
        raise click.ClickException(str(exc))

    engine = MirrorSyncEngine(
        get_operations(backend, progress=_progress_cb(verbose)),
        dry_run=dry_run,
    )
    result = run(root.configurations, workspace_path, engine, jobs=jobs)
    _report(root.configurations, result, dry_run)
    if not result.ok:
        raise SystemExit(1)
