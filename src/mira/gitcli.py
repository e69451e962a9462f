"""Repository operations that shell out to the ``git`` executable.

Same contract as :class:`mira.ops.DulwichOperations`.  Useful where the
host's git is configured with credential helpers, proxies, or ssh
options that dulwich does not read.
"""

from __future__ import annotations

import logging
import os
import subprocess

from .exceptions import CloneError, FetchError, PushError, RemoteConfigError, SyncError
from .mirror import MirrorDiff, compute_diff, local_path, mirrored_refs
from .ops import ORIGIN

logger = logging.getLogger(__name__)

REFSPECS = ["+refs/heads/*:refs/heads/*", "+refs/tags/*:refs/tags/*"]


def _run_git(args: list[str], error_cls: type[SyncError], message: str,
             cwd: str | None = None) -> subprocess.CompletedProcess:
    """Run ``git <args>``; raise *error_cls* with git's stderr if it fails."""
    cmd = ["git", *args]
    if cwd is not None:
        cmd = ["git", "-C", cwd, *args]
    logger.debug(f"Running {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
        )
    except OSError as exc:
        raise error_cls(message, f"Failed to run git: {exc}") from exc
    if result.returncode != 0:
        detail = result.stderr.strip() or result.stdout.strip() or f"git exited with {result.returncode}"
        raise error_cls(message, detail)
    return result


def _parse_ref_lines(output: str) -> dict:
    """Parse ``<sha> <ref>`` lines (ls-remote / for-each-ref) into bytes keys."""
    refs = {}
    for line in output.splitlines():
        parts = line.split(None, 1)
        if len(parts) != 2:
            continue
        sha, ref = parts
        refs[ref.strip().encode()] = sha.encode()
    return mirrored_refs(refs)


class GitCLIOperations:
    """Repository operations implemented with ``git`` subprocesses."""

    name = "git"

    def __repr__(self) -> str:
        return "GitCLIOperations()"

    def clone(self, src_url, dest_path):
        dest_path = str(dest_path)
        msg = f"Cannot clone {src_url}"
        _run_git(["init", "--bare", "--quiet", dest_path], CloneError, msg)
        _run_git(["remote", "add", ORIGIN, src_url], CloneError, msg, cwd=dest_path)
        _run_git(["fetch", "--prune", "--force", "--quiet", ORIGIN, *REFSPECS],
                 CloneError, msg, cwd=dest_path)
        head = _run_git(["ls-remote", "--symref", ORIGIN, "HEAD"], CloneError, msg,
                        cwd=dest_path)
        for line in head.stdout.splitlines():
            # ref: refs/heads/main<TAB>HEAD
            if line.startswith("ref: "):
                target = line[5:].split("\t", 1)[0].strip()
                _run_git(["symbolic-ref", "HEAD", target], CloneError, msg, cwd=dest_path)
                break
        logger.debug(f"Cloned {src_url} into {dest_path}")

    def fetch(self, repo_path):
        repo_path = str(repo_path)
        _run_git(["fetch", "--prune", "--force", "--quiet", ORIGIN, *REFSPECS],
                 FetchError, f"Cannot fetch '{ORIGIN}' into {repo_path}", cwd=repo_path)

    def set_remote(self, repo_path, name, url):
        repo_path = str(repo_path)
        msg = f"Cannot configure remote '{name}' in {repo_path}"
        try:
            current = _run_git(["remote", "get-url", name], RemoteConfigError, msg,
                               cwd=repo_path).stdout.strip()
        except RemoteConfigError:
            # Not configured yet; "remote add" below reports real failures.
            current = None
        if current is not None:
            if current == url:
                return False
            _run_git(["remote", "set-url", name, url], RemoteConfigError, msg, cwd=repo_path)
            logger.info(f"Updated remote '{name}': {current} -> {url}")
            return True
        _run_git(["remote", "add", name, url], RemoteConfigError, msg, cwd=repo_path)
        logger.info(f"Added remote '{name}' -> {url}")
        return True

    def push_mirror(self, repo_path, name):
        repo_path = str(repo_path)
        self._create_local_destination(repo_path, name)
        diff = self.diff_refs(repo_path, name)
        _run_git(["push", "--porcelain", "--force", "--prune", name, *REFSPECS],
                 PushError, f"Cannot push to '{name}'", cwd=repo_path)
        return diff

    def diff_refs(self, repo_path, name):
        repo_path = str(repo_path)
        local = _run_git(
            ["for-each-ref", "--format=%(objectname) %(refname)", "refs/heads", "refs/tags"],
            PushError, f"Cannot list local refs of {repo_path}", cwd=repo_path,
        )
        url = self._remote_url(repo_path, name)
        path = local_path(url)
        if path is not None and not os.path.exists(path):
            remote_refs = {}
        else:
            remote = _run_git(["ls-remote", name], PushError,
                              f"Cannot list refs of '{name}'", cwd=repo_path)
            remote_refs = _parse_ref_lines(remote.stdout)
        return compute_diff(_parse_ref_lines(local.stdout), remote_refs)

    @staticmethod
    def _remote_url(repo_path: str, name: str) -> str:
        result = _run_git(["remote", "get-url", name], PushError,
                          f"No '{name}' remote configured in {repo_path}", cwd=repo_path)
        return result.stdout.strip()

    def _create_local_destination(self, repo_path: str, name: str) -> None:
        path = local_path(self._remote_url(repo_path, name))
        if path is not None and not os.path.exists(path):
            _run_git(["init", "--bare", "--quiet", path], PushError,
                     f"Cannot create destination {path}")
            logger.info(f"Created bare destination repository {path}")
