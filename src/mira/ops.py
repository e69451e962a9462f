"""Repository operations: the clone/fetch/remote/push primitives.

The sync engine talks to a backend only through
:class:`RepositoryOperations`, so the transport can be swapped (dulwich's
pure-Python client here, the ``git`` executable in :mod:`mira.gitcli`)
and tests can pass an in-memory fake.

Every method raises the matching :class:`~mira.exceptions.SyncError`
subclass on failure and never anything else for transport problems.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from dulwich.client import HTTPProxyUnauthorized, HTTPUnauthorized
from dulwich.client import get_transport_and_path as _get_transport_and_path
from dulwich.errors import GitProtocolError, NotGitRepository
from dulwich.porcelain import ls_remote as _ls_remote
from dulwich.protocol import ZERO_SHA as _ZERO_SHA
from dulwich.repo import Repo as _DRepo

from .exceptions import CloneError, FetchError, PushError, RemoteConfigError, SyncError
from .mirror import MirrorDiff, compute_diff, is_mirrored, local_path, mirrored_refs

logger = logging.getLogger(__name__)

ORIGIN = "origin"

# GitProtocolError covers HangupException and UpdateRefsError.  ValueError
# is what get_transport_and_path raises for URLs it cannot parse.  The HTTP
# credential errors derive from plain Exception.
_TRANSPORT_ERRORS = (
    GitProtocolError, NotGitRepository, OSError, ValueError,
    HTTPUnauthorized, HTTPProxyUnauthorized,
)


class RepositoryOperations(Protocol):
    """Capability interface the sync engine depends on."""

    def clone(self, src_url: str, dest_path: str | Path) -> None:
        """Create a bare repository at *dest_path* holding *src_url*'s branches and tags."""

    def fetch(self, repo_path: str | Path) -> None:
        """Bring local branches and tags in line with ``origin``, pruning deleted ones."""

    def set_remote(self, repo_path: str | Path, name: str, url: str) -> bool:
        """Add or re-point remote *name*; return whether anything changed."""

    def push_mirror(self, repo_path: str | Path, name: str) -> MirrorDiff:
        """Make remote *name*'s branches and tags exactly match the local ones."""

    def diff_refs(self, repo_path: str | Path, name: str) -> MirrorDiff:
        """Return what :meth:`push_mirror` would change, without pushing."""


def _describe(exc: BaseException) -> str:
    return str(exc).strip() or exc.__class__.__name__


def _open(repo_path, error_cls: type[SyncError]) -> _DRepo:
    try:
        return _DRepo(str(repo_path))
    except NotGitRepository as exc:
        raise error_cls(f"Not a git repository: {repo_path}") from exc


def _remote_url(drepo: _DRepo, name: str) -> str | None:
    config = drepo.get_config()
    try:
        return config.get((b"remote", name.encode()), b"url").decode()
    except KeyError:
        return None


def _write_remote(drepo: _DRepo, name: str, url: str) -> None:
    config = drepo.get_config()
    config.set((b"remote", name.encode()), b"url", url.encode())
    config.write_to_path()


# ---------------------------------------------------------------------------
# dulwich backend
# ---------------------------------------------------------------------------

class DulwichOperations:
    """Repository operations over dulwich's git transport.

    ssh URLs go through dulwich's subprocess ssh vendor, so whatever
    ssh-agent or ``~/.ssh/config`` the process inherits is used as-is.
    """

    name = "dulwich"

    def __init__(self, progress: Callable[[bytes], None] | None = None):
        self._progress = progress

    def __repr__(self) -> str:
        return "DulwichOperations()"

    # -- primitives ---------------------------------------------------------

    def clone(self, src_url, dest_path):
        dest_path = str(dest_path)
        try:
            drepo = _DRepo.init_bare(dest_path, mkdir=True)
        except OSError as exc:
            raise CloneError(f"Cannot create repository at {dest_path}", _describe(exc)) from exc
        with drepo:
            try:
                _write_remote(drepo, ORIGIN, src_url)
                result = self._fetch_into(drepo, src_url)
            except _TRANSPORT_ERRORS as exc:
                raise CloneError(f"Cannot clone {src_url}", _describe(exc)) from exc
            head = (result.symrefs or {}).get(b"HEAD")
            if head and head in drepo.refs:
                drepo.refs.set_symbolic_ref(b"HEAD", head)
        logger.debug(f"Cloned {src_url} into {dest_path}")

    def fetch(self, repo_path):
        with _open(repo_path, FetchError) as drepo:
            url = _remote_url(drepo, ORIGIN)
            if url is None:
                raise FetchError(f"No '{ORIGIN}' remote configured in {repo_path}")
            try:
                self._fetch_into(drepo, url)
            except _TRANSPORT_ERRORS as exc:
                raise FetchError(f"Cannot fetch {url}", _describe(exc)) from exc
        logger.debug(f"Fetched {url} into {repo_path}")

    def set_remote(self, repo_path, name, url):
        with _open(repo_path, RemoteConfigError) as drepo:
            current = _remote_url(drepo, name)
            if current == url:
                return False
            try:
                _write_remote(drepo, name, url)
            except OSError as exc:
                raise RemoteConfigError(
                    f"Cannot write remote '{name}' in {repo_path}", _describe(exc),
                ) from exc
        if current is None:
            logger.info(f"Added remote '{name}' -> {url}")
        else:
            logger.info(f"Updated remote '{name}': {current} -> {url}")
        return True

    def push_mirror(self, repo_path, name):
        with _open(repo_path, PushError) as drepo:
            url = self._push_url(drepo, name, create=True)
            local_refs = mirrored_refs(drepo.get_refs())
            diff = MirrorDiff()

            def update_refs(remote_refs):
                nonlocal diff
                remote_refs = mirrored_refs(remote_refs)
                diff = compute_diff(local_refs, remote_refs)
                new_refs = dict(local_refs)
                for ref in remote_refs:
                    if ref not in local_refs:
                        new_refs[ref] = _ZERO_SHA
                return new_refs

            def gen_pack(have, want, *, ofs_delta=False, progress=self._progress):
                return drepo.object_store.generate_pack_data(
                    have, want, ofs_delta=ofs_delta, progress=progress,
                )

            try:
                client, path = _get_transport_and_path(url)
                result = client.send_pack(path, update_refs, gen_pack, progress=self._progress)
            except _TRANSPORT_ERRORS as exc:
                raise PushError(f"Cannot push to {url}", _describe(exc)) from exc

        rejected = {
            ref: status
            for ref, status in (result.ref_status or {}).items()
            if status is not None
        }
        if rejected:
            detail = "; ".join(
                f"{ref.decode()}: {status}" for ref, status in sorted(rejected.items())
            )
            raise PushError(f"Push to {url} rejected", detail)
        logger.debug(f"Pushed {diff.total} ref change(s) to {url}")
        return diff

    def diff_refs(self, repo_path, name):
        with _open(repo_path, PushError) as drepo:
            url = self._push_url(drepo, name, create=False)
            local_refs = mirrored_refs(drepo.get_refs())
        try:
            remote_result = _ls_remote(url)
            refs_dict = remote_result.refs if hasattr(remote_result, "refs") else remote_result
        except NotGitRepository:
            # Local destination that does not exist yet: push would create it
            refs_dict = {}
        except _TRANSPORT_ERRORS as exc:
            raise PushError(f"Cannot list refs of {url}", _describe(exc)) from exc
        return compute_diff(local_refs, mirrored_refs(refs_dict))

    # -- helpers ------------------------------------------------------------

    def _fetch_into(self, drepo: _DRepo, url: str):
        """Fetch branches and tags from *url*, force-set them locally, prune the rest."""
        client, path = _get_transport_and_path(url)

        def determine_wants(refs, depth=None):
            return drepo.object_store.determine_wants_all(mirrored_refs(refs), depth=depth)

        result = client.fetch(path, drepo, determine_wants=determine_wants,
                              progress=self._progress)
        remote_refs = {
            ref: sha for ref, sha in mirrored_refs(result.refs).items() if sha != _ZERO_SHA
        }
        for ref, sha in remote_refs.items():
            drepo.refs[ref] = sha
        for ref in list(drepo.refs.allkeys()):
            if is_mirrored(ref) and ref not in remote_refs:
                drepo.refs.remove_if_equals(ref, None)
        return result

    @staticmethod
    def _push_url(drepo: _DRepo, name: str, *, create: bool) -> str:
        url = _remote_url(drepo, name)
        if url is None:
            raise PushError(f"No '{name}' remote configured in {drepo.path}")
        path = local_path(url)
        if create and path is not None and not os.path.exists(path):
            try:
                os.makedirs(path)
                _DRepo.init_bare(path).close()
            except OSError as exc:
                raise PushError(f"Cannot create destination {path}", _describe(exc)) from exc
            logger.info(f"Created bare destination repository {path}")
        return url


# ---------------------------------------------------------------------------
# Backend registry
# ---------------------------------------------------------------------------

BACKENDS = ("dulwich", "git")


def get_operations(name: str = "dulwich", *, progress=None) -> RepositoryOperations:
    """Return the repository backend called *name*."""
    if name == "dulwich":
        return DulwichOperations(progress=progress)
    if name == "git":
        from .gitcli import GitCLIOperations
        return GitCLIOperations()
    raise ValueError(f"Unknown backend {name!r} (choose from {', '.join(BACKENDS)})")
