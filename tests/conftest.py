"""Shared fixtures for mira tests."""

import itertools
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest
from click.testing import CliRunner
from dulwich.objects import Blob, Commit, Tag, Tree
from dulwich.repo import Repo as DulwichRepo

_counter = itertools.count()


def make_commit(repo_path, ref, content=None, parents=None):
    """Commit a single file onto *ref* in the repo at *repo_path*; return its sha.

    The new commit's parent is the ref's current target unless *parents*
    is given.  Each call produces a distinct commit.
    """
    drepo = DulwichRepo(str(repo_path))
    ref = ref.encode() if isinstance(ref, str) else ref
    n = next(_counter)
    if content is None:
        content = f"content {n}\n".encode()
    if parents is None:
        parents = [drepo.refs[ref]] if ref in drepo.refs else []

    blob = Blob.from_string(content)
    drepo.object_store.add_object(blob)
    tree = Tree()
    tree.add(b"file.txt", 0o100644, blob.id)
    drepo.object_store.add_object(tree)

    c = Commit()
    c.tree = tree.id
    c.parents = list(parents)
    c.author = c.committer = b"test <test@test>"
    c.author_time = c.commit_time = int(time.time())
    c.author_timezone = c.commit_timezone = 0
    c.encoding = b"UTF-8"
    c.message = f"commit {n}\n".encode()
    drepo.object_store.add_object(c)
    drepo.refs[ref] = c.id
    drepo.close()
    return c.id.decode()


def make_annotated_tag(repo_path, name, target_sha):
    drepo = DulwichRepo(str(repo_path))
    tag = Tag()
    tag.name = name.encode()
    tag.object = (Commit, target_sha.encode())
    tag.tagger = b"test <test@test>"
    tag.tag_time = int(time.time())
    tag.tag_timezone = 0
    tag.message = f"release {name}\n".encode()
    drepo.object_store.add_object(tag)
    drepo.refs[f"refs/tags/{name}".encode()] = tag.id
    drepo.close()
    return tag.id.decode()


def get_refs(repo_path, prefixes=("refs/heads/", "refs/tags/")):
    """Return {ref_str: sha_str} for branches and tags of a repo."""
    drepo = DulwichRepo(str(repo_path))
    refs = {
        ref.decode(): sha.decode()
        for ref, sha in drepo.get_refs().items()
        if ref.decode().startswith(prefixes)
    }
    drepo.close()
    return refs


# ---------------------------------------------------------------------------
# Repository fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def commit():
    return make_commit


@pytest.fixture
def refs_of():
    return get_refs


@pytest.fixture
def source_repo(tmp_path):
    """Bare source repo: main (2 commits), feature, a lightweight and an
    annotated tag, and a pull-request ref that must not be mirrored."""
    p = tmp_path / "src.git"
    DulwichRepo.init_bare(str(p), mkdir=True).close()
    first = make_commit(p, "refs/heads/main")
    make_commit(p, "refs/heads/main")
    make_commit(p, "refs/heads/feature", parents=[first.encode()])
    drepo = DulwichRepo(str(p))
    drepo.refs[b"refs/tags/light"] = first.encode()
    drepo.refs[b"refs/pull/1/head"] = first.encode()
    drepo.refs.set_symbolic_ref(b"HEAD", b"refs/heads/main")
    drepo.close()
    make_annotated_tag(p, "v1", first)
    return str(p)


@pytest.fixture
def dest_repo(tmp_path):
    """An empty bare repo suitable as a push target."""
    p = tmp_path / "dest.git"
    DulwichRepo.init_bare(str(p), mkdir=True).close()
    return str(p)


@pytest.fixture
def workspace(tmp_path):
    """A not-yet-created workspace root."""
    return tmp_path / "workspace"


# ---------------------------------------------------------------------------
# CLI fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """The CLI reconfigures the root logger; undo it after each test."""
    import logging
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------

class _UnauthorizedHandler(BaseHTTPRequestHandler):
    """Answer every request with 401, as a password-protected git host does."""

    def do_GET(self):
        self.send_response(401)
        self.send_header("WWW-Authenticate", 'Basic realm="git"')
        self.send_header("Content-Length", "0")
        self.end_headers()

    do_POST = do_GET

    def log_message(self, format, *args):
        pass


@pytest.fixture
def locked_http_url(monkeypatch):
    """URL of a local git-over-HTTP endpoint that always demands credentials."""
    for var in ("http_proxy", "HTTP_PROXY", "https_proxy", "HTTPS_PROXY",
                "all_proxy", "ALL_PROXY"):
        monkeypatch.delenv(var, raising=False)
    server = HTTPServer(("127.0.0.1", 0), _UnauthorizedHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/x.git"
    server.shutdown()
    server.server_close()
