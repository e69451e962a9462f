"""Tests for ref diffing and URL helpers."""

import pytest

from mira.mirror import MirrorDiff, RefChange, compute_diff, is_mirrored, local_path, mirrored_refs

A = b"a" * 40
B = b"b" * 40
C = b"c" * 40


class TestMirroredRefs:
    @pytest.mark.parametrize("ref,expected", [
        (b"refs/heads/main", True),
        (b"refs/tags/v1", True),
        (b"refs/tags/v1^{}", False),
        (b"HEAD", False),
        (b"refs/pull/1/head", False),
        (b"refs/remotes/origin/main", False),
        (b"refs/notes/commits", False),
    ])
    def test_is_mirrored(self, ref, expected):
        assert is_mirrored(ref) is expected

    def test_filter(self):
        refs = {b"HEAD": A, b"refs/heads/main": A, b"refs/pull/2/head": B, b"refs/tags/t": C}
        assert mirrored_refs(refs) == {b"refs/heads/main": A, b"refs/tags/t": C}


class TestComputeDiff:
    def test_in_sync(self):
        diff = compute_diff({b"refs/heads/main": A}, {b"refs/heads/main": A})
        assert diff.in_sync
        assert diff.total == 0

    def test_add_update_delete(self):
        src = {b"refs/heads/main": A, b"refs/heads/new": B}
        dest = {b"refs/heads/main": C, b"refs/heads/gone": C}
        diff = compute_diff(src, dest)
        assert diff.add == [RefChange("refs/heads/new", None, B.decode())]
        assert diff.update == [RefChange("refs/heads/main", C.decode(), A.decode())]
        assert diff.delete == [RefChange("refs/heads/gone", C.decode(), None)]
        assert diff.total == 3
        assert not diff.in_sync

    def test_sorted_by_ref(self):
        src = {b"refs/heads/z": A, b"refs/heads/a": A, b"refs/heads/m": A}
        diff = compute_diff(src, {})
        assert [c.ref for c in diff.add] == ["refs/heads/a", "refs/heads/m", "refs/heads/z"]

    def test_empty_diff_default(self):
        assert MirrorDiff().in_sync


class TestLocalPath:
    @pytest.mark.parametrize("url", [
        "ssh://gitea/x.git",
        "https://github.com/x/y.git",
        "git://example.org/r.git",
        "git@github.com:x.git",
        "github.com:x.git",
    ])
    def test_remote_urls(self, url):
        assert local_path(url) is None

    @pytest.mark.parametrize("url,expected", [
        ("/srv/git/x.git", "/srv/git/x.git"),
        ("relative/x.git", "relative/x.git"),
        ("file:///srv/git/x.git", "/srv/git/x.git"),
        ("C:/repos/x.git", "C:/repos/x.git"),
    ])
    def test_local_urls(self, url, expected):
        assert local_path(url) == expected
