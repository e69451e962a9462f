"""Ref-level mirroring helpers shared by the repository backends.

Only branches and tags are mirrored.  Everything else a server may
advertise (pull-request refs, notes, remote-tracking refs) is left alone
on both sides.
"""

from __future__ import annotations

from dataclasses import dataclass, field

MIRRORED_PREFIXES = (b"refs/heads/", b"refs/tags/")

_URL_SCHEMES = ("http://", "https://", "git://", "ssh://", "git+ssh://", "ssh+git://")


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class RefChange:
    """One destination ref that a mirror push creates, moves or deletes.

    ``old_target`` is the destination's sha before the push (``None`` when
    the ref is new there) and ``new_target`` the source's (``None`` when the
    ref is gone upstream).  Both are hex strings.
    """
    ref: str
    old_target: str | None = None
    new_target: str | None = None


@dataclass
class MirrorDiff:
    """How a destination's branches and tags differ from the local copy's.

    ``push_mirror`` returns what it changed, ``diff_refs`` what a push
    would change.  Each list is sorted by ref name; ``update`` entries are
    forced regardless of ancestry.
    """
    add: list[RefChange] = field(default_factory=list)
    update: list[RefChange] = field(default_factory=list)
    delete: list[RefChange] = field(default_factory=list)

    @property
    def in_sync(self) -> bool:
        return not (self.add or self.update or self.delete)

    @property
    def total(self) -> int:
        return sum(map(len, (self.add, self.update, self.delete)))


# ---------------------------------------------------------------------------
# Ref helpers (bytes keys, dulwich native format)
# ---------------------------------------------------------------------------

def is_mirrored(ref: bytes) -> bool:
    """True for branch and tag refs, excluding peeled ``^{}`` entries."""
    return ref.startswith(MIRRORED_PREFIXES) and not ref.endswith(b"^{}")


def mirrored_refs(refs: dict) -> dict:
    """Filter a ``{ref: sha}`` mapping down to mirrored refs."""
    return {ref: sha for ref, sha in refs.items() if is_mirrored(ref)}


def compute_diff(src: dict, dest: dict) -> MirrorDiff:
    """Changes needed to make *dest* match *src*.

    Both arguments are ``{ref: sha}`` mappings with bytes keys and values,
    already filtered with :func:`mirrored_refs`.
    """
    def _sha(b):
        return b.decode() if isinstance(b, bytes) else str(b)

    diff = MirrorDiff()
    for ref in sorted(src):
        if ref not in dest:
            diff.add.append(RefChange(ref=ref.decode(), new_target=_sha(src[ref])))
        elif dest[ref] != src[ref]:
            diff.update.append(RefChange(
                ref=ref.decode(), old_target=_sha(dest[ref]), new_target=_sha(src[ref]),
            ))
    for ref in sorted(dest):
        if ref not in src:
            diff.delete.append(RefChange(ref=ref.decode(), old_target=_sha(dest[ref])))
    return diff


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------

def local_path(url: str) -> str | None:
    """Return the filesystem path for a local URL, or ``None`` for remote ones.

    ``file://`` URLs and plain paths are local.  Scheme URLs and scp-style
    ``user@host:path`` / ``host:path`` are remote.
    """
    if url.startswith("file://"):
        return url[7:]
    if any(url.startswith(proto) for proto in _URL_SCHEMES):
        return None
    if "@" in url and ":" in url.split("@", 1)[1]:
        return None
    colon_idx = url.find(":")
    # A colon after >1 chars with no path separator before it looks like
    # host:path.  Single letters are Windows drive letters.
    prefix = url[:colon_idx]
    if colon_idx > 1 and "/" not in prefix and "\\" not in prefix:
        return None
    return url
