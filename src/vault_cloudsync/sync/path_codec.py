"""Conversion between local file paths and cloud-safe remote identifiers.

The codec works on three representations of the same file:

* a platform path as produced by the local file system (``notes\\a b.md``),
* the canonical path, forward slashes only (``notes/a b.md``),
* the remote id, each segment percent-encoded (``notes/a%20b.md``).

``decode`` is the exact inverse of ``encode``. ``encode`` never tries to
detect already-encoded input, so a file literally named ``100%25.md`` keeps
its name through a round trip.
"""

import re
from pathlib import PurePosixPath
from urllib.parse import quote, unquote

SEPARATOR = "/"

# RFC 3986 unreserved characters are left alone, everything else is escaped
_SEGMENT_SAFE = ""

_CONTAINER_MIN_LENGTH = 3
_CONTAINER_MAX_LENGTH = 63


def normalize(path: str) -> str:
    """Convert any separator style to the canonical forward-slash form."""
    return path.replace("\\", SEPARATOR)


def encode(path: str) -> str:
    """Percent-encode each segment of a canonical path.

    Args:
        path: Canonical path

    Returns:
        Remote id with ``/`` separators preserved
    """
    return SEPARATOR.join(quote(segment, safe=_SEGMENT_SAFE) for segment in path.split(SEPARATOR))


def decode(remote_id: str) -> str:
    """Inverse of :func:`encode`."""
    return unquote(remote_id)


def join(*parts: str) -> str:
    """Join canonical path fragments, ignoring empty ones."""
    cleaned = [normalize(p).strip(SEPARATOR) for p in parts]
    return SEPARATOR.join(p for p in cleaned if p)


def parent(path: str) -> str:
    """Canonical parent of a path, ``""`` for top-level entries."""
    head, _, _ = normalize(path).rstrip(SEPARATOR).rpartition(SEPARATOR)
    return head


def depth(path: str) -> int:
    return normalize(path).strip(SEPARATOR).count(SEPARATOR)


def conflict_copy_name(path: str, side: str, md5: str) -> str:
    """Name of the sibling that keeps the losing side of a conflict.

    The name depends only on its inputs so that repeated passes over the
    same conflict agree on it.

    Args:
        path: Canonical path of the conflicting file
        side: ``"local"`` or ``"remote"``
        md5: Content hash of the losing copy (may be empty)

    Returns:
        Canonical path such as ``notes/todo (conflict remote 1a2b3c4d).md``
    """
    posix = PurePosixPath(normalize(path))
    tag = f"conflict {side}"
    if md5:
        tag += f" {md5[:8]}"
    name = f"{posix.stem} ({tag}){posix.suffix}"
    head = parent(path)
    return f"{head}{SEPARATOR}{name}" if head else name


def container_name_for(vault_name: str) -> str:
    """Derive a legal Azure container name from a vault name.

    Container names are 3-63 characters of lowercase letters, digits and
    single dashes, starting and ending with a letter or digit.
    """
    name = vault_name.lower()
    name = re.sub(r"[^a-z0-9-]", "-", name)
    name = re.sub(r"-+", "-", name)
    name = re.sub(r"^[^a-z0-9]+", "", name)
    name = re.sub(r"[^a-z0-9]+$", "", name)

    while len(name) < _CONTAINER_MIN_LENGTH:
        name += "x"

    if len(name) > _CONTAINER_MAX_LENGTH:
        name = name[:_CONTAINER_MAX_LENGTH]
        name = re.sub(r"[^a-z0-9]+$", "", name)

    return name
