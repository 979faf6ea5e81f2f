from __future__ import annotations

from pathlib import Path

from toolchat.errors import AccessDeniedError


def canonical_root(working_directory: str) -> Path:
    return Path(working_directory).expanduser().resolve()


def is_strictly_inside(candidate: Path, root: Path) -> bool:
    return candidate != root and root in candidate.parents


def resolve_in_workspace(path: str, working_directory: str, *, verb: str = "access") -> Path:
    """Resolve ``path`` against the working directory and confine it there.

    Absolute paths replace the working directory, as with ``os.path.join``.
    Both sides are canonicalized (symlinks and ``..`` resolved) before the
    comparison, and the working directory itself is not an acceptable target.
    """
    root = canonical_root(working_directory)
    candidate = (root / Path(path).expanduser()).resolve()
    if not is_strictly_inside(candidate, root):
        raise AccessDeniedError(f"Access denied: cannot {verb} files outside working directory")
    return candidate
