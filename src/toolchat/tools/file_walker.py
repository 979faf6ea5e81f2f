"""Workspace traversal for the glob and grep tools.

Patterns use the usual shell-glob dialect over POSIX-style relative paths:
``*`` and ``?`` stay within one path segment, ``**/`` spans any number of
directories (including none), ``[abc]``/``[!abc]`` are character classes and
``{a,b}`` is alternation.
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable
from pathlib import Path

from toolchat.errors import ToolInputError
from toolchat.tools.sandbox import canonical_root, is_strictly_inside

DEFAULT_EXCLUDED_DIRS: frozenset[str] = frozenset(
    {"node_modules", ".git", "dist", "build", "__pycache__", ".venv"}
)


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    pattern = pattern.strip()
    while pattern.startswith("./"):
        pattern = pattern[2:]

    out: list[str] = []
    brace_depth = 0
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    i += 1
                    out.append("(?:.*/)?")
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append("[" + body.replace("\\", "\\\\") + "]")
                i = end + 1
                continue
        elif c == "{":
            brace_depth += 1
            out.append("(?:")
        elif c == "}" and brace_depth:
            brace_depth -= 1
            out.append(")")
        elif c == "," and brace_depth:
            out.append("|")
        else:
            out.append(re.escape(c))
        i += 1

    if brace_depth:
        raise ToolInputError(f'Invalid glob pattern "{pattern}": unbalanced braces')
    try:
        return re.compile("".join(out))
    except re.error as ex:
        raise ToolInputError(f'Invalid glob pattern "{pattern}": {ex}') from None


def find_matches(
    working_directory: str,
    pattern: str,
    *,
    include_directories: bool = False,
    excluded_dirs: frozenset[str] = DEFAULT_EXCLUDED_DIRS,
    on_entry: Callable[[], object] | None = None,
) -> list[str]:
    """Return sorted relative POSIX paths under the working directory matching ``pattern``.

    Excluded directories are pruned before descent. Entries whose canonical
    path escapes the working directory (symlinks pointing outside) are dropped.
    ``on_entry`` is called once per visited entry; it may raise to abort the walk.
    """
    root = canonical_root(working_directory)
    regex = glob_to_regex(pattern)
    matches: list[str] = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in excluded_dirs]
        base = Path(dirpath)
        rel_base = base.relative_to(root).as_posix()

        candidates = list(filenames)
        if include_directories:
            candidates.extend(dirnames)

        for name in candidates:
            if on_entry is not None:
                on_entry()
            rel = name if rel_base == "." else f"{rel_base}/{name}"
            if not regex.fullmatch(rel):
                continue
            full = base / name
            if full.is_symlink() and not is_strictly_inside(full.resolve(), root):
                continue
            matches.append(rel)

    matches.sort()
    return matches
