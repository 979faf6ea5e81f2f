from __future__ import annotations

import asyncio
import re
import time
from pathlib import Path
from typing import Any

import regex
from loguru import logger

from toolchat.errors import SearchLimitError, SearchTimeoutError, ToolInputError, UnsafePatternError
from toolchat.tool import ToolContext
from toolchat.tools.file_walker import find_matches
from toolchat.tools.sandbox import canonical_root

MAX_PATTERN_LENGTH = 500
MAX_TOTAL_MATCHES = 10_000
OPERATION_TIMEOUT_SECONDS = 10.0
MAX_GROUP_DEPTH = 5

# (x+)*, (x*)+, (x+)+, (x*)*
_NESTED_QUANTIFIER = re.compile(r"\([^)]*[*+][^)]*\)[*+]")
# ++, **, *+, +*
_CONSECUTIVE_QUANTIFIERS = re.compile(r"[*+]{2,}")
# (a|aa)*, (x|y)+
_QUANTIFIED_ALTERNATION = re.compile(r"\([^)]*\|[^)]*\)[*+]")


def validate_regex_pattern(pattern: str) -> None:
    """Reject patterns that are too long or shaped for catastrophic backtracking."""
    if len(pattern) > MAX_PATTERN_LENGTH:
        raise UnsafePatternError(f"Regex pattern too long (max {MAX_PATTERN_LENGTH} characters)")
    if _NESTED_QUANTIFIER.search(pattern):
        raise UnsafePatternError(
            "Regex pattern contains potentially dangerous nested quantifiers that could cause ReDoS attacks"
        )
    if _CONSECUTIVE_QUANTIFIERS.search(pattern):
        raise UnsafePatternError("Regex pattern contains consecutive quantifiers that could cause ReDoS attacks")
    if _QUANTIFIED_ALTERNATION.search(pattern):
        raise UnsafePatternError("Regex pattern repeats an alternation group, which could cause ReDoS attacks")

    depth = 0
    max_depth = 0
    escaped = False
    for char in pattern:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "(":
            depth += 1
            max_depth = max(max_depth, depth)
        elif char == ")":
            depth -= 1
    if max_depth > MAX_GROUP_DEPTH:
        raise UnsafePatternError(
            f"Regex pattern has too many nested groups (max {MAX_GROUP_DEPTH} levels) which could cause ReDoS attacks"
        )


class GrepTool:
    def __init__(
        self,
        *,
        timeout_seconds: float = OPERATION_TIMEOUT_SECONDS,
        max_total_matches: int = MAX_TOTAL_MATCHES,
    ):
        self._timeout_seconds = timeout_seconds
        self._max_total_matches = max_total_matches

    @property
    def name(self) -> str:
        return "grep"

    @property
    def description(self) -> str:
        return "Search for a regex pattern in files matching a glob pattern, with optional context lines."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "pattern": {
                    "type": "string",
                    "description": "Regular expression pattern to search for",
                },
                "glob": {
                    "type": "string",
                    "description": "Glob pattern to filter files (e.g. '**/*.py'). Default: '**/*' (all files)",
                },
                "context_lines": {
                    "type": "integer",
                    "description": "Number of context lines to show before and after matches. Default: 0",
                },
            },
            "required": ["pattern"],
        }

    @property
    def is_mutating(self) -> bool:
        return False

    async def execute(self, tool_input: dict[str, Any], context: ToolContext) -> str:
        pattern = tool_input["pattern"]
        glob_pattern = tool_input.get("glob") or "**/*"
        context_lines = max(0, int(tool_input.get("context_lines") or 0))

        validate_regex_pattern(pattern)
        try:
            compiled = regex.compile(pattern, regex.MULTILINE)
        except regex.error as ex:
            raise ToolInputError(f"Invalid regex pattern: {ex}") from None

        return await asyncio.to_thread(
            self._search,
            context.working_directory,
            pattern,
            compiled,
            glob_pattern,
            context_lines,
        )

    def _search(
        self,
        working_directory: str,
        pattern: str,
        compiled: regex.Pattern,
        glob_pattern: str,
        context_lines: int,
    ) -> str:
        deadline = time.monotonic() + self._timeout_seconds
        timeout_message = f"Grep operation timed out after {self._timeout_seconds:g}s"

        def check_timeout() -> float:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise SearchTimeoutError(timeout_message)
            return remaining

        root = canonical_root(working_directory)
        files = find_matches(working_directory, glob_pattern, on_entry=check_timeout)

        results: list[str] = []
        total_matches = 0
        matched_files = 0

        for rel_path in files:
            check_timeout()
            lines = _read_lines(root / rel_path)
            if lines is None:
                continue

            matched: list[int] = []
            for index, line in enumerate(lines):
                try:
                    # A single search is bounded by what is left of the budget.
                    found = compiled.search(line, timeout=check_timeout())
                except TimeoutError:
                    raise SearchTimeoutError(timeout_message) from None
                if found:
                    matched.append(index)
                    total_matches += 1
                    if total_matches > self._max_total_matches:
                        raise SearchLimitError(
                            f"Maximum match limit reached ({self._max_total_matches}). Refine your search pattern."
                        )

            if not matched:
                continue

            matched_files += 1
            matched_set = set(matched)
            to_show: set[int] = set()
            for line_number in matched:
                low = max(0, line_number - context_lines)
                high = min(len(lines) - 1, line_number + context_lines)
                to_show.update(range(low, high + 1))

            results.append(f"\n{rel_path}:")
            ordered = sorted(to_show)
            for position, line_number in enumerate(ordered):
                marker = "→" if line_number in matched_set else " "
                results.append(f"{marker} {line_number + 1}: {lines[line_number]}")
                if position + 1 < len(ordered) and ordered[position + 1] > line_number + 1:
                    results.append("  ...")

        if not results:
            return f'No matches found for pattern "{pattern}" in {len(files)} files'
        return f"Found {total_matches} match(es) in {matched_files} file(s):\n" + "\n".join(results)


def _read_lines(file_path: Path) -> list[str] | None:
    try:
        with open(file_path, encoding="utf-8") as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as ex:
        logger.debug(f"grep: skipping {file_path}: {ex}")
        return None
    if "\x00" in content:
        logger.debug(f"grep: skipping binary file {file_path}")
        return None
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines
