import asyncio
from typing import Any

from toolchat.tool import ToolContext
from toolchat.tools.file_walker import find_matches


class GlobTool:
    @property
    def name(self) -> str:
        return "glob"

    @property
    def description(self) -> str:
        return (
            "Find files, and optionally directories, matching a glob pattern. "
            "node_modules, .git and build output directories are skipped."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "pattern": {
                    "type": "string",
                    "description": "Glob pattern to match (e.g. '**/*.py', 'src/**/*.{js,jsx}')",
                },
                "include_directories": {
                    "type": "boolean",
                    "description": "Include directories in results. Default: false (files only)",
                },
            },
            "required": ["pattern"],
        }

    @property
    def is_mutating(self) -> bool:
        return False

    async def execute(self, tool_input: dict[str, Any], context: ToolContext) -> str:
        pattern = tool_input["pattern"]
        matches = await asyncio.to_thread(
            find_matches,
            context.working_directory,
            pattern,
            include_directories=bool(tool_input.get("include_directories", False)),
        )
        if not matches:
            return f'No files found matching pattern "{pattern}"'
        return f"Found {len(matches)} match(es):\n" + "\n".join(matches)
