import asyncio
from pathlib import Path
from typing import Any

from toolchat.errors import ToolExecutionError
from toolchat.tool import ToolContext
from toolchat.tools.sandbox import resolve_in_workspace


class ReadFileTool:
    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Read the contents of a file from the local filesystem and return it as text."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "The file path to read, relative to the working directory",
                },
            },
            "required": ["path"],
        }

    @property
    def is_mutating(self) -> bool:
        return False

    async def execute(self, tool_input: dict[str, Any], context: ToolContext) -> str:
        path = tool_input["path"]
        file_path = resolve_in_workspace(path, context.working_directory, verb="read")
        try:
            return await asyncio.to_thread(_read_text, file_path)
        except FileNotFoundError:
            raise ToolExecutionError(f"File not found: {path}") from None
        except IsADirectoryError:
            raise ToolExecutionError(f"Path is a directory: {path}") from None
        except PermissionError:
            raise ToolExecutionError(f"Permission denied: {path}") from None
        except UnicodeDecodeError:
            raise ToolExecutionError(f"File is not valid UTF-8 text: {path}") from None


def _read_text(file_path: Path) -> str:
    # newline="" returns line endings as stored
    with open(file_path, encoding="utf-8", newline="") as f:
        return f.read()
