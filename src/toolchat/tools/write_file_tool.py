import asyncio
from typing import Any

from toolchat.errors import ToolExecutionError
from toolchat.tool import ToolContext
from toolchat.tools.file_io import encode_utf8, replace_file
from toolchat.tools.sandbox import resolve_in_workspace


class WriteFileTool:
    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return "Write content to a file, creating it if it doesn't exist or overwriting it if it does."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "The file path to write, relative to the working directory",
                },
                "content": {
                    "type": "string",
                    "description": "The content to write to the file",
                },
            },
            "required": ["path", "content"],
        }

    @property
    def is_mutating(self) -> bool:
        return True

    async def execute(self, tool_input: dict[str, Any], context: ToolContext) -> str:
        path = tool_input["path"]
        content = tool_input["content"]
        file_path = resolve_in_workspace(path, context.working_directory, verb="write")
        data = encode_utf8(content, "content")
        try:
            existed = await asyncio.to_thread(replace_file, file_path, data)
        except IsADirectoryError:
            raise ToolExecutionError(f"Path is a directory: {path}") from None
        except PermissionError:
            raise ToolExecutionError(f"Permission denied: {path}") from None

        action = "overwrote" if existed else "created"
        return f"Successfully {action} {path} ({len(data)} bytes)"

