import asyncio
from pathlib import Path
from typing import Any

from toolchat.errors import ToolExecutionError, ToolInputError
from toolchat.tool import ToolContext
from toolchat.tools.file_io import encode_utf8, replace_file
from toolchat.tools.sandbox import resolve_in_workspace

_PREVIEW_CHARS = 50


class EditFileTool:
    @property
    def name(self) -> str:
        return "edit_file"

    @property
    def description(self) -> str:
        return (
            "Edit a file by replacing ALL occurrences of an old string with a new string. "
            "The old string must match exactly, including whitespace."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "The file path to edit, relative to the working directory",
                },
                "old_string": {
                    "type": "string",
                    "description": "The exact string to search for (ALL occurrences will be replaced)",
                },
                "new_string": {
                    "type": "string",
                    "description": "The string to replace it with",
                },
            },
            "required": ["path", "old_string", "new_string"],
        }

    @property
    def is_mutating(self) -> bool:
        return True

    async def execute(self, tool_input: dict[str, Any], context: ToolContext) -> str:
        path = tool_input["path"]
        old_string = tool_input["old_string"]
        new_string = tool_input["new_string"]
        if not old_string:
            raise ToolInputError("old_string must not be empty")

        file_path = resolve_in_workspace(path, context.working_directory, verb="edit")
        try:
            occurrences = await asyncio.to_thread(_replace_all, file_path, old_string, new_string)
        except FileNotFoundError:
            raise ToolExecutionError(f"File not found: {path}") from None
        except IsADirectoryError:
            raise ToolExecutionError(f"Path is a directory: {path}") from None
        except PermissionError:
            raise ToolExecutionError(f"Permission denied: {path}") from None
        except UnicodeDecodeError:
            raise ToolExecutionError(f"File is not valid UTF-8 text: {path}") from None

        if occurrences == 0:
            preview = old_string[:_PREVIEW_CHARS]
            if len(old_string) > _PREVIEW_CHARS:
                preview += "..."
            raise ToolExecutionError(
                f'String not found in file. The exact string "{preview}" does not exist in {path}'
            )
        return f"Successfully replaced {occurrences} occurrence(s) in {path}"


def _replace_all(file_path: Path, old_string: str, new_string: str) -> int:
    with open(file_path, encoding="utf-8", newline="") as f:
        content = f.read()

    # str.count and str.replace both scan left to right without overlap
    occurrences = content.count(old_string)
    if occurrences == 0:
        return 0

    replace_file(file_path, encode_utf8(content.replace(old_string, new_string), "new_string"))
    return occurrences
