from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from jsonschema import Draft7Validator
from loguru import logger

from toolchat.errors import ToolError, ToolInputError, UnknownToolError
from toolchat.tool import Tool, ToolContext
from toolchat.tools.edit_file_tool import EditFileTool
from toolchat.tools.glob_tool import GlobTool
from toolchat.tools.grep_tool import GrepTool
from toolchat.tools.read_file_tool import ReadFileTool
from toolchat.tools.write_file_tool import WriteFileTool


@dataclass(frozen=True)
class ToolResult:
    content: str
    is_error: bool = False


def get_all() -> list[Tool]:
    return [
        ReadFileTool(),
        WriteFileTool(),
        EditFileTool(),
        GrepTool(),
        GlobTool(),
    ]


class ToolRegistry:
    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        self._validators: dict[str, Draft7Validator] = {}
        for tool in get_all() if tools is None else tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name!r}")
            Draft7Validator.check_schema(tool.input_schema)
            self._tools[tool.name] = tool
            self._validators[tool.name] = Draft7Validator(tool.input_schema)

    @property
    def tools(self) -> list[Tool]:
        return list(self._tools.values())

    def definitions(self) -> list[dict]:
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": t.input_schema,
            }
            for t in self._tools.values()
        ]

    def get(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return tool

    def validate(self, tool: Tool, tool_input: Any) -> dict[str, Any]:
        errors = sorted(
            self._validators[tool.name].iter_errors(tool_input),
            key=lambda e: list(e.absolute_path),
        )
        if errors:
            first = errors[0]
            location = "/".join(str(p) for p in first.absolute_path) or "input"
            raise ToolInputError(f"Invalid input for {tool.name}: {location}: {first.message}")
        return tool_input

    async def execute(self, name: str, tool_input: Any, context: ToolContext) -> str:
        """Resolve, validate and execute a tool. Tool failures raise ``ToolError``."""
        tool = self.get(name)
        validated = self.validate(tool, tool_input)
        return await tool.execute(validated, context)

    async def run(self, name: str, tool_input: Any, context: ToolContext) -> ToolResult:
        """Like ``execute`` but every failure comes back as an error-flagged result string."""
        logger.info(f"Tool {name} started in {context.working_directory}")
        try:
            content = await self.execute(name, tool_input, context)
        except UnknownToolError:
            logger.warning(f"Model requested unknown tool {name!r}")
            return ToolResult(f'Error: unknown tool "{name}"', is_error=True)
        except ToolError as ex:
            logger.info(f"Tool {name} failed: {ex}")
            return ToolResult(f'Error executing tool "{name}": {ex}', is_error=True)
        except Exception as ex:
            logger.opt(exception=ex).warning(f"Tool {name} raised unexpectedly")
            return ToolResult(f'Error executing tool "{name}": {ex}', is_error=True)

        logger.info(f"Tool {name} finished ({len(content):,} chars)")
        return ToolResult(content)
