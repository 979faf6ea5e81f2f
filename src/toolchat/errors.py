from __future__ import annotations


class ToolchatError(Exception):
    """Base class for errors raised by toolchat."""


class ToolError(ToolchatError):
    """A tool call failed. The message is shown to the model as the tool result."""


class UnknownToolError(ToolError):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class ToolInputError(ToolError):
    pass


class AccessDeniedError(ToolError):
    pass


class UnsafePatternError(ToolError):
    pass


class SearchTimeoutError(ToolError):
    pass


class SearchLimitError(ToolError):
    pass


class ToolExecutionError(ToolError):
    pass


class ProviderError(ToolchatError):
    """The remote model backend failed mid-stream. Always fatal for the turn."""


class SessionNotFoundError(ToolchatError):
    def __init__(self, session_id: str):
        super().__init__(f"Session does not exist: {session_id}")
        self.session_id = session_id
