from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from toolchat.errors import SessionNotFoundError
from toolchat.memory import SessionManager, SessionRecord
from toolchat.provider import get_provider_info

USAGE = (
    "Usage: /session | /session list [limit] | /session new [title] | /session resume <id> | "
    "/session name <title> | /session provider <name> <model> | /session model <model> | "
    "/session cwd <dir> | /session history | /session delete <id>"
)


class SessionCommand:
    """Session create/read/update/list/delete pass-throughs for the CLI."""

    def __init__(
        self,
        sessions: SessionManager,
        current: SessionRecord,
        *,
        line_prefix: str = "",
        output: Callable[[str], None] = print,
    ) -> None:
        self._sessions = sessions
        self.current = current
        self._line_prefix = line_prefix
        self._output = output

    @staticmethod
    def handles(text: str) -> bool:
        trimmed = text.strip()
        return trimmed == "/session" or trimmed.startswith("/session ")

    async def handle(self, command: str) -> None:
        parts = command.strip().split(maxsplit=2)
        action = parts[1].lower() if len(parts) > 1 else ""
        args = parts[2].strip() if len(parts) > 2 else ""

        try:
            if action == "":
                self._print_session(self.current)
            elif action == "list":
                self._list(int(args) if args else 20)
            elif action == "new":
                self.current = self._sessions.create_session(
                    title=args or None,
                    working_directory=self.current.working_directory,
                    provider=self.current.provider,
                    model=self.current.model,
                )
                self._say(f"Started session {self.current.id}")
            elif action == "resume" and args:
                self.current = self._sessions.require_session(args)
                self._say(f"Resumed session {self.current.id} ({self.current.title})")
            elif action == "name" and args:
                self.current = self._sessions.update_session(self.current.id, title=args)
                self._say(f"Renamed session to {self.current.title!r}")
            elif action == "provider" and args:
                self._change_provider(args)
            elif action == "model" and args:
                self._validate_model(self.current.provider, args)
                self.current = self._sessions.update_session(self.current.id, model=args)
                self._say(f"Model set to {args}")
            elif action == "cwd" and args:
                directory = Path(args).expanduser().resolve()
                if not directory.is_dir():
                    raise ValueError(f"Working directory does not exist: {directory}")
                self.current = self._sessions.update_session(self.current.id, working_directory=str(directory))
                self._say(f"Working directory set to {directory}")
            elif action == "history":
                self._history()
            elif action == "delete" and args:
                self._delete(args)
            else:
                self._say(USAGE)
        except (ValueError, SessionNotFoundError) as ex:
            self._say(str(ex))

    def _change_provider(self, args: str) -> None:
        pieces = args.split()
        if len(pieces) != 2:
            raise ValueError("Usage: /session provider <name> <model>")
        info = get_provider_info(pieces[0])
        self._validate_model(info.name, pieces[1])
        previous = self.current.provider
        self.current = self._sessions.update_session(self.current.id, provider=info.name, model=pieces[1])
        if previous != info.name:
            self._say(f"Provider changed to {info.display_name}; message history cleared")
        else:
            self._say(f"Model set to {pieces[1]}")

    def _validate_model(self, provider_name: str, model: str) -> None:
        info = get_provider_info(provider_name)
        # OpenAI model ids are open-ended; only the Anthropic catalogue is closed.
        if info.name == "anthropic" and model not in info.models:
            raise ValueError(f"Invalid model for {info.name}. Allowed: {', '.join(info.models)}")

    def _list(self, limit: int) -> None:
        sessions = self._sessions.list_sessions(limit=limit)
        if not sessions:
            self._say("No sessions.")
            return
        for s in sessions:
            marker = "*" if s.id == self.current.id else " "
            self._say(f"{marker} {s.id}  {s.updated_at}  [{s.provider}/{s.model}]  {s.title}")

    def _history(self) -> None:
        messages = self._sessions.list_messages(self.current.id)
        if not messages:
            self._say("No messages.")
            return
        for message in messages:
            for part in message.parts:
                if part.type == "text":
                    summary = part.payload["text"]
                elif part.type == "tool_use":
                    summary = f"[tool_use {part.payload['name']} {part.payload['input']}]"
                else:
                    flag = " error" if part.payload.get("is_error") else ""
                    summary = f"[tool_result{flag}] {part.payload['content']}"
                summary = " ".join(summary.split())
                if len(summary) > 120:
                    summary = summary[:117] + "..."
                self._say(f"{message.role:>9}> {summary}")

    def _delete(self, session_id: str) -> None:
        if session_id == self.current.id:
            raise ValueError("Cannot delete the active session; switch with /session new or /session resume first")
        if self._sessions.delete_session(session_id):
            self._say(f"Deleted session {session_id}")
        else:
            self._say(f"Session does not exist: {session_id}")

    def _print_session(self, s: SessionRecord) -> None:
        self._say(f"Session {s.id}: {s.title}")
        self._say(f"  provider: {s.provider} ({s.model})")
        self._say(f"  working directory: {s.working_directory}")
        self._say(f"  created: {s.created_at}  updated: {s.updated_at}")

    def _say(self, text: str) -> None:
        self._output(f"{self._line_prefix}{text}")
