from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from toolchat.app_config import AppConfig, resolve_api_key
from toolchat.logging_config import setup_logging
from toolchat.memory import MemoryStore, SessionManager, SessionRecord
from toolchat.orchestrator import Orchestrator, SessionLocks
from toolchat.provider import LLMProvider, create_provider
from toolchat.tool_registry import ToolRegistry


@dataclass
class AppRuntime:
    orchestrator: Orchestrator
    sessions: SessionManager
    tools: ToolRegistry
    memory_store: MemoryStore
    session: SessionRecord
    log_descriptions: list[str]


def provider_for_session(session: SessionRecord) -> LLMProvider:
    return create_provider(session.provider, session.model, resolve_api_key(session.provider))


def bootstrap_runtime(app: AppConfig) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    db_path = Path(app.db_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    memory_store = MemoryStore(str(db_path))
    sessions = SessionManager(memory_store)
    tools = ToolRegistry()

    session = sessions.get_session(app.session_id) if app.session_id else None
    if session is None:
        session = sessions.create_session(
            session_id=app.session_id,
            working_directory=app.working_directory,
            provider=app.provider_name,
            model=app.model,
        )
    else:
        logger.info(f"Resuming session {session.id}")

    orchestrator = Orchestrator(
        sessions=sessions,
        tools=tools,
        provider_for=provider_for_session,
        max_tool_result_chars=app.max_tool_result_chars,
        max_tool_rounds=app.max_tool_rounds,
        locks=SessionLocks() if app.serialize_turns else None,
    )

    return AppRuntime(
        orchestrator=orchestrator,
        sessions=sessions,
        tools=tools,
        memory_store=memory_store,
        session=session,
        log_descriptions=log_descriptions,
    )
