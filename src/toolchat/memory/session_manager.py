from __future__ import annotations

import json
import sqlite3
from typing import Any
from uuid import uuid4

from loguru import logger

from toolchat.errors import SessionNotFoundError
from toolchat.memory.models import (
    PART_TYPES,
    MessageRecord,
    PartRecord,
    SessionRecord,
    part_to_block,
    utc_now,
)
from toolchat.memory.store import MemoryStore

DEFAULT_TITLE = "New Conversation"


class SessionManager:
    """Sessions, messages and message parts on top of a ``MemoryStore``.

    Messages and parts are append-only. Every write commits before returning,
    so the sqlite database is the only state shared between concurrent turns.
    """

    def __init__(self, store: MemoryStore):
        self._store = store

    # -- sessions --

    def create_session(
        self,
        *,
        working_directory: str,
        provider: str,
        model: str,
        title: str | None = None,
        session_id: str | None = None,
    ) -> SessionRecord:
        sid = session_id or str(uuid4())
        now = utc_now()
        self._store.execute(
            """
            INSERT INTO sessions (id, title, working_directory, provider, model, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (sid, (title or DEFAULT_TITLE).strip(), working_directory, provider, model, now, now),
        )
        self._store.commit()
        logger.info(f"Created session {sid} (provider={provider}, model={model})")
        return self.require_session(sid)

    def get_session(self, session_id: str) -> SessionRecord | None:
        row = self._store.execute(
            "SELECT * FROM sessions WHERE id = ? LIMIT 1",
            (session_id,),
        ).fetchone()
        if row is None:
            return None
        return _session_from_row(row)

    def require_session(self, session_id: str) -> SessionRecord:
        session = self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list_sessions(self, *, limit: int = 50) -> list[SessionRecord]:
        rows = self._store.execute(
            """
            SELECT * FROM sessions
            ORDER BY updated_at DESC, created_at DESC
            LIMIT ?
            """,
            (max(1, limit),),
        ).fetchall()
        return [_session_from_row(row) for row in rows]

    def update_session(
        self,
        session_id: str,
        *,
        title: str | None = None,
        working_directory: str | None = None,
        provider: str | None = None,
        model: str | None = None,
    ) -> SessionRecord:
        """Update mutable session fields.

        Switching to a different provider deletes the session's messages,
        because stored content blocks are only guaranteed to replay correctly
        through the provider that produced them.
        """
        current = self.require_session(session_id)
        provider_changed = provider is not None and provider != current.provider

        updates: dict[str, Any] = {"updated_at": utc_now()}
        if title is not None:
            updates["title"] = title.strip()
        if working_directory is not None:
            updates["working_directory"] = working_directory
        if provider is not None:
            updates["provider"] = provider
        if model is not None:
            updates["model"] = model

        assignments = ", ".join(f"{column} = ?" for column in updates)
        with self._store.transaction():
            if provider_changed:
                logger.info(
                    f"Provider changed from {current.provider} to {provider} - clearing message history "
                    f"for session {session_id}"
                )
                self._store.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
            self._store.execute(
                f"UPDATE sessions SET {assignments} WHERE id = ?",
                (*updates.values(), session_id),
            )
        return self.require_session(session_id)

    def delete_session(self, session_id: str) -> bool:
        cursor = self._store.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        self._store.commit()
        return cursor.rowcount > 0

    def touch_session(self, session_id: str) -> None:
        self._store.execute(
            "UPDATE sessions SET updated_at = ? WHERE id = ?",
            (utc_now(), session_id),
        )
        self._store.commit()

    # -- messages --

    def create_message(self, session_id: str, role: str) -> str:
        message_id = str(uuid4())
        # Sequence is allocated inside the INSERT so it cannot interleave with another writer.
        self._store.execute(
            """
            INSERT INTO messages (id, session_id, seq, role, created_at)
            SELECT ?, ?, COALESCE(MAX(seq), 0) + 1, ?, ?
            FROM messages WHERE session_id = ?
            """,
            (message_id, session_id, role, utc_now(), session_id),
        )
        self._store.commit()
        return message_id

    def append_part(self, message_id: str, part_type: str, payload: dict[str, Any], order: int) -> str:
        if part_type not in PART_TYPES:
            raise ValueError(f"Unknown message part type: {part_type!r}")
        part_id = str(uuid4())
        self._store.execute(
            """
            INSERT INTO message_parts (id, message_id, type, content_json, part_order)
            VALUES (?, ?, ?, ?, ?)
            """,
            (part_id, message_id, part_type, json.dumps(payload, ensure_ascii=True), order),
        )
        self._store.commit()
        return part_id

    def delete_messages_for_session(self, session_id: str) -> int:
        cursor = self._store.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
        self._store.commit()
        return cursor.rowcount

    def list_messages(self, session_id: str) -> list[MessageRecord]:
        message_rows = self._store.execute(
            "SELECT * FROM messages WHERE session_id = ? ORDER BY seq ASC",
            (session_id,),
        ).fetchall()
        part_rows = self._store.execute(
            """
            SELECT p.* FROM message_parts p
            JOIN messages m ON m.id = p.message_id
            WHERE m.session_id = ?
            ORDER BY m.seq ASC, p.part_order ASC
            """,
            (session_id,),
        ).fetchall()

        parts_by_message: dict[str, list[PartRecord]] = {}
        for row in part_rows:
            parts_by_message.setdefault(row["message_id"], []).append(
                PartRecord(
                    id=row["id"],
                    message_id=row["message_id"],
                    type=row["type"],
                    payload=json.loads(row["content_json"]),
                    order=int(row["part_order"]),
                )
            )

        return [
            MessageRecord(
                id=row["id"],
                session_id=row["session_id"],
                seq=int(row["seq"]),
                role=row["role"],
                created_at=row["created_at"],
                parts=parts_by_message.get(row["id"], []),
            )
            for row in message_rows
        ]

    def load_history(self, session_id: str) -> list[dict]:
        """Rebuild provider history: one entry per message, parts merged in order.

        Messages without parts are skipped; providers reject empty turns.
        """
        history: list[dict] = []
        for message in self.list_messages(session_id):
            if not message.parts:
                continue
            history.append({
                "role": message.role,
                "content": [part_to_block(p.type, p.payload) for p in message.parts],
            })
        return history


def _session_from_row(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        id=row["id"],
        title=row["title"],
        working_directory=row["working_directory"],
        provider=row["provider"],
        model=row["model"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
