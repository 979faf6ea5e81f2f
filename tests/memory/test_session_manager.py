import sqlite3

from toolchat.errors import SessionNotFoundError
from toolchat.memory.session_manager import DEFAULT_TITLE
from tests.memory.base import MemoryStoreTestCase


class SessionManagerTests(MemoryStoreTestCase):
    def test_sessions_have_default_title(self) -> None:
        session = self._new_session()
        self.assertEqual(DEFAULT_TITLE, session.title)
        self.assertEqual("anthropic", session.provider)
        self.assertEqual(session.created_at, session.updated_at)

    def test_create_with_explicit_id(self) -> None:
        session = self._new_session(session_id="stable-id", title="  Planning  ")
        self.assertEqual("stable-id", session.id)
        self.assertEqual("Planning", session.title)
        self.assertEqual(session, self._sessions.get_session("stable-id"))

    def test_missing_session(self) -> None:
        self.assertIsNone(self._sessions.get_session("nope"))
        with self.assertRaises(SessionNotFoundError) as ctx:
            self._sessions.require_session("nope")
        self.assertIn("nope", str(ctx.exception))

    def test_list_sessions_respects_limit(self) -> None:
        for i in range(3):
            self._new_session(title=f"s{i}")
        self.assertEqual(3, len(self._sessions.list_sessions()))
        self.assertEqual(2, len(self._sessions.list_sessions(limit=2)))

    def test_update_title_and_model_keeps_history(self) -> None:
        session = self._new_session()
        mid = self._sessions.create_message(session.id, "user")
        self._sessions.append_part(mid, "text", {"text": "hello"}, 0)

        updated = self._sessions.update_session(session.id, title="Renamed", model="claude-opus-4-5")

        self.assertEqual("Renamed", updated.title)
        self.assertEqual("claude-opus-4-5", updated.model)
        self.assertEqual(1, len(self._sessions.list_messages(session.id)))

    def test_provider_change_clears_messages(self) -> None:
        session = self._new_session()
        mid = self._sessions.create_message(session.id, "user")
        self._sessions.append_part(mid, "text", {"text": "hello"}, 0)

        updated = self._sessions.update_session(session.id, provider="openai", model="gpt-4o")

        self.assertEqual("openai", updated.provider)
        self.assertEqual([], self._sessions.list_messages(session.id))
        row = self._store.execute("SELECT COUNT(*) AS c FROM message_parts").fetchone()
        self.assertEqual(0, int(row["c"]))

    def test_same_provider_does_not_clear_messages(self) -> None:
        session = self._new_session()
        self._sessions.create_message(session.id, "user")
        self._sessions.update_session(session.id, provider="anthropic")
        self.assertEqual(1, len(self._sessions.list_messages(session.id)))

    def test_delete_session_cascades(self) -> None:
        session = self._new_session()
        mid = self._sessions.create_message(session.id, "assistant")
        self._sessions.append_part(mid, "text", {"text": "hi"}, 0)

        self.assertTrue(self._sessions.delete_session(session.id))
        self.assertFalse(self._sessions.delete_session(session.id))
        for table in ("messages", "message_parts"):
            row = self._store.execute(f"SELECT COUNT(*) AS c FROM {table}").fetchone()
            self.assertEqual(0, int(row["c"]))

    def test_message_seq_is_monotonic_per_session(self) -> None:
        a = self._new_session()
        b = self._new_session()
        for _ in range(3):
            self._sessions.create_message(a.id, "user")
        self._sessions.create_message(b.id, "user")

        self.assertEqual([1, 2, 3], [m.seq for m in self._sessions.list_messages(a.id)])
        self.assertEqual([1], [m.seq for m in self._sessions.list_messages(b.id)])

    def test_message_for_unknown_session_is_rejected(self) -> None:
        with self.assertRaises(sqlite3.IntegrityError):
            self._sessions.create_message("ghost", "user")

    def test_part_order_is_unique_within_message(self) -> None:
        session = self._new_session()
        mid = self._sessions.create_message(session.id, "assistant")
        self._sessions.append_part(mid, "text", {"text": "a"}, 0)
        with self.assertRaises(sqlite3.IntegrityError):
            self._sessions.append_part(mid, "text", {"text": "b"}, 0)

    def test_unknown_part_type_is_rejected(self) -> None:
        session = self._new_session()
        mid = self._sessions.create_message(session.id, "assistant")
        with self.assertRaises(ValueError):
            self._sessions.append_part(mid, "image", {}, 0)

    def test_delete_messages_for_session(self) -> None:
        session = self._new_session()
        self._sessions.create_message(session.id, "user")
        self._sessions.create_message(session.id, "assistant")
        self.assertEqual(2, self._sessions.delete_messages_for_session(session.id))
        self.assertEqual([], self._sessions.list_messages(session.id))

    def test_load_history_rebuilds_blocks_in_order(self) -> None:
        session = self._new_session()
        user = self._sessions.create_message(session.id, "user")
        self._sessions.append_part(user, "text", {"text": "list files"}, 0)
        assistant = self._sessions.create_message(session.id, "assistant")
        # Inserted out of order on purpose.
        self._sessions.append_part(assistant, "tool_use", {"id": "t1", "name": "glob", "input": {"pattern": "*"}}, 1)
        self._sessions.append_part(assistant, "text", {"text": "Looking."}, 0)
        result = self._sessions.create_message(session.id, "user")
        self._sessions.append_part(result, "tool_result", {"tool_use_id": "t1", "content": "a.txt"}, 0)
        self._sessions.create_message(session.id, "assistant")

        history = self._sessions.load_history(session.id)

        self.assertEqual(
            [
                {"role": "user", "content": [{"type": "text", "text": "list files"}]},
                {
                    "role": "assistant",
                    "content": [
                        {"type": "text", "text": "Looking."},
                        {"type": "tool_use", "id": "t1", "name": "glob", "input": {"pattern": "*"}},
                    ],
                },
                {
                    "role": "user",
                    "content": [{"type": "tool_result", "tool_use_id": "t1", "content": "a.txt", "is_error": False}],
                },
            ],
            history,
        )

    def test_touch_session_bumps_updated_at(self) -> None:
        session = self._new_session()
        self._store.execute("UPDATE sessions SET updated_at = '2000-01-01T00:00:00+00:00' WHERE id = ?", (session.id,))
        self._store.commit()
        self._sessions.touch_session(session.id)
        self.assertGreater(self._sessions.require_session(session.id).updated_at, "2000-01-01T00:00:00+00:00")
