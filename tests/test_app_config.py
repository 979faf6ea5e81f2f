import json
import os
import shutil
import unittest
from pathlib import Path
from unittest.mock import patch
from uuid import uuid4

from toolchat.app_config import _to_bool, load_json_config, parse_app_config, resolve_api_key


PROJECT_ROOT = Path(__file__).resolve().parents[1]


class ParseAppConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        app = parse_app_config({})
        self.assertEqual("anthropic", app.provider_name)
        self.assertEqual("claude-sonnet-4-5", app.model)
        self.assertEqual(str(Path(os.getcwd()).resolve()), app.working_directory)
        self.assertEqual(".toolchat/toolchat.db", app.db_path)
        self.assertEqual(40_000, app.max_tool_result_chars)
        self.assertEqual(50, app.max_tool_rounds)
        self.assertTrue(app.serialize_turns)
        self.assertIsNone(app.session_id)
        self.assertEqual("INFO", app.log_level)
        self.assertIsNone(app.log_consumers)

    def test_overrides(self) -> None:
        app = parse_app_config({
            "Provider": " OpenAI ",
            "Model": "gpt-4o",
            "WorkingDirectory": "/tmp",
            "MaxToolRounds": "3",
            "SerializeTurns": "off",
            "SessionId": " abc ",
            "LogConsumers": [{"type": "console"}],
        })
        self.assertEqual("openai", app.provider_name)
        self.assertEqual("gpt-4o", app.model)
        self.assertEqual(str(Path("/tmp").resolve()), app.working_directory)
        self.assertEqual(3, app.max_tool_rounds)
        self.assertFalse(app.serialize_turns)
        self.assertEqual("abc", app.session_id)
        self.assertEqual([{"type": "console"}], app.log_consumers)

    def test_to_bool(self) -> None:
        self.assertTrue(_to_bool("yes"))
        self.assertFalse(_to_bool("0"))
        self.assertTrue(_to_bool(None, default=True))
        self.assertTrue(_to_bool(1))


class LoadJsonConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"config-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def test_missing_file_is_empty(self) -> None:
        self.assertEqual({}, load_json_config(self._tmp_dir / "config.json"))

    def test_reads_file(self) -> None:
        path = self._tmp_dir / "config.json"
        path.write_text(json.dumps({"Model": "claude-opus-4-5"}), encoding="utf-8")
        self.assertEqual({"Model": "claude-opus-4-5"}, load_json_config(path))


class ResolveApiKeyTests(unittest.TestCase):
    def test_reads_provider_env_var(self) -> None:
        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test"}):
            self.assertEqual("sk-test", resolve_api_key("openai"))

    def test_unknown_provider(self) -> None:
        with self.assertRaises(ValueError):
            resolve_api_key("mystery")
