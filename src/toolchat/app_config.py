from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from toolchat.provider import get_provider_info


@dataclass
class AppConfig:
    provider_name: str
    model: str
    working_directory: str
    db_path: str
    max_tool_result_chars: int
    max_tool_rounds: int
    serialize_turns: bool
    session_id: str | None
    log_level: str
    log_consumers: list | None


def load_json_config(config_path: Path | None = None) -> dict:
    path = config_path or Path.cwd() / "config.json"
    if path.exists():
        with open(path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_app_config(config: dict) -> AppConfig:
    working_directory = config.get("WorkingDirectory") or os.getcwd()
    return AppConfig(
        provider_name=str(config.get("Provider", "anthropic")).strip().lower(),
        model=str(config.get("Model", "claude-sonnet-4-5")).strip(),
        working_directory=str(Path(working_directory).expanduser().resolve()),
        db_path=str(config.get("DbPath", ".toolchat/toolchat.db")),
        max_tool_result_chars=int(config.get("MaxToolResultChars", 40_000)),
        max_tool_rounds=int(config.get("MaxToolRounds", 50)),
        serialize_turns=_to_bool(config.get("SerializeTurns", True), default=True),
        session_id=str(config.get("SessionId", "")).strip() or None,
        log_level=str(config.get("LogLevel", "INFO")),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_api_key(provider_name: str) -> str:
    return os.environ.get(get_provider_info(provider_name).api_key_env_var, "")
