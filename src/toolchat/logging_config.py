"""loguru sinks for toolchat.

Every record carries ``extra["session_id"]``. The orchestrator binds it for
the duration of a turn with ``logger.contextualize``; records logged outside
a turn show ``-``. Sinks are configured from the ``LogConsumers`` list in
``config.json``, e.g.::

    "LogConsumers": [
        {"type": "console", "level": "WARNING"},
        {"type": "file", "path": ".toolchat/turns.jsonl", "serialize": true}
    ]
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

NO_SESSION = "-"

_CONSOLE_FORMAT = (
    "<level>{level:<8}</level> | <magenta>{extra[session_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | session={extra[session_id]} | {name}:{function}:{line} - {message}"

DEFAULT_LOG_PATH = ".toolchat/toolchat.log"


@dataclass(frozen=True)
class LogSink:
    type: str
    level: str
    path: str = DEFAULT_LOG_PATH
    rotation: str = "10 MB"
    retention: int = 3
    serialize: bool = False

    def register(self) -> None:
        if self.type == "console":
            logger.add(sys.stderr, level=self.level, format=_CONSOLE_FORMAT)
            return
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self.path,
            level=self.level,
            format=_FILE_FORMAT,
            rotation=self.rotation,
            retention=self.retention,
            serialize=self.serialize,
            # Turns run tool I/O in worker threads.
            enqueue=True,
        )

    def describe(self) -> str:
        if self.type == "console":
            return f"console (stderr, {self.level})"
        kind = "jsonl" if self.serialize else "text"
        return f"file ({self.path}, {kind}, {self.level})"


_SINK_TYPES = ("console", "file")
_SINK_OPTIONS = {"path", "rotation", "retention", "serialize"}


def parse_sinks(consumers: list[dict[str, Any]] | None, level: str) -> list[LogSink]:
    """Turn ``LogConsumers`` entries into sinks; unknown types and options are skipped with a warning."""
    if consumers is None:
        return [LogSink(type="file", level=level)]

    sinks: list[LogSink] = []
    for entry in consumers:
        sink_type = entry.get("type", "")
        if sink_type not in _SINK_TYPES:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue
        unknown = set(entry) - _SINK_OPTIONS - {"type", "level"}
        if unknown:
            logger.warning(f"Ignoring unknown options for {sink_type} log consumer: {sorted(unknown)}")
        options = {k: v for k, v in entry.items() if k in _SINK_OPTIONS}
        sinks.append(LogSink(type=sink_type, level=entry.get("level", level), **options))
    return sinks


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace all sinks with the configured ones. Returns a description of each."""
    sinks = parse_sinks(consumers, level)

    logger.remove()
    logger.configure(extra={"session_id": NO_SESSION})
    for sink in sinks:
        sink.register()
    return [sink.describe() for sink in sinks]
