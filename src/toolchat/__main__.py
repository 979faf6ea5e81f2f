import asyncio

from dotenv import load_dotenv
from loguru import logger

from toolchat.app_config import load_json_config, parse_app_config
from toolchat.bootstrap import bootstrap_runtime
from toolchat.commands.session_command import USAGE, SessionCommand
from toolchat.streaming import WireFrame, format_sse, stream_turn

_TOOL_PREVIEW_CHARS = 200


def _render(frame: WireFrame) -> None:
    logger.debug(format_sse(frame).rstrip())
    data = frame.data
    if frame.event == "message.delta":
        print(data["text"], end="", flush=True)
    elif frame.event == "tool.start":
        print(f"\n[{data['toolName']}] {data['input']}", flush=True)
    elif frame.event == "tool.result":
        preview = data["result"]
        if len(preview) > _TOOL_PREVIEW_CHARS:
            preview = preview[:_TOOL_PREVIEW_CHARS] + "..."
        label = "error" if data.get("isError") else "result"
        print(f"[{label}] {preview}", flush=True)
    elif frame.event == "message.done" and "error" in data:
        print(f"\nassistant> Error: {data['error']}", flush=True)


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    runtime = bootstrap_runtime(app)
    session_command = SessionCommand(runtime.sessions, runtime.session, line_prefix="assistant> ")

    print("toolchat (type 'exit' to quit, '/help' for commands)")
    print("Tools:")
    for tool in runtime.tools.tools:
        print(f"  - {tool.name}")
    print(f"Session: {runtime.session.id} [{runtime.session.provider}/{runtime.session.model}]")
    print(f"Working directory: {runtime.session.working_directory}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            if trimmed == "/help":
                print("assistant> Commands: /help, /session ..., exit")
                print(f"assistant> {USAGE}")
                continue

            if SessionCommand.handles(trimmed):
                await session_command.handle(trimmed)
                continue

            if trimmed.startswith("/"):
                print(f"assistant> Unknown command: {trimmed}")
                continue

            print("\nassistant> ", end="", flush=True)
            async for frame in stream_turn(runtime.orchestrator, session_command.current.id, trimmed):
                _render(frame)
            print("\n")
    finally:
        runtime.memory_store.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
