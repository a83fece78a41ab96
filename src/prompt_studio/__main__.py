"""CLI entry point for prompt-studio."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
import threading
from typing import Callable, Optional
from pathlib import Path

from prompt_studio.ai.classifier import classify
from prompt_studio.app import PromptStudioApp
from prompt_studio.ai.orchestrator import SessionOrchestrator
from prompt_studio.config import AppConfig, load_config
from prompt_studio.core.errors import PromptStudioError, TurnInProgressError
from prompt_studio.core.types import TurnState
from prompt_studio.log import setup_logging
from prompt_studio.storage.database import Database
from prompt_studio.storage.models import Story
from prompt_studio.storage.story_repo import StoryRepository

CHAT_HELP = """Commands:
  /versions          list story versions
  /revert <id>       make a version active
  /delete <id>       delete a version
  /clear             keep only the active version
  /quit              leave (Ctrl+D works too)
Ctrl+C cancels a response that is still streaming, otherwise it leaves the chat."""


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="prompt-studio",
        description="AI prompt designer: streaming chat, dual-channel replies and versioned stories",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat_parser = subparsers.add_parser("chat", help="Chat with the prompt designer")
    _add_config_args(chat_parser)
    chat_parser.add_argument("--conversation", default="cli", help="Conversation id")

    classify_parser = subparsers.add_parser("classify", help="Split a reply into chat and prompt channels")
    classify_parser.add_argument("file", nargs="?", help="File to classify (default: stdin)")

    versions_parser = subparsers.add_parser("versions", help="List the story versions of a conversation")
    _add_config_args(versions_parser)
    versions_parser.add_argument("conversation", help="Conversation id")

    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    _add_config_args(check_parser)

    args = parser.parse_args()

    if args.command is None:
        args.command = "chat"
        args.config = "config.yaml"
        args.env = ".env"
        args.conversation = "cli"

    match args.command:
        case "classify":
            _classify(args.file)
        case "config-check":
            _check_config(args.config, args.env)
        case "versions":
            config = _load_or_exit(args.config, args.env)
            asyncio.run(_versions(config, args.conversation))
        case "chat":
            config = _load_or_exit(args.config, args.env)
            setup_logging(config.log_level, config.log_json)
            asyncio.run(_chat(config, args.conversation))


def _load_or_exit(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load_or_exit(config_path, env_path)
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Backend: {config.completion.backend} ({config.completion.model})")
    print(f"  API key: {'set' if config.anthropic.api_key else 'missing'}")
    print(f"  Storage: {config.storage.db_path}")
    sink = config.configuration_api.base_url or "local settings table"
    print(f"  Configuration sink: {sink}")
    keep = config.story.keep_last_versions
    print(f"  Story versions kept: {keep if keep else 'all'}")


def _classify(path: str | None) -> None:
    text = Path(path).read_text(encoding="utf-8") if path else sys.stdin.read()
    result = classify(text)
    print(f"source: {result.source}")
    print("--- chat ---")
    print(result.chat_response or "(none)")
    print("--- prompt ---")
    print(result.ai_prompt or "(none)")


def _print_versions(story: Story | None) -> None:
    if story is None:
        print("No story yet.")
        return
    for version in story.versions:
        marker = "*" if story.is_active(version.id) else " "
        first_line = version.content.strip().splitlines()[0] if version.content.strip() else ""
        print(f" {marker} {version.id}  {version.updated_at:%Y-%m-%d %H:%M:%S}  {first_line[:60]}")


async def _versions(config: AppConfig, conversation_id: str) -> None:
    db = Database(config.storage.db_path)
    await db.initialize()
    try:
        _print_versions(await StoryRepository(db).load(conversation_id))
    finally:
        await db.close()


def _interrupt_handler(
    orchestrator: SessionOrchestrator, conversation_id: str, stop_event: asyncio.Event
) -> Callable[[], None]:
    """Ctrl+C cancels a running turn; with no turn running it leaves the chat."""

    def _handler() -> None:
        if not orchestrator.cancel(conversation_id):
            stop_event.set()

    return _handler


async def _read_line(prompt: str, stop_event: asyncio.Event) -> Optional[str]:
    """Read one line without blocking the loop. None on EOF or when *stop_event* fires."""
    loop = asyncio.get_running_loop()
    answer: asyncio.Future[Optional[str]] = loop.create_future()

    def _settle(line: Optional[str]) -> None:
        if not answer.done():
            answer.set_result(line)

    def _read() -> None:
        try:
            line: Optional[str] = input(prompt)
        except EOFError:
            line = None
        loop.call_soon_threadsafe(_settle, line)

    # Daemon: an unanswered input() must not block exit
    threading.Thread(target=_read, daemon=True).start()
    stop_task = asyncio.ensure_future(stop_event.wait())
    await asyncio.wait({answer, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    stop_task.cancel()
    return answer.result() if answer.done() else None


async def _chat(config: AppConfig, conversation_id: str) -> None:
    app = PromptStudioApp(config)
    await app.start()

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    try:
        loop.add_signal_handler(signal.SIGINT, _interrupt_handler(app.orchestrator, conversation_id, stop_event))
    except NotImplementedError:
        # Windows doesn't support add_signal_handler
        pass

    try:
        await app.messages.load(conversation_id)
        print(CHAT_HELP)
        while True:
            line = await _read_line("you> ", stop_event)
            if line is None:
                print()
                break
            line = line.strip()
            if not line:
                continue
            if line == "/quit":
                break
            if line.startswith("/"):
                await _chat_command(app, conversation_id, line)
                continue

            try:
                result = await app.orchestrator.handle_turn(conversation_id, line)
            except TurnInProgressError as e:
                print(e, file=sys.stderr)
                continue

            match result.state:
                case TurnState.CANCELLED:
                    print("(cancelled)")
                case TurnState.ERROR_RECOVERY:
                    print(f"bot> {result.error}")
                case _:
                    print(f"bot> {result.chat_response or result.error or ''}")
                    if result.story is not None:
                        print(f"(story updated, active version {result.story.active_version_id})")
                    if result.tool_summary:
                        print(result.tool_summary)
    finally:
        await app.stop()


async def _chat_command(app: PromptStudioApp, conversation_id: str, line: str) -> None:
    command, _, argument = line.partition(" ")
    argument = argument.strip()
    try:
        match command:
            case "/versions":
                _print_versions(await app.stories.get(conversation_id))
            case "/revert" if argument:
                _print_versions(await app.stories.revert(conversation_id, argument))
            case "/delete" if argument:
                _print_versions(await app.stories.delete(conversation_id, argument))
            case "/clear":
                _print_versions(await app.stories.clear_history(conversation_id))
            case _:
                print(CHAT_HELP)
    except PromptStudioError as e:
        print(f"Error: {e}", file=sys.stderr)


if __name__ == "__main__":
    main()
