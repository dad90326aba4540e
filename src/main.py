"""Mnemo terminal client entry point.

Usage examples:
    # Interactive chat
    mnemo

    # Replace the API key list (and optionally the model)
    mnemo keys sk-ant-one sk-ant-two --model sonnet

    # Inspect or wipe long-term memory
    mnemo memory list
    mnemo memory clear

    # Wipe the conversation log
    mnemo history clear
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import mimetypes
import sys
from pathlib import Path

from src.chat.orchestrator import ChatOrchestrator
from src.config import settings
from src.errors import AllCredentialsExhausted, StoreError
from src.llm.models import friendly
from src.llm.provider import AnthropicProvider
from src.storage.models import ImageAttachment
from src.storage.store import PersistentStore

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  /image PATH [text]  send an image with optional text
  /memory             list remembered facts
  /clear              clear the chat history
  /quit               exit"""


def load_image(path: Path) -> ImageAttachment:
    """Read an image file for an inline attachment."""
    mime_type, _ = mimetypes.guess_type(path.name)
    if not mime_type or not mime_type.startswith("image/"):
        raise ValueError(f"Not an image file: {path}")
    return ImageAttachment(data=path.read_bytes(), mime_type=mime_type)


class _StreamPrinter:
    """Writes the growing reply to stdout as new text arrives."""

    def __init__(self) -> None:
        self._shown = ""

    async def __call__(self, accumulated: str) -> None:
        if not accumulated.startswith(self._shown):
            # A retry on the next key restarted the reply
            sys.stdout.write("\n")
            self._shown = ""
        sys.stdout.write(accumulated[len(self._shown) :])
        sys.stdout.flush()
        self._shown = accumulated


def _build_orchestrator() -> ChatOrchestrator:
    return ChatOrchestrator(PersistentStore.shared(), AnthropicProvider())


async def _chat(orchestrator: ChatOrchestrator) -> int:
    messages = await orchestrator.start_session()
    context = orchestrator.context
    if context is None or not context.credentials:
        print("No API keys found. Add them with `mnemo keys KEY [KEY ...]`.", file=sys.stderr)
        return 1

    for message in messages:
        label = "you" if message.role == "user" else settings.assistant_name.lower()
        print(f"{label}> {message.text or '[image]'}")
    print(f"(model: {friendly(context.model_name)}; type /help for commands)")

    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "you> ")
            except EOFError:
                break

            line = line.strip()
            image = None
            if not line:
                continue
            if line in ("/quit", "/exit"):
                break
            if line == "/help":
                print(HELP_TEXT)
                continue
            if line == "/memory":
                for item in await orchestrator.list_memories():
                    print(f"- {item.text}")
                continue
            if line == "/clear":
                await orchestrator.clear_history()
                print("Chat history cleared.")
                continue
            if line.startswith("/image "):
                path, _, line = line[len("/image ") :].strip().partition(" ")
                try:
                    image = load_image(Path(path).expanduser())
                except (OSError, ValueError) as exc:
                    print(f"Could not attach image: {exc}", file=sys.stderr)
                    continue

            sys.stdout.write(f"{settings.assistant_name.lower()}> ")
            try:
                await orchestrator.send_turn(line, image=image, on_delta=_StreamPrinter())
            except AllCredentialsExhausted as exc:
                print(f"\nOops! Something went wrong. {exc}", file=sys.stderr)
            except StoreError:
                logger.exception("Reply was shown but could not be saved")
            print()
    finally:
        await orchestrator.wait_for_memory()
    return 0


async def _run(args: argparse.Namespace) -> int:
    orchestrator = _build_orchestrator()

    if args.command == "keys":
        context = await orchestrator.update_credentials(args.keys, args.model)
        print(
            f"Saved {len(context.credentials)} API key(s); "
            f"model {friendly(context.model_name)}."
        )
        return 0

    if args.command == "memory":
        if args.action == "clear":
            await orchestrator.clear_memories()
            print("Memory cleared.")
        else:
            items = await orchestrator.list_memories()
            for item in items:
                print(f"[{item.timestamp}] {item.text}")
            print(f"{len(items)} memory item(s).")
        return 0

    if args.command == "history":
        await orchestrator.clear_history()
        print("Chat history cleared.")
        return 0

    return await _chat(orchestrator)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mnemo",
        description="Terminal chat with API key failover and long-term memory.",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("chat", help="Start an interactive chat (default)")

    keys = sub.add_parser("keys", help="Replace the stored API key list")
    keys.add_argument("keys", nargs="+", help="API keys, tried in this order")
    keys.add_argument("--model", default=None, help="Model name or alias (haiku, sonnet, opus)")

    memory = sub.add_parser("memory", help="Inspect or clear long-term memory")
    memory.add_argument("action", choices=["list", "clear"], nargs="?", default="list")

    history = sub.add_parser("history", help="Manage the conversation log")
    history.add_argument("action", choices=["clear"])

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and run the requested command."""
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(_run(args))
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except StoreError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
