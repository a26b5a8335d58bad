import argparse
import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Sequence

from rich.console import Console

from .chat import ReadLine, chat_loop, read_terminal_line
from .errors import ToolChatError
from .session import SessionController
from .settings import Settings, get_settings


def setup_logging(
    logs_dir: Path,
    level: str = "INFO",
    echo: bool = False,
    name: str = "toolchat",
) -> logging.Logger:
    """Configure and return the client logger.

    Records go to logs/client.log. Errors the user needs to see are already
    printed in the chat transcript, so stderr echo is off unless `echo` is set.
    """
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    if echo:
        ch = logging.StreamHandler()
        ch.setFormatter(fmt)
        logger.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "client.log", maxBytes=2_000_000, backupCount=3)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    return logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolchat",
        description="Chat with an LLM that can call tools on an MCP server.",
    )
    parser.add_argument("server_script", nargs="?", help="path to the MCP server script")
    return parser


async def run_client(
    server_script: str,
    settings: Settings,
    controller: SessionController | None = None,
    console: Console | None = None,
    read_line: ReadLine = read_terminal_line,
) -> int:
    """Connect to the tool server and run the chat loop. Always shuts down once."""
    console = console or Console()
    controller = controller or SessionController(settings, console=console)
    logger = logging.getLogger("toolchat")
    try:
        await controller.connect(server_script)
        await chat_loop(controller, settings, console, read_line=read_line)
    except ToolChatError as e:
        logger.error("Fatal error: %s", e)
        console.print(f"Error: {e}", style="red", markup=False)
        return 1
    finally:
        await controller.shutdown()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.server_script:
        print("Usage: toolchat <path_to_server_script>")
        return 0

    settings = get_settings()
    setup_logging(settings.logs_dir, settings.log_level, echo=settings.log_to_console)
    if not settings.openai_api_key:
        print("OPENAI_API_KEY is not set", file=sys.stderr)
        return 1

    try:
        return asyncio.run(run_client(args.server_script, settings))
    except KeyboardInterrupt:
        # asyncio.run cancels the client task on Ctrl-C; run_client has shut down by now.
        print()
        return 130


if __name__ == "__main__":
    sys.exit(main())
