import asyncio
import logging
import threading
from typing import Awaitable, Callable

from rich.console import Console

from .errors import InvalidSessionState, ToolChatError, TransportClosed
from .session import SessionController
from .settings import Settings

logger = logging.getLogger(__name__)

ReadLine = Callable[[str], Awaitable[str]]

PROMPT = "You: "


async def read_terminal_line(prompt: str) -> str:
    """Read one line from stdin without blocking the event loop.

    input() runs on a daemon thread, so a pending read never keeps the
    process alive once the loop is cancelled (Ctrl-C).
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def _resolve(line: str | None, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(line or "")

    def _read() -> None:
        try:
            line, error = input(prompt), None
        except Exception as e:
            line, error = None, e
        try:
            loop.call_soon_threadsafe(_resolve, line, error)
        except RuntimeError:
            # event loop already closed
            pass

    threading.Thread(target=_read, name="toolchat-input", daemon=True).start()
    return await future


def is_exit_command(line: str, exit_command: str) -> bool:
    return line.strip().lower() == exit_command.strip().lower()


async def chat_loop(
    controller: SessionController,
    settings: Settings,
    console: Console,
    read_line: ReadLine = read_terminal_line,
) -> None:
    """Read queries until the exit command, printing each reply.

    A failed query is reported and the loop moves on to the next prompt.
    InvalidSessionState and TransportClosed end the loop.
    """
    console.print(f"Welcome to MCP Client! Type '{settings.exit_command}' to quit.", markup=False)

    while True:
        try:
            query = await read_line(PROMPT)
        except EOFError:
            console.print()
            logger.info("Input closed, leaving chat loop")
            break

        if is_exit_command(query, settings.exit_command):
            break
        if not query.strip():
            continue

        try:
            response = await controller.submit_query(query.strip())
        except (InvalidSessionState, TransportClosed):
            raise
        except ToolChatError as e:
            logger.error("Query failed: %s", e)
            console.print(f"Error: {e}", style="red", markup=False)
            continue
        except Exception as e:
            logger.exception("Unexpected error while processing query: %s", e)
            console.print(f"Error: {e}", style="red", markup=False)
            continue

        console.print(f"MCP: {response}", markup=False, highlight=False)
