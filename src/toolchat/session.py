import logging
import os
import shlex
import sys
from contextlib import AsyncExitStack
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Tuple

import anyio
from mcp import StdioServerParameters
from mcp.client.session import ClientSession
from mcp.client.stdio import stdio_client
from mcp.shared.exceptions import McpError
from openai import AsyncOpenAI, OpenAIError
from rich.console import Console

from .dispatcher import ToolDispatcher
from .errors import (
    CompletionFailed,
    InvalidSessionState,
    ServerLaunchError,
    ToolChatError,
    TransportClosed,
)
from .interpreter import ResponseInterpreter, segments_from_message
from .models import Catalog, ConversationTurn, LifecycleStage, Outcome, SessionState, ToolCallSegment, ToolResult
from .registry import fetch_catalog, to_openai_tools
from .rendering import TerminalImageRenderer
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

_NODE_SUFFIXES = (".js", ".mjs", ".cjs")


def resolve_server_command(script_path: str, configured: str | None = None) -> Tuple[str, List[str]]:
    """Return (command, args) used to launch the tool server.

    A configured command is split shell-style and the script path appended.
    Otherwise Python scripts run with the current interpreter and JavaScript
    with node.

    Raises:
        ServerLaunchError: if the script is missing or its type is unknown.
    """
    if configured:
        parts = shlex.split(configured)
        if not parts:
            raise ServerLaunchError("mcp_server_command is empty")
        return parts[0], [*parts[1:], script_path]

    path = Path(script_path)
    if not path.is_file():
        raise ServerLaunchError(f"Server script not found: {script_path}")
    if path.suffix == ".py":
        return sys.executable, [str(path)]
    if path.suffix in _NODE_SUFFIXES:
        return "node", [str(path)]
    raise ServerLaunchError(f"Server script must be a .py or .js file: {script_path}")


class SessionController:
    """Owns the MCP connection and the LLM client for one interactive session."""

    def __init__(
        self,
        settings: Settings | None = None,
        llm_client: AsyncOpenAI | None = None,
        console: Console | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._llm = llm_client or AsyncOpenAI(
            api_key=self._settings.openai_api_key,
            base_url=self._settings.openai_base_url,
            timeout=self._settings.request_timeout_seconds,
        )
        self._console = console or Console()
        self._renderer = TerminalImageRenderer(self._console, max_width=self._settings.image_max_width)
        self._exit_stack = AsyncExitStack()
        self._dispatcher: ToolDispatcher | None = None
        self.state = SessionState()

    @property
    def stage(self) -> LifecycleStage:
        return self.state.stage

    @property
    def catalog(self) -> Catalog:
        return self.state.catalog

    async def __aenter__(self) -> "SessionController":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    async def connect(self, script_path: str) -> None:
        """Launch the tool server, perform the MCP handshake and load the catalog.

        On failure the controller stays DISCONNECTED and the error propagates.
        """
        if self.state.stage is not LifecycleStage.DISCONNECTED:
            raise InvalidSessionState(f"connect() called while {self.state.stage.value}")

        command, args = resolve_server_command(script_path, self._settings.mcp_server_command)
        server_params = StdioServerParameters(command=command, args=args, env={**os.environ})
        logger.info("Starting tool server: %s %s", command, " ".join(args))

        try:
            read, write = await self._exit_stack.enter_async_context(stdio_client(server_params))
            session = await self._exit_stack.enter_async_context(
                ClientSession(
                    read,
                    write,
                    read_timeout_seconds=timedelta(seconds=self._settings.tool_timeout_seconds),
                )
            )
            await session.initialize()
            catalog = (await fetch_catalog(session)).unwrap()
        except ToolChatError:
            await self._release()
            raise
        except (McpError, OSError, anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            logger.error("Failed to connect to MCP server: %s", e)
            await self._release()
            raise TransportClosed(f"Failed to connect to MCP server: {e}") from e

        self.state.handle = session
        self.state.catalog = catalog
        self._dispatcher = ToolDispatcher(
            session,
            catalog,
            renderer=self._renderer,
            console=self._console,
            argument_mode=self._settings.tool_argument_mode,
            render_all_payloads=self._settings.render_all_payloads,
        )
        self.state.stage = LifecycleStage.CONNECTED
        logger.info("Connected to server with tools: %s", [tool.name for tool in catalog])

    async def _request_completion(self, turn: ConversationTurn) -> Outcome[Any]:
        """Send one completion request. Single attempt, no retry."""
        request: Dict[str, Any] = {
            "model": self._settings.model,
            "max_tokens": self._settings.max_tokens,
            "messages": [turn.as_message()],
        }
        if self.state.catalog:
            request["tools"] = to_openai_tools(self.state.catalog)

        try:
            response = await self._llm.chat.completions.create(**request)
        except OpenAIError as e:
            logger.error("Completion request failed: %s", e)
            return Outcome.failure(CompletionFailed(f"LLM request failed: {e}"))

        if not response.choices:
            return Outcome.failure(CompletionFailed("LLM returned no choices"))
        return Outcome.success(response.choices[0].message)

    async def _dispatch(self, segment: ToolCallSegment) -> Outcome[ToolResult]:
        if self.state.stage is not LifecycleStage.CONNECTED or self._dispatcher is None:
            raise InvalidSessionState("Tool call attempted without a live connection")
        self.state.tool_calls_count += 1
        logger.info("Processing tool call #%d: %s", self.state.tool_calls_count, segment.tool_name)
        return await self._dispatcher.handle(segment)

    async def submit_query(self, text: str) -> str:
        """Send one user query with the tool catalog and return the reply text.

        Tool calls in the reply are executed in order as they are encountered;
        their output is shown immediately and is not part of the returned text.
        """
        if self.state.stage is not LifecycleStage.CONNECTED:
            raise InvalidSessionState(f"submit_query() called while {self.state.stage.value}")

        turn = ConversationTurn(content=text)
        logger.debug("User query: %s", text[:200])
        message = (await self._request_completion(turn)).unwrap()

        interpreter = ResponseInterpreter(self._dispatch)
        response = await interpreter.interpret(segments_from_message(message))
        if response.tool_calls:
            logger.info(
                "Tools called in order: %s",
                ", ".join(record.segment.tool_name for record in response.tool_calls),
            )
        return response.final_text

    async def _release(self) -> None:
        try:
            await self._exit_stack.aclose()
        except Exception as e:
            logger.warning("Error while releasing MCP connection: %s", e)
        self._exit_stack = AsyncExitStack()

    async def shutdown(self) -> None:
        """Release the MCP connection. Safe to call repeatedly; never raises."""
        if self.state.stage is LifecycleStage.CLOSED:
            return
        await self._release()
        self.state.handle = None
        self._dispatcher = None
        self.state.stage = LifecycleStage.CLOSED
        logger.info("Session closed")
