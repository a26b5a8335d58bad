import base64
import binascii
import logging
from typing import Any, Dict, List, Literal

import anyio
from mcp.client.session import ClientSession
from mcp.shared.exceptions import McpError
from mcp.types import CONNECTION_CLOSED
from rich.console import Console

from .errors import PayloadDecodeError, ToolInvocationFailed, TransportClosed
from .models import Catalog, Outcome, PayloadItem, ToolCallSegment, ToolResult
from .rendering import TerminalImageRenderer

logger = logging.getLogger(__name__)

ArgumentMode = Literal["strict", "empty"]

_TRANSPORT_ERRORS = (anyio.ClosedResourceError, anyio.BrokenResourceError, anyio.EndOfStream)


def _payload_item(content: Any) -> PayloadItem | None:
    """Map one MCP content block to a PayloadItem (None for unknown block types)."""
    kind = getattr(content, "type", None)
    if kind == "text":
        return PayloadItem(media_type="text/plain", data=content.text, encoded=False)
    if kind in ("image", "audio"):
        return PayloadItem(media_type=content.mimeType, data=content.data)
    if kind == "resource":
        resource = content.resource
        media_type = resource.mimeType or "application/octet-stream"
        blob = getattr(resource, "blob", None)
        if blob is not None:
            return PayloadItem(media_type=media_type, data=blob)
        return PayloadItem(media_type=media_type, data=getattr(resource, "text", ""), encoded=False)
    logger.debug("Skipping unsupported content block type: %s", kind)
    return None


def to_tool_result(call_result: Any) -> ToolResult:
    """Convert an MCP CallToolResult into a ToolResult."""
    items: List[PayloadItem] = []
    for content in getattr(call_result, "content", None) or []:
        item = _payload_item(content)
        if item is not None:
            items.append(item)
    return ToolResult(payload_items=tuple(items), is_error=bool(getattr(call_result, "isError", False)))


def decode_payload(item: PayloadItem) -> bytes:
    """Decode a payload into raw bytes. Literal text items are UTF-8 encoded.

    Raises:
        PayloadDecodeError: if the data is empty or not valid base64.
    """
    if isinstance(item.data, bytes):
        raw = item.data
    elif not item.encoded:
        raw = item.data.encode("utf-8")
    else:
        try:
            raw = base64.b64decode(item.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise PayloadDecodeError(f"Malformed base64 in {item.media_type} payload: {e}") from e
    if not raw:
        raise PayloadDecodeError(f"Empty {item.media_type} payload")
    return raw


class ToolDispatcher:
    """Executes tool calls against the MCP backend and presents their results."""

    def __init__(
        self,
        session: ClientSession,
        catalog: Catalog,
        renderer: TerminalImageRenderer,
        console: Console,
        argument_mode: ArgumentMode = "strict",
        render_all_payloads: bool = False,
    ) -> None:
        self._session = session
        self._tool_names = frozenset(tool.name for tool in catalog)
        self._renderer = renderer
        self._console = console
        self._argument_mode = argument_mode
        self._render_all_payloads = render_all_payloads

    async def invoke(self, tool_name: str, arguments: Dict[str, Any]) -> Outcome[ToolResult]:
        """Call a tool on the backend once.

        Args:
            tool_name: Name of a tool from the session catalog.
            arguments: Arguments emitted by the model. Replaced by {} in "empty" mode.

        Returns:
            Outcome[ToolResult]: the result, or a failure carrying
                ToolInvocationFailed or TransportClosed.
        """
        if tool_name not in self._tool_names:
            logger.error("Model requested unknown tool: %s", tool_name)
            return Outcome.failure(ToolInvocationFailed(tool_name, "not in the tool catalog"))

        call_arguments = arguments if self._argument_mode == "strict" else {}
        logger.info("Calling tool %s", tool_name)
        try:
            call_result = await self._session.call_tool(tool_name, call_arguments)
        except _TRANSPORT_ERRORS as e:
            return Outcome.failure(TransportClosed(f"Tool backend connection lost: {e!r}"))
        except McpError as e:
            if e.error.code == CONNECTION_CLOSED:
                return Outcome.failure(TransportClosed(f"Tool backend connection closed: {e}"))
            return Outcome.failure(ToolInvocationFailed(tool_name, str(e)))
        except OSError as e:
            return Outcome.failure(ToolInvocationFailed(tool_name, str(e)))

        result = to_tool_result(call_result)
        logger.debug("Tool %s result: %s", tool_name, result)
        if result.is_error:
            details = next(
                (item.data for item in result.payload_items if not item.encoded and item.data),
                "backend reported an error",
            )
            return Outcome.failure(ToolInvocationFailed(tool_name, str(details)))
        return Outcome.success(result)

    def present(self, result: ToolResult) -> None:
        """Show a tool result in the terminal.

        Only the first payload item is shown unless render_all_payloads is set.

        Raises:
            PayloadDecodeError: if the result is empty or an item cannot be decoded.
        """
        if not result.payload_items:
            raise PayloadDecodeError("Tool result has no payload items")

        items = result.payload_items if self._render_all_payloads else result.payload_items[:1]
        for item in items:
            if not item.encoded:
                self._console.print(str(item.data), markup=False, highlight=False)
            elif item.is_image:
                self._renderer.render(decode_payload(item))
            else:
                raw = decode_payload(item)
                self._console.print(f"<{item.media_type} payload, {len(raw)} bytes>", markup=False)

    async def handle(self, segment: ToolCallSegment) -> Outcome[ToolResult]:
        """Run one tool-call segment end to end: validate, invoke, present.

        Recoverable failures are reported to the user and returned.

        Raises:
            TransportClosed: if the backend connection is gone.
        """
        if segment.arguments_error and self._argument_mode == "strict":
            outcome: Outcome[ToolResult] = Outcome.failure(
                ToolInvocationFailed(segment.tool_name, segment.arguments_error)
            )
        else:
            outcome = await self.invoke(segment.tool_name, segment.arguments)

        if outcome.ok:
            try:
                self.present(outcome.unwrap())
            except PayloadDecodeError as e:
                outcome = Outcome.failure(e)

        if isinstance(outcome.error, TransportClosed):
            raise outcome.error
        if outcome.error is not None:
            logger.warning("Tool call %s (%s) failed: %s", segment.tool_name, segment.call_id, outcome.error)
            self._console.print(f"Error: {outcome.error}", style="red", markup=False)
        return outcome
