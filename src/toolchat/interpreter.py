import json
import logging
from typing import Any, Awaitable, Callable, List, Sequence

from .models import (
    InterpretedResponse,
    Outcome,
    ResponseSegment,
    TextSegment,
    ToolCallRecord,
    ToolCallSegment,
    ToolResult,
    UnsupportedSegment,
)

logger = logging.getLogger(__name__)

DispatchFn = Callable[[ToolCallSegment], Awaitable[Outcome[ToolResult]]]


def _tool_call_segment(tool_call: Any) -> ResponseSegment:
    if getattr(tool_call, "type", "function") != "function":
        return UnsupportedSegment(kind=f"tool_call:{tool_call.type}")

    function = tool_call.function
    raw_arguments = function.arguments or ""
    try:
        arguments = json.loads(raw_arguments) if raw_arguments.strip() else {}
    except json.JSONDecodeError as e:
        logger.error("Invalid tool arguments for %s: %s", function.name, e)
        return ToolCallSegment(
            tool_name=function.name,
            call_id=tool_call.id,
            arguments_error=f"invalid JSON arguments: {e}",
        )

    if not isinstance(arguments, dict):
        return ToolCallSegment(
            tool_name=function.name,
            call_id=tool_call.id,
            arguments_error=f"arguments must be a JSON object, got {type(arguments).__name__}",
        )
    return ToolCallSegment(tool_name=function.name, call_id=tool_call.id, arguments=arguments)


def segments_from_message(message: Any) -> List[ResponseSegment]:
    """Split a chat completion message into ordered response segments.

    The text part comes first, followed by each tool call in the order the
    model emitted them.
    """
    segments: List[ResponseSegment] = []

    if getattr(message, "content", None):
        segments.append(TextSegment(text=message.content))

    if getattr(message, "refusal", None):
        segments.append(UnsupportedSegment(kind="refusal"))

    for tool_call in getattr(message, "tool_calls", None) or []:
        segments.append(_tool_call_segment(tool_call))

    return segments


class ResponseInterpreter:
    """Walks a reply once, in order, dispatching tool calls as they appear."""

    def __init__(self, dispatch: DispatchFn) -> None:
        self._dispatch = dispatch

    async def interpret(self, segments: Sequence[ResponseSegment]) -> InterpretedResponse:
        """Accumulate text and run tool calls sequentially.

        Args:
            segments: Ordered segments of one model reply.

        Returns:
            InterpretedResponse: the text segments joined by newlines, plus one
                record per tool call in the order they were dispatched.
        """
        final_text: List[str] = []
        records: List[ToolCallRecord] = []

        for segment in segments:
            if isinstance(segment, TextSegment):
                final_text.append(segment.text)
            elif isinstance(segment, ToolCallSegment):
                outcome = await self._dispatch(segment)
                records.append(ToolCallRecord(segment=segment, outcome=outcome))
            else:
                logger.debug("Ignoring unsupported segment: %s", segment)

        return InterpretedResponse(final_text="\n".join(final_text), tool_calls=records)
