import logging
from typing import Any, Dict, List

import anyio
from mcp.client.session import ClientSession
from mcp.shared.exceptions import McpError

from .errors import RegistryUnavailable
from .models import EMPTY_SCHEMA, Catalog, Outcome, ToolDescriptor, thaw

logger = logging.getLogger(__name__)


def _normalize(tool_info: Any) -> ToolDescriptor:
    """Convert one MCP tool listing entry into a ToolDescriptor.

    Raises:
        RegistryUnavailable: if the entry has no usable name or schema.
    """
    name = getattr(tool_info, "name", None)
    if not isinstance(name, str) or not name.strip():
        raise RegistryUnavailable(f"Tool entry without a name: {tool_info!r}")

    schema = getattr(tool_info, "inputSchema", None)
    if schema is None:
        schema = dict(EMPTY_SCHEMA)
    elif not isinstance(schema, dict):
        raise RegistryUnavailable(f"Tool '{name}' has a non-object input schema")

    return ToolDescriptor(
        name=name,
        description=getattr(tool_info, "description", None) or "",
        input_schema=schema,
    )


async def fetch_catalog(session: ClientSession) -> Outcome[Catalog]:
    """Fetch the backend's tool catalog in a single round-trip.

    Args:
        session: Initialized MCP client session.

    Returns:
        Outcome[Catalog]: the immutable catalog, or a failure carrying
            RegistryUnavailable. A partial catalog is never returned.
    """
    try:
        tools_result = await session.list_tools()
    except (McpError, OSError, anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
        logger.error("Listing tools failed: %s", e)
        return Outcome.failure(RegistryUnavailable(f"Tool backend unreachable: {e}"))

    entries = getattr(tools_result, "tools", None)
    if entries is None:
        return Outcome.failure(RegistryUnavailable("Tool listing has no 'tools' field"))

    catalog: List[ToolDescriptor] = []
    seen: set[str] = set()
    try:
        for tool_info in entries:
            descriptor = _normalize(tool_info)
            if descriptor.name in seen:
                raise RegistryUnavailable(f"Duplicate tool name: {descriptor.name}")
            seen.add(descriptor.name)
            catalog.append(descriptor)
    except RegistryUnavailable as e:
        logger.error("Rejecting tool catalog: %s", e)
        return Outcome.failure(e)

    logger.info("Loaded %d tools: %s", len(catalog), ", ".join(sorted(seen)))
    return Outcome.success(tuple(catalog))


def to_openai_tools(catalog: Catalog) -> List[Dict[str, Any]]:
    """Return the catalog in OpenAI function-calling format, as fresh plain dicts."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": thaw(tool.input_schema),
            },
        }
        for tool in catalog
    ]
