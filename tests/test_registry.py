import dataclasses
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from mcp.shared.exceptions import McpError
from mcp.types import ErrorData, ListToolsResult, Tool

from conftest import make_tools
from toolchat.errors import RegistryUnavailable
from toolchat.models import ToolDescriptor
from toolchat.registry import fetch_catalog, to_openai_tools


def _session(result: object) -> MagicMock:
    session = MagicMock()
    session.list_tools = AsyncMock(return_value=result)
    return session


@pytest.mark.asyncio
async def test_fetch_catalog_normalizes_entries() -> None:
    """Each MCP tool becomes a ToolDescriptor with name, description and schema."""
    schema = {"type": "object", "properties": {"color": {"type": "string"}}}
    session = _session(
        ListToolsResult(tools=[Tool(name="color_swatch", description="Swatch", inputSchema=schema)])
    )
    outcome = await fetch_catalog(session)
    assert outcome.ok
    assert outcome.unwrap() == (ToolDescriptor("color_swatch", "Swatch", schema),)
    session.list_tools.assert_awaited_once()


@pytest.mark.asyncio
async def test_fetch_catalog_missing_description_becomes_empty() -> None:
    session = _session(
        ListToolsResult(tools=[Tool(name="lookup", inputSchema={"type": "object"})])
    )
    catalog = (await fetch_catalog(session)).unwrap()
    assert catalog[0].description == ""


@pytest.mark.asyncio
async def test_fetch_catalog_is_immutable() -> None:
    """The catalog is a tuple of frozen descriptors."""
    catalog = (await fetch_catalog(_session(make_tools("a", "b")))).unwrap()
    assert isinstance(catalog, tuple)
    with pytest.raises(dataclasses.FrozenInstanceError):
        catalog[0].name = "renamed"  # type: ignore[misc]


@pytest.mark.asyncio
async def test_fetch_catalog_rejects_duplicate_names() -> None:
    outcome = await fetch_catalog(_session(make_tools("lookup", "other", "lookup")))
    assert not outcome.ok
    assert isinstance(outcome.error, RegistryUnavailable)
    assert "lookup" in str(outcome.error)


@pytest.mark.asyncio
async def test_fetch_catalog_rejects_malformed_entry() -> None:
    """A nameless entry fails the whole catalog; no partial result."""
    entries = SimpleNamespace(
        tools=[
            SimpleNamespace(name="good", description="", inputSchema={}),
            SimpleNamespace(name="", description="", inputSchema={}),
        ]
    )
    outcome = await fetch_catalog(_session(entries))
    assert outcome.value is None
    with pytest.raises(RegistryUnavailable):
        outcome.unwrap()


@pytest.mark.asyncio
async def test_fetch_catalog_rejects_non_object_schema() -> None:
    entries = SimpleNamespace(tools=[SimpleNamespace(name="bad", description="", inputSchema="nope")])
    outcome = await fetch_catalog(_session(entries))
    assert isinstance(outcome.error, RegistryUnavailable)


@pytest.mark.asyncio
async def test_fetch_catalog_backend_error() -> None:
    session = MagicMock()
    session.list_tools = AsyncMock(side_effect=McpError(ErrorData(code=-32603, message="boom")))
    outcome = await fetch_catalog(session)
    assert isinstance(outcome.error, RegistryUnavailable)
    assert "boom" in str(outcome.error)


def test_to_openai_tools_format() -> None:
    catalog = (ToolDescriptor("lookup", "Look something up", {"type": "object", "properties": {}}),)
    assert to_openai_tools(catalog) == [
        {
            "type": "function",
            "function": {
                "name": "lookup",
                "description": "Look something up",
                "parameters": {"type": "object", "properties": {}},
            },
        }
    ]


@pytest.mark.asyncio
async def test_catalog_schema_is_deep_read_only() -> None:
    """Schemas are copied at fetch time and cannot be mutated afterwards."""
    schema = {
        "type": "object",
        "properties": {"color": {"type": "string"}},
        "required": ["color"],
    }
    tool = Tool(name="color_swatch", inputSchema=schema)
    catalog = (await fetch_catalog(_session(ListToolsResult(tools=[tool])))).unwrap()

    tool.inputSchema["properties"]["size"] = {"type": "integer"}
    frozen = catalog[0].input_schema
    assert "size" not in frozen["properties"]
    with pytest.raises(TypeError):
        frozen["type"] = "array"  # type: ignore[index]
    with pytest.raises(TypeError):
        frozen["properties"]["color"]["type"] = "integer"  # type: ignore[index]
    assert frozen["required"] == ("color",)


def test_to_openai_tools_returns_independent_copies() -> None:
    catalog = (ToolDescriptor("lookup", "", {"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]}),)
    parameters = to_openai_tools(catalog)[0]["function"]["parameters"]
    assert type(parameters) is dict
    assert parameters["required"] == ["q"]

    parameters["properties"]["q"]["type"] = "integer"
    assert catalog[0].input_schema["properties"]["q"]["type"] == "string"
    assert to_openai_tools(catalog)[0]["function"]["parameters"]["properties"]["q"]["type"] == "string"
