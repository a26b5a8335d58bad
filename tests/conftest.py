import base64
import io
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest

_root = Path(__file__).resolve().parents[1]
_src = _root / "src"
if _src.exists() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from mcp.types import ListToolsResult, Tool  # noqa: E402
from PIL import Image  # noqa: E402
from rich.console import Console  # noqa: E402

from toolchat.settings import Settings  # noqa: E402


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, openai_api_key="test-key", logs_dir=tmp_path / "logs")


@pytest.fixture
def console() -> Console:
    """Console writing to an in-memory buffer (read with console.file.getvalue())."""
    return Console(file=io.StringIO(), width=80)


@pytest.fixture
def png_bytes() -> bytes:
    """A small 4x4 red PNG."""
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), (255, 0, 0)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_b64(png_bytes: bytes) -> str:
    return base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def server_script(tmp_path: Path) -> str:
    script = tmp_path / "server.py"
    script.write_text("# placeholder tool server\n", encoding="utf-8")
    return str(script)


def make_tools(*names: str) -> ListToolsResult:
    return ListToolsResult(
        tools=[
            Tool(name=name, description=f"{name} tool", inputSchema={"type": "object", "properties": {}})
            for name in names
        ]
    )


def make_mcp_session(tools: ListToolsResult) -> MagicMock:
    """Mock MCP ClientSession usable as an async context manager."""
    session = MagicMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)
    session.initialize = AsyncMock(return_value=None)
    session.list_tools = AsyncMock(return_value=tools)
    session.call_tool = AsyncMock()
    return session


@asynccontextmanager
async def fake_stdio_client(server_params: Any):
    yield (MagicMock(name="read_stream"), MagicMock(name="write_stream"))


def tool_call(name: str, arguments: str = "{}", call_id: str = "call_1") -> SimpleNamespace:
    return SimpleNamespace(
        id=call_id,
        type="function",
        function=SimpleNamespace(name=name, arguments=arguments),
    )


def completion_message(content: str | None = None, tool_calls: List[Any] | None = None) -> SimpleNamespace:
    return SimpleNamespace(content=content, refusal=None, tool_calls=tool_calls)


def completion(message: SimpleNamespace) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="stop")])


def make_llm_client(*messages: SimpleNamespace) -> MagicMock:
    """Mock AsyncOpenAI whose chat.completions.create returns the given messages in turn."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=[completion(m) for m in messages])
    return client


def last_request(client: MagicMock) -> Dict[str, Any]:
    return client.chat.completions.create.call_args.kwargs
