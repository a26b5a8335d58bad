"""Interactive LLM chat client that calls tools on an MCP server.

The session controller owns the MCP stdio connection and the OpenAI client;
replies are interpreted segment by segment and tool calls dispatched in order.
"""

from .session import SessionController
from .settings import Settings, get_settings

__all__ = [
    "SessionController",
    "Settings",
    "get_settings",
]
