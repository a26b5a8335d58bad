class ToolChatError(Exception):
    """Base class for all client errors."""


class RegistryUnavailable(ToolChatError):
    """Tool catalog could not be fetched or was malformed. Fatal at startup."""


class InvalidSessionState(ToolChatError):
    """An operation was called in a lifecycle stage that does not allow it."""


class ToolInvocationFailed(ToolChatError):
    """A tool call was rejected locally or failed on the backend."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class PayloadDecodeError(ToolChatError):
    """A tool result payload was missing or could not be decoded."""


class TransportClosed(ToolChatError):
    """The stdio transport to the tool backend is gone."""


class ServerLaunchError(ToolChatError):
    """The tool backend could not be started."""


class CompletionFailed(ToolChatError):
    """The LLM request failed."""
