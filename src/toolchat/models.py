from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Generic, List, Mapping, Tuple, TypeVar, Union

from .errors import ToolChatError

T = TypeVar("T")

EMPTY_SCHEMA: Dict[str, Any] = {"type": "object", "properties": {}}


def freeze(value: Any) -> Any:
    """Return a read-only deep copy: mappings become proxies, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of freeze: a plain, JSON-serializable deep copy."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class ToolDescriptor:
    """A tool advertised by the backend, in the shape the model consumes.

    The input schema is stored deep-frozen so a fetched catalog cannot change.
    """

    name: str
    description: str
    input_schema: Mapping[str, Any] = field(default_factory=lambda: EMPTY_SCHEMA)

    def __post_init__(self) -> None:
        object.__setattr__(self, "input_schema", freeze(self.input_schema))


Catalog = Tuple[ToolDescriptor, ...]


@dataclass(frozen=True)
class ConversationTurn:
    """A single user message. Only the current turn is ever sent."""

    content: str
    role: str = "user"

    def as_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class ToolCallSegment:
    tool_name: str
    call_id: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    arguments_error: str | None = None


@dataclass(frozen=True)
class UnsupportedSegment:
    """Any part of a reply the interpreter does not know how to handle."""

    kind: str


ResponseSegment = Union[TextSegment, ToolCallSegment, UnsupportedSegment]


@dataclass(frozen=True)
class PayloadItem:
    """One content item of a tool result.

    `encoded` is True when `data` is base64 (images, audio, resource blobs)
    and False when it is literal text, whatever the media type.
    """

    media_type: str
    data: Union[str, bytes]
    encoded: bool = True

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")


@dataclass(frozen=True)
class ToolResult:
    payload_items: Tuple[PayloadItem, ...] = ()
    is_error: bool = False


class LifecycleStage(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass
class SessionState:
    """Connection state owned by a single SessionController."""

    stage: LifecycleStage = LifecycleStage.DISCONNECTED
    catalog: Catalog = ()
    handle: Any = None
    tool_calls_count: int = 0


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one external round-trip: either a value or the error that ended it."""

    value: T | None = None
    error: ToolChatError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ToolChatError) -> "Outcome[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass(frozen=True)
class ToolCallRecord:
    segment: ToolCallSegment
    outcome: Outcome[ToolResult]


@dataclass
class InterpretedResponse:
    final_text: str
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
