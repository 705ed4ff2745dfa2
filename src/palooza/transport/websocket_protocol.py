"""WebSocket message protocol definitions.

Defines Pydantic models for WebSocket message serialization/deserialization.
Messages are JSON-encoded text frames; server messages use camelCase keys.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from src.palooza.errors import RequestValidationError
from src.palooza.models import ConversationRequest, ConversationStyle, Persona

# Start command bounds
MAX_NAME_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 250
MAX_TOPIC_LENGTH = 250


class StartMessage(BaseModel):
    """Client → Server: Start a conversation.

    Field bounds are checked by ``validate_start()`` so each violation maps
    to its client-facing error string.
    """

    type: Literal["start"] = "start"
    personas: list[Persona] = Field(..., description="Exactly two personas, A then B")
    style: ConversationStyle = Field(..., description="Conversation style")
    topic: str = Field(..., description="Conversation topic")
    token: str | None = Field(default=None, description="Optional bearer token")


class StopMessage(BaseModel):
    """Client → Server: Cooperative wind-down."""

    type: Literal["stop"] = "stop"


class CloseMessage(BaseModel):
    """Client → Server: Immediate teardown."""

    type: Literal["close"] = "close"


ClientMessage = Annotated[
    StartMessage | StopMessage | CloseMessage, Field(discriminator="type")
]

client_message_adapter: TypeAdapter[StartMessage | StopMessage | CloseMessage] = TypeAdapter(
    ClientMessage
)


class _ServerMessage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class SessionStartMessage(_ServerMessage):
    """Server → Client: Both personas are connected."""

    type: Literal["sessionStart"] = "sessionStart"
    media_type: str = Field(..., description="Negotiated audio media type")


class TranscriptMessage(_ServerMessage):
    """Server → Client: Full current text of a turn."""

    type: Literal["transcript"] = "transcript"
    persona_id: str
    transcription_id: str
    text: str


class MediaMessage(_ServerMessage):
    """Server → Client: Audio chunk of a turn, base64-encoded."""

    type: Literal["media"] = "media"
    persona_id: str
    transcription_id: str
    data: str = Field(..., description="Base64-encoded PCM audio")
    media_type: str


class ErrorMessage(_ServerMessage):
    """Server → Client: Error notification."""

    type: Literal["error"] = "error"
    error: str = Field(..., description="Human-readable error")


class SessionEndMessage(_ServerMessage):
    """Server → Client: Conversation ended; no further messages follow."""

    type: Literal["sessionEnd"] = "sessionEnd"


# Union type for all server → client messages
ServerMessage = (
    SessionStartMessage | TranscriptMessage | MediaMessage | ErrorMessage | SessionEndMessage
)


def parse_client_message(raw: str | bytes) -> StartMessage | StopMessage | CloseMessage:
    """Parse a client JSON frame.

    Raises:
        RequestValidationError: If the frame is not JSON or not a known command.
            A ``start`` frame missing required fields is terminal.
    """
    try:
        return client_message_adapter.validate_json(raw)
    except ValidationError as e:
        # Tagged union errors are located under the matched tag
        is_start = any(detail["loc"][:1] == ("start",) for detail in e.errors())
        raise RequestValidationError(_describe_parse_error(e), terminal=is_start) from e


def _describe_parse_error(error: ValidationError) -> str:
    for detail in error.errors():
        if detail["type"] == "json_invalid":
            return "Invalid JSON"
        if detail["type"] in ("union_tag_invalid", "union_tag_not_found"):
            return "Unknown message type"
    return "Invalid parameters"


def _within(value: str, maximum: int) -> bool:
    return 0 < len(value) <= maximum


def validate_start(message: StartMessage | dict[str, Any]) -> ConversationRequest:
    """Validate a start command and build the conversation request.

    Args:
        message: Parsed start message (or its raw dict)

    Returns:
        Immutable conversation request

    Raises:
        RequestValidationError: With ``Invalid parameters``, ``Invalid personas``,
            ``Invalid topic`` or ``Invalid style``
    """
    if isinstance(message, dict):
        try:
            message = StartMessage.model_validate(message)
        except ValidationError as e:
            raise RequestValidationError("Invalid parameters") from e

    if len(message.personas) != 2 or not message.topic:
        raise RequestValidationError("Invalid parameters")

    for persona in message.personas:
        if not (
            _within(persona.name, MAX_NAME_LENGTH)
            and _within(persona.description, MAX_DESCRIPTION_LENGTH)
        ):
            raise RequestValidationError("Invalid personas")

    if not _within(message.topic, MAX_TOPIC_LENGTH):
        raise RequestValidationError("Invalid topic")

    style = message.style
    if not (
        _within(style.name, MAX_NAME_LENGTH)
        and _within(style.description, MAX_DESCRIPTION_LENGTH)
    ):
        raise RequestValidationError("Invalid style")

    persona_a, persona_b = message.personas
    return ConversationRequest(
        personas=(persona_a, persona_b), style=style, topic=message.topic
    )
