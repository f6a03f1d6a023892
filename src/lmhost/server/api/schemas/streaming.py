"""Streaming command and event Pydantic schemas."""

from typing import Any, Literal

from pydantic import BaseModel, Field


EventTypeName = Literal[
    "session-created",  # Session registered for the conversation
    "chunk",            # Text delta from the model
    "token-budget",     # Usage so far against the context window
    "end",              # Stream finished normally
    "error",            # Stream failed
    "aborted",          # Stream aborted by request
]


class ChatMessage(BaseModel):
    """One message of the chat-completion request."""

    role: str = Field(description="Message role (system, user, assistant)")
    content: str = Field(description="Message content")


class StreamStartRequest(BaseModel):
    """Request model for starting a stream."""

    conversation_id: str = Field(min_length=1, description="Caller-supplied conversation key")
    provider_id: str = Field(description="Provider identifier")
    model_id: str = Field(description="Model identifier")
    messages: list[ChatMessage] = Field(min_length=1, description="Chat messages to send")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    context_window: int | None = Field(default=None, gt=0, description="Override for the token budget total")

    def completion_request(self) -> dict[str, Any]:
        request: dict[str, Any] = {"messages": [m.model_dump() for m in self.messages]}
        if self.temperature is not None:
            request["temperature"] = self.temperature
        if self.max_tokens is not None:
            request["max_tokens"] = self.max_tokens
        return request


class StreamStartResponse(BaseModel):
    """Response model for a started stream."""

    conversation_id: str
    session_id: str


class StreamAbortResponse(BaseModel):
    """Response model for abort requests."""

    session_id: str
    aborted: bool = Field(description="False when the session was unknown or already finished")


class TokenUsageSchema(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    context_window: int = 0


class ActiveSessionResponse(BaseModel):
    """An active streaming session."""

    session_id: str
    conversation_id: str
    provider_id: str
    model_id: str
    status: str
    elapsed_seconds: float
    usage: TokenUsageSchema


class ActiveSessionListResponse(BaseModel):
    sessions: list[ActiveSessionResponse] = Field(default_factory=list)
    total: int


class StreamEventMessage(BaseModel):
    """Server -> client event over the boundary."""

    type: EventTypeName
    conversation_id: str
    session_id: str
    seq: int
    data: dict[str, Any] = Field(default_factory=dict)


# Client -> Server commands
class StartCommand(BaseModel):
    """Boundary command to start a stream."""

    type: Literal["start"] = "start"
    conversation_id: str = Field(min_length=1)
    provider_id: str
    model_id: str
    request: dict[str, Any] = Field(description="Chat-completion request body (messages, options)")
    context_window: int | None = Field(default=None, gt=0)


class AbortCommand(BaseModel):
    """Boundary command to abort a stream (the conversation's active one if no id)."""

    type: Literal["abort"] = "abort"
    session_id: str | None = None


def parse_command(message: dict[str, Any], conversation_id: str | None = None) -> StartCommand | AbortCommand:
    """Validate a boundary command, defaulting conversation_id from the channel."""
    if not isinstance(message, dict):
        raise ValueError("Command must be a JSON object")
    msg_type = message.get("type")
    if msg_type == "start":
        data = dict(message)
        if conversation_id is not None:
            data.setdefault("conversation_id", conversation_id)
            if data["conversation_id"] != conversation_id:
                raise ValueError("conversation_id does not match the channel")
        return StartCommand.model_validate(data)
    if msg_type == "abort":
        return AbortCommand.model_validate(message)
    raise ValueError(f"Unsupported command '{msg_type}'")
