"""Data models for the gateway."""

from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# OpenAI-Compatible Request/Response Models
# ============================================================================

class Role(str, Enum):
    """Chat message author."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """
    OpenAI chat message format.

    Inbound ``content`` may be a plain string or a list of typed parts;
    for the latter the first part of type "text" is used. It is always
    stored and serialized as a plain string.
    """
    model_config = {"frozen": True}

    role: Role
    content: str

    @field_validator("content", mode="before")
    @classmethod
    def _flatten_content(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value
        if isinstance(value, list):
            for part in value:
                if not isinstance(part, dict) or not isinstance(part.get("type"), str):
                    raise ValueError("content parts must be objects with a 'type' field")
            for part in value:
                if part["type"] == "text":
                    text = part.get("text")
                    return text if isinstance(text, str) else ""
            return ""
        raise ValueError("content must be a string or an array of content parts")


class ChatCompletionRequest(BaseModel):
    """OpenAI chat completion request."""
    model: str
    messages: List[ChatMessage]
    stream: Optional[bool] = False


class Usage(BaseModel):
    """Usage counts are character counts, not tokenizer counts."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    @classmethod
    def of(cls, prompt_tokens: int, completion_tokens: int) -> "Usage":
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )


class ChatChoice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: str = "stop"


class ChatCompletionResponse(BaseModel):
    """OpenAI chat completion (non-streaming)."""
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[ChatChoice]
    usage: Usage


# ============================================================================
# Stream Chunks
# ============================================================================

class StreamDelta(BaseModel):
    role: Optional[Role] = None
    content: Optional[str] = None


class StreamChoice(BaseModel):
    index: int = 0
    delta: StreamDelta
    finish_reason: Optional[str] = None


class StreamChunk(BaseModel):
    """One ``chat.completion.chunk`` event body."""
    id: str
    object: str = "chat.completion.chunk"
    created: int
    model: str
    choices: List[StreamChoice]


# ============================================================================
# Legacy Completions
# ============================================================================

class CompletionRequest(BaseModel):
    model: str
    prompt: str


class CompletionChoice(BaseModel):
    text: str
    index: int = 0
    finish_reason: str = "stop"


class CompletionResponse(BaseModel):
    id: str
    object: str = "text_completion"
    created: int
    model: str
    choices: List[CompletionChoice]
    usage: Usage


# ============================================================================
# Embeddings
# ============================================================================

class EmbeddingRequest(BaseModel):
    model: str
    input: Union[str, List[str]]

    @property
    def inputs(self) -> List[str]:
        return [self.input] if isinstance(self.input, str) else list(self.input)


class EmbeddingData(BaseModel):
    object: str = "embedding"
    embedding: List[float]
    index: int


class EmbeddingResponse(BaseModel):
    object: str = "list"
    data: List[EmbeddingData]
    model: str
    usage: Usage


# ============================================================================
# Models
# ============================================================================

class ModelInfo(BaseModel):
    """OpenAI model info."""
    id: str
    object: str = "model"
    created: int
    owned_by: str = "local"


class ModelList(BaseModel):
    object: str = "list"
    data: List[ModelInfo] = Field(default_factory=list)
