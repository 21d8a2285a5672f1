"""Chat turn, stream chunk and daemon LLM wire types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class ChatTurn:
    """A single completed message in the transcript."""

    role: Role
    content: str


@dataclass(frozen=True)
class StreamChunk:
    """One decoded unit of an in-progress assistant reply."""

    delta_content: str = ""
    is_final: bool = False
    tokens_emitted: int | None = None

    @classmethod
    def from_response(cls, record: ChatResponse) -> StreamChunk:
        content = record.message.content if record.message is not None else ""
        return cls(
            delta_content=content,
            is_final=record.done,
            tokens_emitted=record.eval_count,
        )


# --- Wire models (daemon /api/llm/*) ---


class Message(BaseModel):
    role: str = "assistant"
    content: str = ""


class ChatRequest(BaseModel):
    """Body of POST /api/llm/chat."""

    model: str
    messages: list[Message] = Field(default_factory=list)
    stream: bool = True

    @classmethod
    def from_turns(
        cls, model: str, turns: list[ChatTurn], system_prompt: str = ""
    ) -> ChatRequest:
        """Build a request from transcript turns.

        System turns are UI notes and are never sent; the configured system
        prompt, if any, goes first.
        """
        messages = []
        if system_prompt:
            messages.append(Message(role=Role.SYSTEM.value, content=system_prompt))
        for turn in turns:
            if turn.role == Role.SYSTEM:
                continue
            messages.append(Message(role=turn.role.value, content=turn.content))
        return cls(model=model, messages=messages)

    def payload(self, stream: bool) -> dict:
        """Serialize with the streaming flag forced to ``stream``."""
        return self.model_copy(update={"stream": stream}).model_dump(mode="json")


class ChatResponse(BaseModel):
    """One NDJSON record of a chat stream, or the whole non-streaming reply."""

    model: str = ""
    message: Message | None = None
    done: bool = False
    eval_count: int | None = None
    prompt_eval_count: int | None = None
    total_duration: int | None = None


class ModelInfo(BaseModel):
    name: str
    size: str | int | None = None
    family: str = ""
    parameter_size: str = ""
    context_length: int = 0
    quantization_level: str = ""


class LLMHealth(BaseModel):
    status: str
    backend: str = ""
    url: str = ""
    error: str = ""


class ProviderInfo(BaseModel):
    type: str = ""
    url: str = ""
    enabled: bool = False
