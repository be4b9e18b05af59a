"""Domain models for the chat application."""

import re
import time
from datetime import datetime, timezone
from typing import List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["user", "assistant"]

NEW_CHAT_TITLE = "New Chat"
TITLE_MAX_LENGTH = 50

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Provide clear, accurate, and helpful "
    "responses to user questions. Be conversational but professional."
)
DEFAULT_MODEL = "openrouter/anthropic/claude-sonnet-4"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000

TEMPERATURE_RANGE = (0.0, 2.0)
MAX_TOKENS_RANGE = (1, 4000)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(number: int) -> str:
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_id(prefix: str) -> str:
    """Build an id from the current epoch milliseconds and a random base36 suffix."""
    return f"{prefix}-{int(time.time() * 1000)}-{_base36(uuid4().int)[:11]}"


def generate_title(content: str) -> str:
    """Derive a conversation title from message text."""
    cleaned = re.sub(r"\s+", " ", content.strip())
    if len(cleaned) > TITLE_MAX_LENGTH:
        return cleaned[:TITLE_MAX_LENGTH] + "..."
    return cleaned


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(CamelModel):
    """Message model."""

    id: str = Field(default_factory=lambda: generate_id("msg"))
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("content must not be empty")
        return value


class Conversation(CamelModel):
    """Conversation model."""

    id: str = Field(default_factory=lambda: generate_id("conv"))
    title: str = NEW_CHAT_TITLE
    messages: List[Message] = []
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ChatSettings(CamelModel):
    """Per-profile chat preferences."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    model: str = DEFAULT_MODEL
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0, le=2)
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=1, le=4000)


class ModelInfo(BaseModel):
    id: str
    name: str
    description: str


SUPPORTED_MODELS = [
    ModelInfo(
        id="openrouter/anthropic/claude-sonnet-4",
        name="Claude Sonnet 4",
        description="Advanced reasoning and coding tasks",
    ),
    ModelInfo(
        id="openrouter/openai/gpt-4o",
        name="GPT-4o",
        description="OpenAI's latest multimodal model",
    ),
    ModelInfo(
        id="openrouter/anthropic/claude-3-haiku",
        name="Claude 3 Haiku",
        description="Fast and efficient responses",
    ),
]


class SessionState(CamelModel):
    """Transient state of the active chat session. Never persisted."""

    messages: List[Message] = []
    is_loading: bool = False
    error: Optional[str] = None
    active_conversation_id: Optional[str] = None

    @property
    def status(self) -> Literal["idle", "sending", "error"]:
        if self.is_loading:
            return "sending"
        if self.error is not None:
            return "error"
        return "idle"
