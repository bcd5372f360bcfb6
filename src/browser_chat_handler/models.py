"""Shared models used across the browser chat handler."""

from __future__ import annotations

import enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SessionState(str, enum.Enum):
    """Lifecycle of the browser session owned by a handler."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class ContentBlock(BaseModel):
    """A typed block of message content. Only ``text`` blocks carry text."""

    model_config = ConfigDict(extra="allow")

    type: str
    text: Optional[str] = None


class ConversationTurn(BaseModel):
    """A single message in the conversation sent to the chat application."""

    role: str
    content: Union[str, list[ContentBlock]]


class TextChunk(BaseModel):
    type: Literal["text"] = "text"
    text: str


class UsageChunk(BaseModel):
    type: Literal["usage"] = "usage"
    input_tokens: int = 0
    output_tokens: int = 0


ResponseChunk = Annotated[Union[TextChunk, UsageChunk], Field(discriminator="type")]


class ModelInfo(BaseModel):
    """Static capabilities reported for the browser-backed model."""

    max_tokens: int
    context_window: int = 32000
    supports_images: bool = False
    supports_prompt_cache: bool = False
    supports_computer_use: bool = False
    thinking: bool = False
    input_price: Optional[float] = None
    output_price: Optional[float] = None
    description: Optional[str] = None


class ModelDescriptor(BaseModel):
    id: str
    info: ModelInfo
