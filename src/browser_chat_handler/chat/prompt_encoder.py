"""Flatten a system prompt and conversation into one block of text."""

from __future__ import annotations

from typing import Iterable, Optional

from ..models import ContentBlock, ConversationTurn

SYSTEM_SEPARATOR = "\n\n---\n\n"
TURN_SEPARATOR = "\n\n"


def render_content(content: str | Iterable[ContentBlock]) -> str:
    """Render message content, marking blocks the chat UI cannot accept."""

    if isinstance(content, str):
        return content
    return "".join(
        (block.text or "") if block.type == "text" else f"[Unsupported {block.type}]"
        for block in content
    )


def encode_prompt(system_prompt: Optional[str], turns: Iterable[ConversationTurn]) -> str:
    prefix = f"{system_prompt}{SYSTEM_SEPARATOR}" if system_prompt else ""
    body = TURN_SEPARATOR.join(f"{turn.role}: {render_content(turn.content)}" for turn in turns)
    return (prefix + body).strip()
