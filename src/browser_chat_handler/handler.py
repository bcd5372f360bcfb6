"""Request/response API on top of a chat web application."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import AsyncIterator, Iterable, Optional, Sequence

from .browser.base import BrowserConnector, BrowserOperationError
from .browser.discovery import EndpointDiscovery
from .chat.input_driver import InputDriver
from .chat.prompt_encoder import encode_prompt
from .chat.response_observer import ContainerCountWaiter, PollingCountWaiter, ResponseObserver
from .config import HandlerConfig
from .errors import InteractionFailure
from .models import (
    ContentBlock,
    ConversationTurn,
    ModelDescriptor,
    ModelInfo,
    ResponseChunk,
    TextChunk,
    UsageChunk,
)
from .session.manager import SessionManager

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 8192
CHARS_PER_TOKEN = 4


class ApiHandler(ABC):
    """Interface consumed by code that routes requests to model providers."""

    @abstractmethod
    def create_message(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
    ) -> AsyncIterator[ResponseChunk]:
        """Produce response chunks for a conversation."""

    @abstractmethod
    async def complete_prompt(self, prompt: str) -> str:
        """Return the full response text for a single prompt."""

    @abstractmethod
    def get_model(self) -> ModelDescriptor:
        """Describe the model behind this handler."""

    @abstractmethod
    async def count_tokens(self, content: Iterable[ContentBlock]) -> int:
        """Return the number of tokens in ``content``."""

    @abstractmethod
    async def dispose(self) -> None:
        """Release every resource held by the handler."""


class WebUiChatHandler(ApiHandler):
    """Drive the chat web app in a remote-debuggable browser.

    The app exposes neither partial output nor usage figures, so every call
    yields the whole reply as one :class:`TextChunk` followed by a zeroed
    :class:`UsageChunk`. Callers must not submit concurrently: two prompts
    typed into the same input would corrupt each other.
    """

    def __init__(
        self,
        config: HandlerConfig,
        *,
        connector: BrowserConnector,
        discovery: EndpointDiscovery,
        waiter: Optional[ContainerCountWaiter] = None,
    ) -> None:
        self._config = config
        self.model_name = config.model_name
        self._session = SessionManager(config, connector, discovery)
        self._driver = InputDriver(config.selectors, config.timeout_ms)
        self._observer = ResponseObserver(
            config.selectors,
            config.timeout_ms,
            indicator_timeout_ms=config.processing_indicator_timeout_ms,
            waiter=waiter or PollingCountWaiter(config.poll_interval_ms),
        )
        LOGGER.info(
            "[%s] Constructed. Config: base_url=%s port=%s timeout_ms=%s",
            self.model_name,
            config.base_url,
            config.discovery_port,
            config.timeout_ms,
        )

    @property
    def session(self) -> SessionManager:
        return self._session

    async def create_message(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
    ) -> AsyncIterator[ResponseChunk]:
        page = await self._session.ensure_ready()
        prompt = encode_prompt(system_prompt, turns)
        LOGGER.info("[%s] Sending prompt. Timeout: %sms", self.model_name, self._config.timeout_ms)
        LOGGER.debug("[%s] Prompt: %r", self.model_name, prompt[:100])

        try:
            if page.is_closed():
                raise InteractionFailure("Page is not available for API call.")
            baseline = await self._observer.snapshot(page)
            await self._driver.submit(page, prompt)
            text = await self._observer.collect(page, baseline)
        except InteractionFailure as exc:
            LOGGER.error("[%s] Interaction error: %s", self.model_name, exc)
            await self._reset_if_unusable()
            raise
        except BrowserOperationError as exc:
            LOGGER.error("[%s] Interaction error: %s", self.model_name, exc)
            await self._reset_if_unusable()
            raise InteractionFailure(str(exc) or "Unknown browser interaction error") from exc

        yield TextChunk(text=text)
        yield UsageChunk(input_tokens=0, output_tokens=0)

    async def complete_prompt(self, prompt: str) -> str:
        parts: list[str] = []
        async for chunk in self.create_message("", [ConversationTurn(role="user", content=prompt)]):
            if isinstance(chunk, TextChunk):
                parts.append(chunk.text)
        return "".join(parts)

    def get_model(self) -> ModelDescriptor:
        info = ModelInfo(
            max_tokens=self._config.max_tokens or DEFAULT_MAX_TOKENS,
            description=f"Gemini Web UI via Playwright ({self.model_name})",
        )
        return ModelDescriptor(id=self.model_name, info=info)

    async def count_tokens(self, content: Iterable[ContentBlock]) -> int:
        """Estimate tokens as one per four characters of text.

        The chat application tokenizes on its side and never reports counts,
        so this is a rough approximation. Non-text blocks are ignored.
        """

        text = "".join(block.text or "" for block in content or () if block.type == "text")
        LOGGER.debug("[%s] count_tokens is a character-based estimate", self.model_name)
        return math.ceil(len(text) / CHARS_PER_TOKEN)

    async def dispose(self) -> None:
        LOGGER.info("[%s] Disposing...", self.model_name)
        await self._session.dispose()
        LOGGER.info("[%s] Disposed.", self.model_name)

    async def _reset_if_unusable(self) -> None:
        if self._session.is_live():
            return
        LOGGER.warning("[%s] Browser session is no longer usable; resetting", self.model_name)
        await self._session.cleanup()
