"""Detect and read the reply produced after a prompt is submitted."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..browser.base import BrowserOperationError, BrowserTimeoutError, PageHandle, SelectorState
from ..config import UiSelectors
from ..errors import InteractionFailure

LOGGER = logging.getLogger(__name__)

_ENTITIES = {
    "lt": "<",
    "gt": ">",
    "amp": "&",
    "quot": '"',
    "apos": "'",
}
_ENTITY_PATTERN = re.compile(r"&(lt|gt|amp|quot|apos);")


def decode_entities(text: str) -> str:
    """Decode the five predefined XML entities in a single pass."""

    if not text:
        return ""
    return _ENTITY_PATTERN.sub(lambda match: _ENTITIES[match.group(1)], text)


class ContainerCountWaiter(ABC):
    """Wait for the number of elements matching a selector to satisfy a predicate."""

    @abstractmethod
    async def wait_until(
        self,
        page: PageHandle,
        selector: str,
        predicate: Callable[[int], bool],
        timeout_ms: float,
    ) -> bool:
        """Return True once ``predicate(count)`` holds, False after ``timeout_ms``."""


class PollingCountWaiter(ContainerCountWaiter):
    """Re-count matching elements at a fixed interval."""

    def __init__(self, interval_ms: float = 100) -> None:
        self._interval = interval_ms / 1000

    async def wait_until(
        self,
        page: PageHandle,
        selector: str,
        predicate: Callable[[int], bool],
        timeout_ms: float,
    ) -> bool:
        deadline = time.monotonic() + timeout_ms / 1000
        while True:
            if predicate(await page.count(selector)):
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self._interval)


class ResponseObserver:
    """Wait for a new response container and extract its text.

    The application gives no completion event. The stop button appearing and
    disappearing brackets generation but can flicker, so the observer only
    trusts the response container count rising above the count recorded
    before submission.
    """

    def __init__(
        self,
        selectors: UiSelectors,
        timeout_ms: float,
        *,
        indicator_timeout_ms: float = 5000,
        waiter: Optional[ContainerCountWaiter] = None,
    ) -> None:
        self._selectors = selectors
        self._timeout_ms = timeout_ms
        self._indicator_timeout_ms = indicator_timeout_ms
        self._waiter = waiter or PollingCountWaiter()

    async def snapshot(self, page: PageHandle) -> int:
        """Return the number of response containers currently on the page."""

        try:
            return await page.count(self._selectors.response_container)
        except BrowserOperationError as exc:
            raise InteractionFailure(f"Failed to count model responses: {exc}") from exc

    async def collect(self, page: PageHandle, baseline: int) -> str:
        """Return the text of the first response container after ``baseline``."""

        selectors = self._selectors
        deadline = time.monotonic() + self._timeout_ms / 1000
        await self._await_processing(page, deadline)
        await self._await_hint(
            page,
            selectors.ready_indicator,
            "visible",
            min(self._indicator_timeout_ms, _remaining_ms(deadline)),
            "Ready-for-input indicator did not reappear as expected.",
        )

        try:
            appeared = await self._waiter.wait_until(
                page,
                selectors.response_container,
                lambda count: count > baseline,
                _remaining_ms(deadline),
            )
            if not appeared:
                raise InteractionFailure("Timeout waiting for new model response to appear.")

            containers = await page.query_all(selectors.response_container)
            if baseline >= len(containers):
                raise InteractionFailure("New model response not found after waiting.")
            panel = await containers[baseline].query(selectors.content_panel)
            if panel is None:
                raise InteractionFailure("Markdown panel in new response not found.")
            raw_text = await panel.inner_text()
        except BrowserOperationError as exc:
            raise InteractionFailure(f"Failed to read model response: {exc}") from exc
        return decode_entities(raw_text).strip()

    async def _await_processing(self, page: PageHandle, deadline: float) -> None:
        stop_button = self._selectors.stop_button
        appeared = await self._await_hint(
            page,
            stop_button,
            "visible",
            min(self._indicator_timeout_ms, _remaining_ms(deadline)),
            "Processing indicator did not appear; the response may already be complete.",
        )
        if appeared:
            await self._await_hint(
                page,
                stop_button,
                "hidden",
                _remaining_ms(deadline),
                "Processing indicator did not disappear before the deadline.",
            )

    async def _await_hint(
        self,
        page: PageHandle,
        selector: str,
        state: SelectorState,
        timeout_ms: float,
        message: str,
    ) -> bool:
        try:
            await page.wait_for_selector(selector, state=state, timeout_ms=timeout_ms)
        except BrowserTimeoutError:
            LOGGER.warning(message)
            return False
        return True


def _remaining_ms(deadline: float) -> float:
    # Playwright treats a zero timeout as "wait forever".
    return max(1.0, (deadline - time.monotonic()) * 1000)
