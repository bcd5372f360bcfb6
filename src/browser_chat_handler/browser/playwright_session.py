"""Playwright-powered implementation of the browser abstractions."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional

from playwright.async_api import Browser
from playwright.async_api import ElementHandle as PlaywrightElement
from playwright.async_api import Error, Page, Playwright, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .base import (
    BrowserConnector,
    BrowserHandle,
    BrowserOperationError,
    BrowserTimeoutError,
    ElementHandle,
    PageHandle,
    SelectorState,
)

LOGGER = logging.getLogger(__name__)


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except PlaywrightTimeoutError as exc:
        raise BrowserTimeoutError(str(exc)) from exc
    except Error as exc:
        raise BrowserOperationError(str(exc)) from exc


class PlaywrightElementHandle(ElementHandle):
    def __init__(self, element: PlaywrightElement) -> None:
        self._element = element

    async def click(self) -> None:
        with _translate_errors():
            await self._element.click()

    async def query(self, selector: str) -> Optional[ElementHandle]:
        with _translate_errors():
            found = await self._element.query_selector(selector)
        return PlaywrightElementHandle(found) if found else None

    async def inner_text(self) -> str:
        with _translate_errors():
            return await self._element.inner_text()


class PlaywrightPageHandle(PageHandle):
    """Page handle backed by a Playwright :class:`Page`."""

    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def url(self) -> str:
        return self._page.url

    def is_closed(self) -> bool:
        return self._page.is_closed()

    def set_default_timeout(self, timeout_ms: float) -> None:
        self._page.set_default_navigation_timeout(timeout_ms)
        self._page.set_default_timeout(timeout_ms)

    async def goto(self, url: str) -> None:
        with _translate_errors():
            await self._page.goto(url, wait_until="networkidle")

    async def wait_for_selector(
        self,
        selector: str,
        *,
        state: SelectorState = "visible",
        timeout_ms: Optional[float] = None,
    ) -> Optional[ElementHandle]:
        with _translate_errors():
            element = await self._page.wait_for_selector(selector, state=state, timeout=timeout_ms)
        return PlaywrightElementHandle(element) if element else None

    async def focus(self, selector: str) -> None:
        with _translate_errors():
            await self._page.focus(selector)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        with _translate_errors():
            return await self._page.evaluate(script, arg)

    async def count(self, selector: str) -> int:
        with _translate_errors():
            return await self._page.locator(selector).count()

    async def query_all(self, selector: str) -> List[ElementHandle]:
        with _translate_errors():
            elements = await self._page.query_selector_all(selector)
        return [PlaywrightElementHandle(element) for element in elements]

    async def close(self) -> None:
        with _translate_errors():
            await self._page.close()

    def on_close(self, callback: Callable[[], None]) -> None:
        self._page.on("close", lambda _page: callback())

    def on_crash(self, callback: Callable[[], None]) -> None:
        self._page.on("crash", lambda _page: callback())

    def on_page_error(self, callback: Callable[[str], None]) -> None:
        self._page.on("pageerror", lambda error: callback(str(error)))


class PlaywrightBrowserHandle(BrowserHandle):
    """Browser attached over the Chrome DevTools Protocol.

    Owns the Playwright driver that created the connection and stops it once
    the connection goes away.
    """

    def __init__(self, playwright: Playwright, browser: Browser) -> None:
        self._playwright = playwright
        self._browser = browser
        self._driver_stopped = False
        self._stop_task: Optional[asyncio.Task[None]] = None
        self._browser.on("disconnected", lambda _browser: self._schedule_driver_stop())

    def is_connected(self) -> bool:
        return self._browser.is_connected()

    async def pages(self) -> List[PageHandle]:
        return [
            PlaywrightPageHandle(page)
            for context in self._browser.contexts
            for page in context.pages
        ]

    async def new_page(self) -> PageHandle:
        with _translate_errors():
            # The default context carries the user's profile and login state.
            if self._browser.contexts:
                page = await self._browser.contexts[0].new_page()
            else:
                page = await self._browser.new_page()
        return PlaywrightPageHandle(page)

    def on_disconnected(self, callback: Callable[[], None]) -> None:
        self._browser.on("disconnected", lambda _browser: callback())

    async def disconnect(self) -> None:
        LOGGER.debug("Detaching from browser over CDP")
        try:
            with _translate_errors():
                # For connect_over_cdp browsers close() only detaches.
                await self._browser.close()
        finally:
            await self._stop_driver()

    def _schedule_driver_stop(self) -> None:
        if self._driver_stopped or self._stop_task is not None:
            return
        self._stop_task = asyncio.get_running_loop().create_task(self._stop_driver())
        self._stop_task.add_done_callback(self._log_stop_failure)

    @staticmethod
    def _log_stop_failure(task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning("Failed to stop Playwright driver: %s", exc)

    async def _stop_driver(self) -> None:
        if self._driver_stopped:
            return
        self._driver_stopped = True
        LOGGER.debug("Stopping Playwright driver")
        with _translate_errors():
            await self._playwright.stop()


class PlaywrightConnector(BrowserConnector):
    """Attach to an existing browser with ``chromium.connect_over_cdp``."""

    async def connect(self, endpoint: str) -> BrowserHandle:
        playwright = await async_playwright().start()
        try:
            with _translate_errors():
                browser = await playwright.chromium.connect_over_cdp(endpoint)
        except BrowserOperationError:
            await playwright.stop()
            raise
        LOGGER.info("Connected to browser %s at %s", browser.version, endpoint)
        return PlaywrightBrowserHandle(playwright, browser)
