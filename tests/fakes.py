"""In-memory stand-ins for the browser automation surface."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from browser_chat_handler.browser.base import (
    BrowserConnector,
    BrowserHandle,
    BrowserOperationError,
    BrowserTimeoutError,
    ElementHandle,
    PageHandle,
)
from browser_chat_handler.browser.discovery import EndpointDiscovery
from browser_chat_handler.config import UiSelectors

BASE_URL = "https://chat.example/app"
ENDPOINT = "http://127.0.0.1:9222"
SELECTORS = UiSelectors()


class FakeElement(ElementHandle):
    def __init__(
        self,
        text: str = "",
        children: Optional[dict[str, "FakeElement"]] = None,
        on_click: Optional[Callable[[], None]] = None,
    ) -> None:
        self.text = text
        self.children = children or {}
        self.on_click = on_click
        self.clicks = 0

    async def click(self) -> None:
        self.clicks += 1
        if self.on_click:
            self.on_click()

    async def query(self, selector: str) -> Optional[ElementHandle]:
        return self.children.get(selector)

    async def inner_text(self) -> str:
        return self.text


def response_container(text: str) -> FakeElement:
    return FakeElement(children={SELECTORS.content_panel: FakeElement(text=text)})


class FakePage(PageHandle):
    """A page whose DOM is a mapping of selector to matching elements.

    Replies registered with :meth:`reply_with` are appended to the response
    containers after the send button is clicked, optionally only once
    ``count()`` has been polled ``delay_polls`` more times.
    """

    def __init__(self, url: str = BASE_URL, *, chat_ready: bool = True) -> None:
        self._url = url
        self.closed = False
        self.default_timeout: Optional[float] = None
        self.visited: list[str] = []
        self.elements: dict[str, list[FakeElement]] = {SELECTORS.response_container: []}
        self.waits: list[tuple[str, str]] = []
        self.focused: list[str] = []
        self.evaluations: list[tuple[str, Any]] = []
        self.typed: list[str] = []
        self.count_calls = 0
        self.show_stop_button = False
        self._replies: list[tuple[list[FakeElement], int]] = []
        self._scheduled: list[tuple[list[FakeElement], int]] = []
        self._close_callbacks: list[Callable[[], None]] = []
        self._crash_callbacks: list[Callable[[], None]] = []
        self._error_callbacks: list[Callable[[str], None]] = []
        if chat_ready:
            self.install_chat_ui()

    def install_chat_ui(self) -> None:
        self.elements[SELECTORS.prompt_input] = [FakeElement()]
        self.elements[SELECTORS.send_button] = [FakeElement(on_click=self._submitted)]
        self.elements[SELECTORS.ready_indicator] = [FakeElement()]

    def reply_with(self, *texts: str, delay_polls: int = 0) -> None:
        self._replies.append(([response_container(text) for text in texts], delay_polls))

    def add_existing_responses(self, *texts: str) -> None:
        self.elements[SELECTORS.response_container].extend(response_container(t) for t in texts)

    def simulate_close(self) -> None:
        self.closed = True
        for callback in list(self._close_callbacks):
            callback()

    def simulate_crash(self) -> None:
        for callback in list(self._crash_callbacks):
            callback()

    def simulate_page_error(self, message: str) -> None:
        for callback in list(self._error_callbacks):
            callback(message)

    def _submitted(self) -> None:
        if self.show_stop_button:
            self.elements[SELECTORS.stop_button] = [FakeElement()]
        if self._replies:
            self._scheduled.append(self._replies.pop(0))
        self._flush()

    def _flush(self) -> None:
        remaining = []
        for containers, delay in self._scheduled:
            if delay <= 0:
                self.elements[SELECTORS.response_container].extend(containers)
            else:
                remaining.append((containers, delay - 1))
        self._scheduled = remaining

    def _check_open(self) -> None:
        if self.closed:
            raise BrowserOperationError("Target page, context or browser has been closed")

    @property
    def url(self) -> str:
        return self._url

    def is_closed(self) -> bool:
        return self.closed

    def set_default_timeout(self, timeout_ms: float) -> None:
        self.default_timeout = timeout_ms

    async def goto(self, url: str) -> None:
        self._check_open()
        self.visited.append(url)
        self._url = url
        self.install_chat_ui()

    async def wait_for_selector(self, selector, *, state="visible", timeout_ms=None):
        self._check_open()
        self.waits.append((selector, state))
        await asyncio.sleep(0)
        present = self.elements.get(selector) or []
        if state in ("visible", "attached"):
            if not present:
                raise BrowserTimeoutError(f"Timeout waiting for {selector}")
            return present[0]
        # Transient elements disappear once something waits for them to go.
        self.elements.pop(selector, None)
        return None

    async def focus(self, selector: str) -> None:
        self._check_open()
        if not self.elements.get(selector):
            raise BrowserTimeoutError(f"Timeout focusing {selector}")
        self.focused.append(selector)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self._check_open()
        self.evaluations.append((script, arg))
        if isinstance(arg, dict) and "text" in arg:
            self.typed.append(arg["text"])
        return None

    async def count(self, selector: str) -> int:
        self._check_open()
        self.count_calls += 1
        self._flush()
        return len(self.elements.get(selector) or [])

    async def query_all(self, selector: str) -> list[ElementHandle]:
        self._check_open()
        return list(self.elements.get(selector) or [])

    async def close(self) -> None:
        if not self.closed:
            self.simulate_close()

    def on_close(self, callback: Callable[[], None]) -> None:
        self._close_callbacks.append(callback)

    def on_crash(self, callback: Callable[[], None]) -> None:
        self._crash_callbacks.append(callback)

    def on_page_error(self, callback: Callable[[str], None]) -> None:
        self._error_callbacks.append(callback)


class FakeBrowser(BrowserHandle):
    def __init__(self, pages: Optional[list[FakePage]] = None) -> None:
        self.open_pages = list(pages or [])
        self.connected = True
        self.disconnect_calls = 0
        self.disconnect_error: Optional[Exception] = None
        self.created_pages: list[FakePage] = []
        self._callbacks: list[Callable[[], None]] = []

    def is_connected(self) -> bool:
        return self.connected

    async def pages(self) -> list[PageHandle]:
        return list(self.open_pages)

    async def new_page(self) -> PageHandle:
        page = FakePage(url="about:blank", chat_ready=False)
        self.created_pages.append(page)
        self.open_pages.append(page)
        return page

    def on_disconnected(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.disconnect_error is not None:
            raise self.disconnect_error
        self.simulate_disconnect()

    def simulate_disconnect(self) -> None:
        self.connected = False
        for callback in list(self._callbacks):
            callback()


class FakeConnector(BrowserConnector):
    """Hands out a fresh browser holding one ready chat page per connection."""

    def __init__(
        self,
        browser_factory: Optional[Callable[[], FakeBrowser]] = None,
        *,
        error: Optional[Exception] = None,
    ) -> None:
        self._browser_factory = browser_factory or (lambda: FakeBrowser([FakePage()]))
        self.error = error
        self.endpoints: list[str] = []
        self.browsers: list[FakeBrowser] = []

    @property
    def connect_count(self) -> int:
        return len(self.endpoints)

    async def connect(self, endpoint: str) -> BrowserHandle:
        self.endpoints.append(endpoint)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        browser = self._browser_factory()
        self.browsers.append(browser)
        return browser

    @property
    def last_page(self) -> FakePage:
        return self.browsers[-1].open_pages[0]


class FakeDiscovery(EndpointDiscovery):
    def __init__(self, endpoint: Optional[str] = ENDPOINT) -> None:
        self.endpoint = endpoint
        self.ports: list[int] = []

    async def resolve_endpoint(self, port: int) -> Optional[str]:
        self.ports.append(port)
        await asyncio.sleep(0)
        return self.endpoint
