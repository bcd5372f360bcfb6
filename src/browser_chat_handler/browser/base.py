"""Browser automation abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, List, Literal, Optional

SelectorState = Literal["attached", "detached", "visible", "hidden"]


class BrowserOperationError(RuntimeError):
    """Raised when an operation on the browser or page fails."""


class BrowserTimeoutError(BrowserOperationError):
    """Raised when a browser operation does not finish before its deadline."""


class ElementHandle(ABC):
    """A DOM element resolved on a page."""

    @abstractmethod
    async def click(self) -> None:
        """Click the element."""

    @abstractmethod
    async def query(self, selector: str) -> Optional["ElementHandle"]:
        """Return the first descendant matching ``selector``."""

    @abstractmethod
    async def inner_text(self) -> str:
        """Return the rendered text of the element."""


class PageHandle(ABC):
    """A single tab in the attached browser."""

    @property
    @abstractmethod
    def url(self) -> str:
        """Current URL of the page."""

    @abstractmethod
    def is_closed(self) -> bool:
        """Return True once the page has been closed."""

    @abstractmethod
    def set_default_timeout(self, timeout_ms: float) -> None:
        """Apply ``timeout_ms`` to navigation and every other operation."""

    @abstractmethod
    async def goto(self, url: str) -> None:
        """Navigate the page to ``url``."""

    @abstractmethod
    async def wait_for_selector(
        self,
        selector: str,
        *,
        state: SelectorState = "visible",
        timeout_ms: Optional[float] = None,
    ) -> Optional[ElementHandle]:
        """Wait until ``selector`` reaches ``state``.

        Returns the element for ``attached``/``visible`` and ``None`` for
        ``detached``/``hidden``. Raises :class:`BrowserTimeoutError` when the
        deadline passes first.
        """

    @abstractmethod
    async def focus(self, selector: str) -> None:
        """Focus the first element matching ``selector``."""

    @abstractmethod
    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Evaluate a JavaScript function in the page with one argument."""

    @abstractmethod
    async def count(self, selector: str) -> int:
        """Return the number of elements currently matching ``selector``."""

    @abstractmethod
    async def query_all(self, selector: str) -> List[ElementHandle]:
        """Return every element matching ``selector`` in document order."""

    @abstractmethod
    async def close(self) -> None:
        """Close the page."""

    @abstractmethod
    def on_close(self, callback: Callable[[], None]) -> None:
        """Invoke ``callback`` when the page closes."""

    @abstractmethod
    def on_crash(self, callback: Callable[[], None]) -> None:
        """Invoke ``callback`` when the page crashes."""

    @abstractmethod
    def on_page_error(self, callback: Callable[[str], None]) -> None:
        """Invoke ``callback`` with the message of uncaught in-page errors."""


class BrowserHandle(ABC):
    """A connection to a running browser."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Return True while the connection is alive."""

    @abstractmethod
    async def pages(self) -> List[PageHandle]:
        """Return every open page across the browser's contexts."""

    @abstractmethod
    async def new_page(self) -> PageHandle:
        """Open a new page in the browser's default context."""

    @abstractmethod
    def on_disconnected(self, callback: Callable[[], None]) -> None:
        """Invoke ``callback`` when the connection drops."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Detach from the browser without closing it."""


class BrowserConnector(ABC):
    """Factory for browser connections."""

    @abstractmethod
    async def connect(self, endpoint: str) -> BrowserHandle:
        """Attach to the browser exposing ``endpoint``."""
