"""Lifecycle management for the attached browser page."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Optional

from ..browser.base import BrowserConnector, BrowserHandle, BrowserOperationError, PageHandle
from ..browser.discovery import EndpointDiscovery
from ..config import HandlerConfig
from ..errors import DiscoveryFailure, DisposalWarning, HandlerError, InitializationFailure
from ..models import SessionState

LOGGER = logging.getLogger(__name__)


class SessionEvent(str, enum.Enum):
    """Invalidation signals pushed by the browser connection or the page."""

    DISCONNECTED = "disconnected"
    PAGE_CLOSED = "page_closed"
    PAGE_CRASHED = "page_crashed"


class SessionManager:
    """Own the browser and page handles and keep them ready for prompts.

    Initialization runs as a single task shared by every concurrent caller, so
    at most one connect/navigate sequence is in progress at any time. Listeners
    registered on the browser and page report back through
    :meth:`_handle_event` tagged with the generation they were registered in;
    events from an earlier generation are ignored.
    """

    def __init__(
        self,
        config: HandlerConfig,
        connector: BrowserConnector,
        discovery: EndpointDiscovery,
    ) -> None:
        self._config = config
        self._connector = connector
        self._discovery = discovery
        self._label = config.model_name
        self._state = SessionState.UNINITIALIZED
        self._generation = 0
        self._browser: Optional[BrowserHandle] = None
        self._page: Optional[PageHandle] = None
        # A crashed tab keeps its URL and would be picked up again on reattach.
        self._crashed_page: Optional[PageHandle] = None
        self._pending: Optional[asyncio.Task[PageHandle]] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def initializing(self) -> bool:
        return self._pending is not None

    def is_live(self) -> bool:
        """Return True when the session is ready and both handles still work."""

        return self._live_page() is not None

    async def ensure_ready(self) -> PageHandle:
        """Return a live page with the prompt input visible, initializing if needed."""

        page = self._live_page()
        if page is not None:
            return page
        if self._pending is None:
            self._pending = asyncio.get_running_loop().create_task(self._initialize())
        return await asyncio.shield(self._pending)

    async def cleanup(self) -> Optional[DisposalWarning]:
        """Drop the handles and detach from the browser. Safe to call repeatedly."""

        LOGGER.info("[%s] Cleaning browser resources", self._label)
        self._generation += 1
        self._state = SessionState.UNINITIALIZED
        warning = await self._release()
        LOGGER.info("[%s] Browser resources cleanup finished", self._label)
        return warning

    async def dispose(self) -> Optional[DisposalWarning]:
        """Wait for any in-flight initialization, then clean up."""

        pending = self._pending
        try:
            if pending is not None:
                await asyncio.shield(pending)
        except HandlerError as exc:
            LOGGER.debug("[%s] Initialization failed during dispose: %s", self._label, exc)
        finally:
            warning = await self.cleanup()
        return warning

    async def _initialize(self) -> PageHandle:
        self._generation += 1
        generation = self._generation
        self._state = SessionState.INITIALIZING
        port = self._config.discovery_port
        base_url = self._config.base_url
        LOGGER.info("[%s] Initializing session. Port: %s, URL: %s", self._label, port, base_url)
        try:
            await self._release(quiet=True)
            endpoint = await self._discovery.resolve_endpoint(port)
            if not endpoint:
                raise DiscoveryFailure(
                    f"No browser on port {port}. Ensure a debuggable browser is running."
                )
            LOGGER.info("[%s] Discovered browser at %s. Connecting...", self._label, endpoint)
            page = await self._open_page(endpoint, generation)
            await page.wait_for_selector(self._config.selectors.prompt_input, state="visible")
            if generation != self._generation or not self._holds_live(page):
                raise InitializationFailure("Browser session was invalidated during initialization.")
        except DiscoveryFailure as exc:
            LOGGER.error("[%s] %s", self._label, exc)
            await self._fail()
            raise
        except InitializationFailure as exc:
            LOGGER.error("[%s] Initialization error: %s", self._label, exc)
            await self._fail()
            raise
        except Exception as exc:
            LOGGER.error("[%s] Initialization error: %s", self._label, exc, exc_info=True)
            await self._fail()
            raise InitializationFailure(str(exc) or "Unknown initialization error") from exc
        finally:
            if self._pending is asyncio.current_task():
                self._pending = None
        self._state = SessionState.READY
        LOGGER.info("[%s] Initialization complete. Page ready at %s", self._label, page.url)
        return page

    async def _open_page(self, endpoint: str, generation: int) -> PageHandle:
        base_url = self._config.base_url
        browser = await self._connector.connect(endpoint)
        self._browser = browser
        browser.on_disconnected(lambda: self._handle_event(SessionEvent.DISCONNECTED, generation))

        page = next(
            (
                candidate
                for candidate in await browser.pages()
                if not candidate.is_closed() and candidate.url.startswith(base_url)
            ),
            None,
        )
        if page is None:
            LOGGER.info("[%s] No open page at %s; opening a new one", self._label, base_url)
            page = await browser.new_page()
        self._page = page
        page.set_default_timeout(self._config.timeout_ms)

        if page.url.startswith(base_url):
            LOGGER.info("[%s] Page already at target URL: %s", self._label, page.url)
        else:
            LOGGER.info("[%s] Navigating to %s", self._label, base_url)
            await page.goto(base_url)

        page.on_close(lambda: self._handle_event(SessionEvent.PAGE_CLOSED, generation))
        page.on_crash(lambda: self._handle_event(SessionEvent.PAGE_CRASHED, generation))
        page.on_page_error(
            lambda message: LOGGER.error("[%s] Unhandled page exception: %s", self._label, message)
        )
        return page

    def _handle_event(self, event: SessionEvent, generation: int) -> None:
        if generation != self._generation:
            LOGGER.debug(
                "[%s] Ignoring %s from stale session generation %s",
                self._label,
                event.value,
                generation,
            )
            return
        LOGGER.warning("[%s] Session invalidated: %s", self._label, event.value)
        if self._state is SessionState.READY:
            self._state = SessionState.UNINITIALIZED
        if event is SessionEvent.DISCONNECTED:
            self._browser = None
        elif event is SessionEvent.PAGE_CRASHED and self._page is not None:
            self._crashed_page = self._page
        self._page = None

    def _live_page(self) -> Optional[PageHandle]:
        page = self._page
        if self._state is not SessionState.READY or page is None or page.is_closed():
            return None
        if self._browser is None or not self._browser.is_connected():
            return None
        return page

    def _holds_live(self, page: PageHandle) -> bool:
        return (
            self._page is page
            and not page.is_closed()
            and self._browser is not None
            and self._browser.is_connected()
        )

    async def _fail(self) -> None:
        self._generation += 1
        await self._release(quiet=True)
        self._state = SessionState.FAILED

    async def _release(self, quiet: bool = False) -> Optional[DisposalWarning]:
        self._page = None
        crashed, self._crashed_page = self._crashed_page, None
        browser, self._browser = self._browser, None
        if browser is None or not browser.is_connected():
            return None
        if crashed is not None:
            await self._close_crashed(crashed)
        try:
            await browser.disconnect()
        except Exception as exc:
            warning = DisposalWarning(f"Error disconnecting browser: {exc}")
            if quiet:
                LOGGER.debug("[%s] %s", self._label, warning)
            else:
                LOGGER.warning("[%s] %s", self._label, warning)
            return warning
        return None

    async def _close_crashed(self, page: PageHandle) -> None:
        LOGGER.info("[%s] Closing crashed page %s", self._label, page.url)
        try:
            await page.close()
        except BrowserOperationError as exc:
            LOGGER.warning("[%s] Could not close crashed page: %s", self._label, exc)
