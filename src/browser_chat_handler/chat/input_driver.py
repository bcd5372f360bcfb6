"""Type prompts into the chat application and submit them."""

from __future__ import annotations

import logging

from ..browser.base import BrowserOperationError, PageHandle
from ..config import UiSelectors
from ..errors import InteractionFailure

LOGGER = logging.getLogger(__name__)

# The prompt input is a contenteditable editor; replacing its value directly
# would bypass the application's own input handling.
REPLACE_CONTENT_SCRIPT = """
({ selector, text }) => {
    const editor = document.querySelector(selector);
    if (!editor) {
        throw new Error(`Selector '${selector}' not found for prompt input.`);
    }
    editor.focus();
    const selection = window.getSelection();
    if (selection) {
        const range = document.createRange();
        range.selectNodeContents(editor);
        selection.removeAllRanges();
        selection.addRange(range);
        if (selection.toString().length > 0) {
            document.execCommand("delete", false);
        }
    }
    document.execCommand("insertText", false, text);
}
"""


class InputDriver:
    """Clear the prompt input, insert text and press send."""

    def __init__(self, selectors: UiSelectors, timeout_ms: float) -> None:
        self._selectors = selectors
        self._timeout_ms = timeout_ms

    async def submit(self, page: PageHandle, text: str) -> None:
        selectors = self._selectors
        try:
            await page.wait_for_selector(
                selectors.prompt_input, state="visible", timeout_ms=self._timeout_ms
            )
            await page.focus(selectors.prompt_input)
            await page.evaluate(
                REPLACE_CONTENT_SCRIPT,
                {"selector": selectors.prompt_input, "text": text},
            )
            send_button = await page.wait_for_selector(
                selectors.send_button, state="visible", timeout_ms=self._timeout_ms
            )
            if send_button is None:
                raise InteractionFailure("Send button not found.")
            LOGGER.debug("Clicking send button")
            await send_button.click()
        except BrowserOperationError as exc:
            raise InteractionFailure(f"Failed to submit prompt: {exc}") from exc
