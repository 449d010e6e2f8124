"""
Shortcuts for common page operations over the default client.

Element lookups answer with plain values (``True``/``False``, a count) so test code
does not have to hold handles. Handles created along the way stay in the host
registry until the next clear.
"""

from typing import Any, Optional

from browser_bridge import api


def _page():
    return api.root("page")


async def screenshot(**options) -> str:
    """Take a screenshot of the page, returned as base64 text."""
    return await _page().screenshot(**options)


async def wait_for_selector(selector: str, **options) -> bool:
    """Wait for ``selector`` to reach the requested state (visible by default)."""
    await _page().wait_for_selector(selector, **options)
    return True


async def query_selector(selector: str) -> bool:
    return await _page().query_selector(selector) is not None


async def query_selector_all(selector: str) -> int:
    return len(await _page().query_selector_all(selector))


async def click(selector: str, **options):
    await _page().click(selector, **options)


async def fill(selector: str, value: str, **options):
    await _page().fill(selector, value, **options)


async def text_content(selector: str, **options) -> Optional[str]:
    return await _page().text_content(selector, **options)


async def get_attribute(selector: str, name: str, **options) -> Optional[str]:
    return await _page().get_attribute(selector, name, **options)


async def is_visible(selector: str, **options) -> bool:
    return await _page().is_visible(selector, **options)


async def is_hidden(selector: str, **options) -> bool:
    return await _page().is_hidden(selector, **options)


async def evaluate(expression: str, arg: Any = None) -> Any:
    """Evaluate a JavaScript expression in the page."""
    if arg is None:
        return await _page().evaluate(expression)
    return await _page().evaluate(expression, arg)


async def wait_for_timeout(timeout: float):
    await _page().wait_for_timeout(timeout)


class _Keyboard:
    async def press(self, key: str, **options):
        await _page().keyboard.press(key, **options)

    async def type(self, text: str, **options):
        await _page().keyboard.type(text, **options)


keyboard = _Keyboard()
