"""Pytest fixtures: an in-memory page object graph and a LocalChannel bridge over it."""

import asyncio
import uuid
from contextlib import asynccontextmanager

import pytest

from browser_bridge import api, lifecycle
from browser_bridge.channel import LocalChannel
from browser_bridge.client import BridgeClient
from browser_bridge.server import BridgeHost


class FakeElement:
    def __init__(self, selector):
        self.selector = selector

    async def text_content(self):
        return f"text of {self.selector}"

    async def click(self):
        return f"clicked {self.selector}"


class FakeKeyboard:
    def __init__(self):
        self.pressed = []
        self.typed = []

    async def press(self, key, delay=0):
        self.pressed.append((key, delay))

    async def type(self, text, delay=0):
        self.typed.append(text)


class FakePage:
    def __init__(self):
        self.keyboard = FakeKeyboard()
        self.url = "about:blank"
        self.routes = []
        self.clicked = []
        self.filled = {}

    async def goto(self, url):
        self.url = url

    async def title(self):
        return "Fake Page"

    async def query_selector(self, selector):
        if selector == ".missing":
            return None
        return FakeElement(selector)

    async def query_selector_all(self, selector):
        return [FakeElement(selector), FakeElement(selector)]

    def locator(self, selector):
        return FakeElement(selector)

    async def wait_for_selector(self, selector, state="visible", timeout=None):
        return FakeElement(selector)

    async def click(self, target, **options):
        if isinstance(target, FakeElement):
            target = target.selector
        self.clicked.append(target)
        return target

    async def fill(self, selector, value):
        self.filled[selector] = value

    async def text_content(self, selector):
        return f"text of {selector}"

    async def get_attribute(self, selector, name):
        return f"{name} of {selector}"

    async def is_visible(self, selector):
        return selector != ".hidden"

    async def is_hidden(self, selector):
        return selector == ".hidden"

    async def evaluate(self, expression, arg=None):
        return {"expression": expression, "arg": arg}

    async def wait_for_timeout(self, timeout):
        await asyncio.sleep(timeout / 1000)

    async def screenshot(self, **options):
        return b"\x89PNG\r\n"

    async def route(self, pattern, handler):
        self.routes.append((pattern, handler))

    async def slow(self, delay, value):
        await asyncio.sleep(delay)
        return value

    async def fail(self):
        raise RuntimeError("element is not attached")

    async def get_callback(self):
        return self.title

    async def get_config(self):
        return {"on_close": lambda: None, "retries": 2}

    async def get_viewport(self):
        return {"width": 1280, "height": 720, "tags": ("a", "b")}

    async def big_number(self):
        return 2**70

    async def broken_text(self):
        return "a\ud800b"

    async def echo(self, value):
        return value


@pytest.fixture
def fake_page():
    return FakePage()


@pytest.fixture
def root_context(fake_page):
    return {
        "page": fake_page,
        "context": {"name": "fake-context"},
        "browser": None,
        "request": None,
        "playwright": {"chromium": {"name": "chromium"}},
    }


@pytest.fixture
def local_bridge(root_context):
    """Factory for a started host and a client sharing a fresh LocalChannel."""

    @asynccontextmanager
    async def _bridge(timeout=5.0, serve=True, serializer="orjson"):
        name = f"test-bridge-{uuid.uuid4().hex[:8]}"
        host = BridgeHost.from_root(root_context, LocalChannel(name, serializer=serializer))
        if serve:
            await host.start()
        client = BridgeClient(LocalChannel(name, serializer=serializer), timeout=timeout)
        try:
            yield host, client
        finally:
            client.close()
            await host.stop()

    return _bridge


@pytest.fixture(autouse=True)
def reset_bridge_state():
    yield
    lifecycle.enable_auto_clear()
    api.set_client(None)
