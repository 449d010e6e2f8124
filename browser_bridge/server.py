"""
Bridge Host Module

This module implements the host side of the bridge: it owns Playwright, a browser,
a browser context and a page, and answers requests observed on the channel by
dispatching them against that object graph.
"""

import asyncio
import logging
import signal
from typing import Any, Dict, Optional, Set

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from browser_bridge.channel import Channel, ChannelHub, make_channel
from browser_bridge.config import BridgeConfig
from browser_bridge.dispatcher import Dispatcher
from browser_bridge.registry import HandleRegistry
from browser_bridge.type.message_type import BridgeResponse, BridgeResult, is_request

logger = logging.getLogger(__name__)


class BridgeHost:
    """
    Listens on a channel and answers every request with exactly one response.

    Each request is dispatched in its own task, so slow calls (navigation, waiting
    for selectors) do not hold up the others.
    """

    def __init__(self, channel: Channel, dispatcher: Dispatcher):
        self.channel = channel
        self.dispatcher = dispatcher
        self._tasks: Set[asyncio.Task] = set()
        self.num_finished_requests = 0
        self.num_error_requests = 0

    @classmethod
    def from_root(
        cls,
        root_context: Dict[str, Any],
        channel: Channel,
        registry: Optional[HandleRegistry] = None,
    ) -> "BridgeHost":
        """Serve any caller-supplied object graph instead of a launched browser."""
        return cls(channel, Dispatcher(root_context, registry))

    @property
    def registry(self) -> HandleRegistry:
        return self.dispatcher.registry

    async def start(self):
        self.channel.on_message(self._on_message)
        await self.channel.start()

    def _on_message(self, message: Any):
        if not is_request(message):
            return
        task = asyncio.get_running_loop().create_task(
            self._handle_request(message["id"], message["message"], _client_token(message)),
            name=f"bridge_request_{message['id']}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle_request(self, request_id: int, message: Any, client: Optional[str] = None):
        try:
            result = await self.dispatcher.dispatch_result(message)
        except Exception as e:
            # dispatch_result already converts failures; this guards the envelope
            logger.error(f"Error handling request {request_id}: {e}", exc_info=True)
            result = BridgeResult.fail(str(e))

        response = BridgeResponse(id=request_id, result=result, client=client)
        try:
            await self.channel.send(response.to_dict())
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(f"Result of request {request_id} is not wire serializable: {e}")
            result = BridgeResult.fail(f"Result is not wire serializable: {e}")
            response = BridgeResponse(id=request_id, result=result, client=client)
            try:
                await self.channel.send(response.to_dict())
            except Exception as e:
                logger.error(f"Failed to send response {request_id}: {e}", exc_info=True)
        except Exception as e:
            logger.error(f"Failed to send response {request_id}: {e}", exc_info=True)

        if result.success:
            self.num_finished_requests += 1
        else:
            self.num_error_requests += 1

    async def stop(self):
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.channel.close()


def _client_token(message: Dict[str, Any]) -> Optional[str]:
    client = message.get("client")
    return client if isinstance(client, str) else None


class BridgeServer:
    """
    Runs Playwright and exposes its object graph through a BridgeHost.

    Root context names: ``page``, ``context``, ``browser``, ``request`` (the
    context's APIRequestContext) and ``playwright`` (the library namespace).
    """

    def __init__(self, config: Optional[BridgeConfig] = None):
        self.config = config or BridgeConfig()
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.hub: Optional[ChannelHub] = None
        self.host: Optional[BridgeHost] = None
        self.registry = HandleRegistry()
        self.running = False

    def root_context(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "context": self.context,
            "browser": self.browser,
            "request": self.context.request if self.context is not None else None,
            "playwright": self.playwright,
        }

    async def start(self):
        """Start Playwright, open a page and begin answering requests"""
        if self.running:
            return

        server_config = self.config.server
        logger.info(
            f"Starting bridge server ({server_config.browser_type}, headless={server_config.headless})"
        )
        self.running = True
        try:
            self.playwright = await async_playwright().start()
            browser_type = getattr(self.playwright, server_config.browser_type)
            self.browser = await browser_type.launch(headless=server_config.headless)
            self.context = await self.browser.new_context(**server_config.context_options)
            self.page = await self.context.new_page()
            if server_config.url:
                await self.page.goto(server_config.url)

            channel_config = self.config.channel
            if channel_config.transport == "zmq" and channel_config.start_hub:
                self.hub = ChannelHub(channel_config.frontend, channel_config.backend)
                self.hub.start()

            dispatcher = Dispatcher(self.root_context(), self.registry)
            self.host = BridgeHost(make_channel(channel_config), dispatcher)
            await self.host.start()
            logger.info(f"Bridge server ready on channel {channel_config.name}")
        except Exception as e:
            logger.error(f"Error starting bridge server: {e}")
            await self.stop()
            raise

    async def stop(self):
        if self.host is not None:
            await self.host.stop()
            self.host = None
        if self.hub is not None:
            self.hub.close()
            self.hub = None
        if self.browser is not None:
            try:
                await self.browser.close()
            except Exception as e:
                logger.error(f"Error closing browser: {e}")
        if self.playwright is not None:
            try:
                await self.playwright.stop()
            except Exception as e:
                logger.error(f"Error stopping playwright: {e}")
        self.browser = None
        self.context = None
        self.page = None
        self.playwright = None
        self.registry.clear()
        self.running = False
        logger.info("Bridge server stopped")

    async def serve_forever(self):
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                pass
        try:
            await stop_event.wait()
        finally:
            await self.stop()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()
