import asyncio
import concurrent.futures
import logging
import threading
import uuid
from typing import Any, Dict, Optional, Sequence

from browser_bridge.channel import Channel, make_channel
from browser_bridge.config import BridgeConfig
from browser_bridge.proxy import HandleProxy
from browser_bridge.serialization import serialize_args, serialize_kwargs, unwrap_result
from browser_bridge.type.error_type import (
    BridgeTimeoutError,
    ChannelClosedError,
    RemoteCallError,
    SerializationError,
)
from browser_bridge.type.message_type import (
    REGISTRY_TARGET,
    BridgeMessage,
    BridgeRequest,
    is_response,
)

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Playwright bridge timeout - is the bridge initialized?"


class BridgeClient:
    """
    Worker-side end of the bridge.

    The client runs its own event loop in a daemon thread, so calls can be awaited
    from any event loop (``await client.call(...)``) or issued from synchronous
    code (``client.call_sync(...)``). Every call gets the next correlation id and
    waits at most ``timeout`` seconds for the matching response.
    Requests carry a per-client token and only responses echoing it are accepted,
    so several clients can share one channel.
    """

    def __init__(self, channel: Channel, timeout: float = 30.0):
        self._channel = channel
        self._timeout = timeout
        self._client_id = uuid.uuid4().hex
        self._next_id = 0
        self._pending: Dict[int, asyncio.Future] = {}
        self._closed = False

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_started = threading.Event()
        self._thread = threading.Thread(
            target=self._run_async_loop, name="bridge_client", daemon=True
        )
        self._thread.start()
        self._loop_started.wait()

        start_fut = asyncio.run_coroutine_threadsafe(self._start_channel(), self._loop)
        try:
            start_fut.result()
        except Exception:
            self._stop_loop()
            raise
        logger.debug(f"Bridge client connected to channel {channel.name}")

    @classmethod
    def from_config(cls, config: BridgeConfig) -> "BridgeClient":
        return cls(make_channel(config.channel), timeout=config.client.timeout)

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def closed(self) -> bool:
        return self._closed

    def _run_async_loop(self):
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        self._loop_started.set()
        try:
            self._loop.run_forever()
        finally:
            self._loop.close()

    async def _start_channel(self):
        self._channel.on_message(self._on_message)
        await self._channel.start()

    def _on_message(self, message: Any):
        if not is_response(message) or message.get("client") != self._client_id:
            return
        future = self._pending.pop(message["id"], None)
        if future is None:
            # answer to a call that already timed out
            logger.debug(f"Dropping response {message['id']} with no pending call")
            return
        if not future.done():
            future.set_result(message["result"])

    async def _request(
        self, target: str, method: str, args: list, kwargs: dict
    ) -> Dict[str, Any]:
        self._next_id += 1
        request_id = self._next_id
        future = self._loop.create_future()
        self._pending[request_id] = future

        request = BridgeRequest(
            id=request_id,
            message=BridgeMessage(target=target, method=method, args=args, kwargs=kwargs),
            client=self._client_id,
        )
        try:
            try:
                await self._channel.send(request.to_dict())
            except (TypeError, ValueError, OverflowError) as e:
                raise SerializationError(f"Arguments are not wire serializable: {e}") from e
            logger.debug(f"[SEND] {request_id}: {target}.{method}")
            return await asyncio.wait_for(future, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Request {request_id} ({target}.{method}) timed out")
            raise BridgeTimeoutError(TIMEOUT_MESSAGE) from None
        finally:
            self._pending.pop(request_id, None)

    def _submit(
        self,
        target: str,
        method: str,
        args: Sequence[Any] = (),
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> concurrent.futures.Future:
        if self._closed:
            raise ChannelClosedError("Bridge client is closed")
        payload_args = serialize_args(args)
        payload_kwargs = serialize_kwargs(kwargs)
        return asyncio.run_coroutine_threadsafe(
            self._request(target, method, payload_args, payload_kwargs), self._loop
        )

    def _unwrap(self, result: Dict[str, Any]) -> Any:
        if not result.get("success"):
            raise RemoteCallError(result.get("error") or "unknown error")
        return unwrap_result(result.get("data"), self.handle)

    async def call(
        self,
        target: str,
        method: str,
        args: Sequence[Any] = (),
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        result = await asyncio.wrap_future(self._submit(target, method, args, kwargs))
        return self._unwrap(result)

    def call_sync(
        self,
        target: str,
        method: str,
        args: Sequence[Any] = (),
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if threading.current_thread() is self._thread:
            raise RuntimeError("call_sync cannot run on the bridge client loop")
        return self._unwrap(self._submit(target, method, args, kwargs).result())

    def handle(self, handle_id: str) -> HandleProxy:
        return HandleProxy(self, handle_id)

    async def registry_size(self) -> int:
        return await self.call(REGISTRY_TARGET, "size")

    async def clear_registry(self) -> None:
        await self.call(REGISTRY_TARGET, "clear")

    def registry_size_sync(self) -> int:
        return self.call_sync(REGISTRY_TARGET, "size")

    def clear_registry_sync(self) -> None:
        self.call_sync(REGISTRY_TARGET, "clear")

    def pending_count(self) -> int:
        return len(self._pending)

    async def _shutdown(self):
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ChannelClosedError("Bridge client is closed"))
        self._pending.clear()
        await self._channel.close()

    def close(self, timeout: float = 5):
        if self._closed:
            return
        self._closed = True
        fut = asyncio.run_coroutine_threadsafe(self._shutdown(), self._loop)
        try:
            fut.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            logger.warning(f"Channel did not close within {timeout}s")
        self._stop_loop(timeout)

    def _stop_loop(self, timeout: float = 5):
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning(f"Bridge client thread did not terminate within {timeout}s")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
