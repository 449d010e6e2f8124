"""
Broadcast channel shared by the host and the worker.

Every participant observes every message on the channel, including its own, so
receivers must filter by message shape. Delivery is fire-and-forget and
at-most-once.
"""

import asyncio
import inspect
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

import zmq
import zmq.asyncio

from browser_bridge.config import ChannelConfig
from browser_bridge.type.error_type import BridgeTimeoutError, ChannelClosedError
from browser_bridge.utils import Serializer, make_zmq_socket

logger = logging.getLogger(__name__)

PROBE_TAG = "__probe"

MessageHandler = Callable[[Dict[str, Any]], Any]


class Channel(ABC):
    def __init__(self, name: str, serializer: str = "orjson"):
        self.name = name
        self._serializer = Serializer(serializer=serializer)
        self._handlers: List[MessageHandler] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False

    @abstractmethod
    async def start(self):
        """Connect the channel; handlers run on the event loop that calls this."""

    @abstractmethod
    async def send(self, message: Dict[str, Any]):
        """Publish a message to every participant, the sender included."""

    @abstractmethod
    async def close(self):
        pass

    def on_message(self, handler: MessageHandler):
        self._handlers.append(handler)

    def remove_handler(self, handler: MessageHandler):
        if handler in self._handlers:
            self._handlers.remove(handler)

    def _invoke_handlers(self, message: Dict[str, Any]):
        for handler in list(self._handlers):
            try:
                result = handler(message)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    task.add_done_callback(_log_handler_failure)
            except Exception as e:
                logger.error(f"Handler on channel {self.name} failed: {e}", exc_info=True)

    def _check_open(self):
        if not self._running:
            raise ChannelClosedError(f"Channel {self.name} is not running")


def _log_handler_failure(task: asyncio.Future):
    if not task.cancelled() and task.exception() is not None:
        logger.error("Channel handler task failed", exc_info=task.exception())


_local_channels: Dict[str, List["LocalChannel"]] = defaultdict(list)
_local_lock = threading.Lock()


class LocalChannel(Channel):
    """
    In-process broadcast between every LocalChannel sharing a name.

    Participants may live on different threads and event loops. Messages are
    round-tripped through the codec so no live object crosses.
    """

    async def start(self):
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._running = True
        with _local_lock:
            _local_channels[self.name].append(self)
        logger.debug(f"Local channel {self.name} joined")

    async def send(self, message: Dict[str, Any]):
        self._check_open()
        payload = self._serializer.dumps(message)
        with _local_lock:
            peers = list(_local_channels[self.name])
        for peer in peers:
            peer._deliver(self._serializer.loads(payload))

    def _deliver(self, message: Dict[str, Any]):
        if not self._running or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._invoke_handlers, message)

    async def close(self):
        self._running = False
        with _local_lock:
            peers = _local_channels.get(self.name, [])
            if self in peers:
                peers.remove(self)
            if not peers:
                _local_channels.pop(self.name, None)


class ZmqChannel(Channel):
    """
    Channel over a ZeroMQ XSUB/XPUB hub.

    Each participant publishes ``[name, payload]`` frames to the hub frontend and
    subscribes to ``name`` on the hub backend.
    """

    def __init__(
        self,
        name: str,
        frontend: str,
        backend: str,
        serializer: str = "orjson",
        ready_timeout: float = 10.0,
    ):
        super().__init__(name, serializer=serializer)
        self.frontend = frontend
        self.backend = backend
        self.ready_timeout = ready_timeout
        self._topic = name.encode()
        self._probe_token = uuid.uuid4().hex
        self._ready = asyncio.Event()
        self._ctx = None
        self._pub = None
        self._sub = None
        self._recv_task: Optional[asyncio.Task] = None

    async def start(self):
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._ready = asyncio.Event()
        self._ctx = zmq.asyncio.Context()
        self._pub = make_zmq_socket(self._ctx, self.frontend, zmq.PUB, bind=False)
        self._sub = make_zmq_socket(
            self._ctx, self.backend, zmq.SUB, bind=False, subscribe=self._topic
        )
        self._running = True
        self._recv_task = self._loop.create_task(
            self._recv_loop(), name=f"channel_recv_{self.name}"
        )
        try:
            await self._wait_ready()
        except BridgeTimeoutError:
            await self.close()
            raise
        logger.info(f"Channel {self.name} connected to {self.frontend} / {self.backend}")

    async def _wait_ready(self):
        # a SUB socket misses everything published before its subscription reaches
        # the hub; seeing our own probe proves the full path is live
        deadline = self._loop.time() + self.ready_timeout
        while not self._ready.is_set():
            if self._loop.time() > deadline:
                raise BridgeTimeoutError(
                    f"Channel {self.name} not ready after {self.ready_timeout}s - is the hub running?"
                )
            await self._publish({PROBE_TAG: self._probe_token})
            try:
                await asyncio.wait_for(self._ready.wait(), timeout=0.1)
            except asyncio.TimeoutError:
                pass

    async def send(self, message: Dict[str, Any]):
        self._check_open()
        await self._publish(message)

    async def _publish(self, message: Dict[str, Any]):
        payload = self._serializer.dumps(message)
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        await self._pub.send_multipart([self._topic, payload])

    async def _recv_loop(self):
        while self._running:
            try:
                frames = await self._sub.recv_multipart()
            except asyncio.CancelledError:
                break
            except zmq.ZMQError as e:
                if self._running:
                    logger.error(f"Receive loop for channel {self.name} failed: {e}")
                break

            if len(frames) != 2 or frames[0] != self._topic:
                continue
            try:
                message = self._serializer.loads(frames[1])
            except ValueError as e:
                logger.warning(f"Dropping undecodable message on {self.name}: {e}")
                continue

            if isinstance(message, dict) and PROBE_TAG in message:
                if message[PROBE_TAG] == self._probe_token:
                    self._ready.set()
                continue
            self._invoke_handlers(message)
        logger.debug(f"Receive loop for channel {self.name} stopped")

    async def close(self):
        if self._ctx is None:
            return
        self._running = False
        if self._recv_task is not None:
            self._recv_task.cancel()
            try:
                await self._recv_task
            except asyncio.CancelledError:
                pass
            self._recv_task = None
        self._pub.close()
        self._sub.close()
        self._ctx.term()
        self._ctx = None
        logger.debug(f"Channel {self.name} closed")


class ChannelHub:
    """Forwards every published frame to every subscriber (``zmq.proxy_steerable`` in a thread)."""

    def __init__(self, frontend: str, backend: str):
        self.frontend = frontend
        self.backend = backend
        self._ctx = None
        self._control = None
        self._control_path = f"inproc://channel-hub-control-{uuid.uuid4().hex[:8]}"
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self._ctx = zmq.Context()
        xsub = make_zmq_socket(self._ctx, self.frontend, zmq.XSUB, bind=True)
        xpub = make_zmq_socket(self._ctx, self.backend, zmq.XPUB, bind=True)
        self._control = self._ctx.socket(zmq.PAIR)
        self._control.bind(self._control_path)
        self._thread = threading.Thread(
            target=self._run, args=(xsub, xpub), name="channel_hub", daemon=True
        )
        self._thread.start()
        logger.info(f"Channel hub forwarding {self.frontend} -> {self.backend}")

    def _run(self, xsub, xpub):
        control = self._ctx.socket(zmq.PAIR)
        control.connect(self._control_path)
        try:
            zmq.proxy_steerable(xsub, xpub, None, control)
        except zmq.ContextTerminated:
            pass
        finally:
            xsub.close(linger=0)
            xpub.close(linger=0)
            control.close(linger=0)

    def close(self, timeout: float = 5):
        if self._ctx is None:
            return
        self._control.send(b"TERMINATE")
        self._thread.join(timeout)
        self._control.close(linger=0)
        if self._thread.is_alive():
            logger.warning(f"Channel hub did not stop within {timeout}s")
        else:
            self._ctx.term()
        self._ctx = None
        logger.info("Channel hub stopped")


def make_channel(config: ChannelConfig) -> Channel:
    if config.transport == "local":
        return LocalChannel(config.name, serializer=config.serializer)
    return ZmqChannel(
        config.name,
        config.frontend,
        config.backend,
        serializer=config.serializer,
        ready_timeout=config.ready_timeout,
    )
