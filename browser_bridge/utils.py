import base64
import datetime
import json
import re
from typing import Any, Optional, Union
from urllib.parse import ParseResult, SplitResult

import msgpack
import orjson
import psutil
import zmq
import zmq.asyncio

URL_TYPES = (ParseResult, SplitResult)


# Adapted from: https://github.com/sgl-project/sglang/blob/v0.4.1/python/sglang/srt/utils.py#L783 # noqa: E501
def make_zmq_socket(
    ctx: Union[zmq.asyncio.Context, zmq.Context],  # type: ignore[name-defined]
    path: str,
    socket_type: Any,
    bind: Optional[bool] = None,
    subscribe: Optional[bytes] = None,
) -> Union[zmq.Socket, zmq.asyncio.Socket]:  # type: ignore[name-defined]
    """Make a ZMQ socket with the proper bind/connect semantics."""

    mem = psutil.virtual_memory()
    socket = ctx.socket(socket_type)

    # Calculate buffer size based on system memory
    total_mem = mem.total / 1024**3
    available_mem = mem.available / 1024**3
    # Screenshots travel as base64 text, so large hosts get a 0.5GB buffer;
    # smaller ones keep the system default (-1)
    if total_mem > 32 and available_mem > 16:
        buf_size = int(0.5 * 1024**3)
    else:
        buf_size = -1

    if bind is None:
        bind = socket_type in (zmq.XPUB, zmq.XSUB)

    if socket_type in (zmq.SUB, zmq.XSUB, zmq.XPUB):
        socket.setsockopt(zmq.RCVHWM, 0)
        socket.setsockopt(zmq.RCVBUF, buf_size)

    if socket_type in (zmq.PUB, zmq.XSUB, zmq.XPUB):
        socket.setsockopt(zmq.SNDHWM, 0)
        socket.setsockopt(zmq.SNDBUF, buf_size)

    if socket_type == zmq.SUB and subscribe is not None:
        socket.setsockopt(zmq.SUBSCRIBE, subscribe)

    socket.setsockopt(zmq.LINGER, 0)

    if bind:
        socket.bind(path)
    else:
        socket.connect(path)

    return socket


def wire_default(obj: Any) -> Any:
    """Render the always-serializable value objects into plain wire data."""
    if isinstance(obj, BaseException):
        return str(obj)
    if isinstance(obj, re.Pattern):
        return obj.pattern
    if isinstance(obj, URL_TYPES):
        return obj.geturl()
    if isinstance(obj, (datetime.datetime, datetime.date, datetime.time)):
        return obj.isoformat()
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    if isinstance(obj, tuple):
        return list(obj)
    raise TypeError(f"Type is not wire serializable: {type(obj).__name__}")


class OrjsonSerializer:
    # fallback to json if encounter lone surrogates
    def dumps(self, obj):
        try:
            return orjson.dumps(obj, default=wire_default).decode("utf-8")
        except orjson.JSONEncodeError:
            return json.dumps(obj, default=wire_default)

    def loads(self, obj):
        try:
            return orjson.loads(obj)
        except orjson.JSONDecodeError:
            return json.loads(obj)


class MsgpackSerializer:
    def dumps(self, obj):
        return msgpack.packb(obj, use_bin_type=True, default=wire_default)

    def loads(self, obj):
        return msgpack.unpackb(obj, raw=False)


class Serializer:
    def __init__(self, serializer: str = "orjson"):
        self.serializer = serializer
        if serializer == "orjson":
            self.dumps = OrjsonSerializer().dumps
            self.loads = OrjsonSerializer().loads
        elif serializer == "msgpack":
            self.dumps = MsgpackSerializer().dumps
            self.loads = MsgpackSerializer().loads
        else:
            raise ValueError(f"Invalid serializer: {serializer}")
