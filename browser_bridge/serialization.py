"""
Serialization engine for values crossing the channel.

Host side: ``needs_handle`` / ``serialize_result`` turn call results into wire data,
registering anything that cannot travel as plain data; ``deserialize_args`` turns
incoming arguments back into live objects.

Worker side: ``serialize_args`` turns callables into source text and handle proxies
into handle references; ``unwrap_result`` turns handle references in a result into
handle proxies.
"""

import ast
import base64
import builtins
import datetime
import functools
import inspect
import logging
import re
import textwrap
from typing import Any, Callable, Dict, List, Optional, Sequence

from browser_bridge.registry import HandleRegistry, describe_missing_target
from browser_bridge.type.error_type import SerializationError, TargetNotFoundError
from browser_bridge.type.message_type import (
    FUNCTION_KEY,
    HANDLE_ID_KEY,
    is_handle_reference,
    is_serialized_function,
)
from browser_bridge.utils import URL_TYPES, wire_default

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = (str, int, float, bool, type(None))
BINARY_TYPES = (bytes, bytearray, memoryview)
VALUE_TYPES = (
    BaseException,
    datetime.datetime,
    datetime.date,
    datetime.time,
    re.Pattern,
) + URL_TYPES

FUNCTION_FILENAME = "<bridge-function>"


class _CycleDetected(Exception):
    pass


class RemoteHandle:
    """Marker base for worker-side objects standing in for a registered handle."""

    _bridge_handle_id: str = ""


class HostFunction:
    """
    Source text of a callable to be rebuilt in the host process.

    Use it when the source cannot be recovered by ``inspect`` (REPL, exec'd code)
    or to pass a plain expression: ``HostFunction("lambda request: request.url.endswith('.png')")``.
    """

    def __init__(self, source: str):
        self.source = source

    def __repr__(self):
        return f"HostFunction({self.source!r})"


def is_function(value: Any) -> bool:
    return inspect.isroutine(value) or isinstance(value, functools.partial)


def is_direct_value(value: Any) -> bool:
    return isinstance(value, PRIMITIVE_TYPES + BINARY_TYPES + VALUE_TYPES)


# ---------------------------------------------------------------------------
# Host side
# ---------------------------------------------------------------------------


def needs_handle(value: Any) -> bool:
    """
    Decide whether a call result must be replaced by a handle reference.

    A bare function is a programming error and raises. Top-level arrays are never
    forced into a handle by their elements; they are transformed element-wise
    unless they hold a function directly or take part in a cycle.
    """
    if is_function(value):
        raise SerializationError(
            f"Cannot serialize a bare function ({getattr(value, '__name__', value)!r}) as a call result"
        )
    if is_direct_value(value):
        return False
    try:
        if isinstance(value, (list, tuple)):
            active = {id(value)}
            for item in value:
                if is_function(item):
                    return True
                _walk(item, active)
            return False
        return _walk(value, set())
    except _CycleDetected:
        return True


def _walk(value: Any, active: set) -> bool:
    """Return True when ``value`` cannot travel as plain data."""
    if is_function(value):
        return True
    if is_direct_value(value):
        return False
    if isinstance(value, (list, tuple, dict)):
        if id(value) in active:
            raise _CycleDetected()
        active.add(id(value))
        try:
            if isinstance(value, dict):
                items = value.values()
                if not all(isinstance(key, str) for key in value):
                    return True
            else:
                items = value
            # evaluate every item so cycles below a non-serializable item still surface
            results = [_walk(item, active) for item in items]
            return any(results)
        finally:
            active.discard(id(value))
    return True


def serialize_result(value: Any, registry: HandleRegistry) -> Any:
    if isinstance(value, BINARY_TYPES):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, VALUE_TYPES):
        return wire_default(value)

    if needs_handle(value):
        handle_id = registry.register(value)
        return {HANDLE_ID_KEY: handle_id}

    if isinstance(value, (list, tuple)):
        return [serialize_result(item, registry) for item in value]

    if isinstance(value, dict):
        return _to_plain(value)

    return value


def _to_plain(value: Any) -> Any:
    # classifier already guaranteed an acyclic, handle-free graph
    if isinstance(value, BINARY_TYPES):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, VALUE_TYPES):
        return wire_default(value)
    if isinstance(value, (list, tuple)):
        return [_to_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: _to_plain(item) for key, item in value.items()}
    return value


def deserialize_args(args: Sequence[Any], registry: HandleRegistry) -> List[Any]:
    return [deserialize_value(arg, registry) for arg in args]


def deserialize_kwargs(kwargs: Dict[str, Any], registry: HandleRegistry) -> Dict[str, Any]:
    return {key: deserialize_value(value, registry) for key, value in kwargs.items()}


def deserialize_value(value: Any, registry: HandleRegistry) -> Any:
    if is_handle_reference(value):
        handle_id = value[HANDLE_ID_KEY]
        if not registry.has(handle_id):
            raise TargetNotFoundError(describe_missing_target(handle_id))
        return registry.get(handle_id)
    if is_serialized_function(value):
        return rebuild_function(value[FUNCTION_KEY])
    if isinstance(value, list):
        return [deserialize_value(item, registry) for item in value]
    if isinstance(value, dict):
        return {key: deserialize_value(item, registry) for key, item in value.items()}
    return value


def rebuild_function(source: str) -> Callable:
    """
    Rebuild a callable from source text in a fresh namespace.

    An expression (usually a lambda) is evaluated; a block is executed and the last
    top-level ``def`` is returned.
    """
    source = textwrap.dedent(source).strip()
    namespace: Dict[str, Any] = {"__builtins__": builtins}
    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        raise SerializationError(f"Invalid function source: {e}") from e

    if len(tree.body) == 1 and isinstance(tree.body[0], ast.Expr):
        fn = eval(compile(source, FUNCTION_FILENAME, "eval"), namespace)
    else:
        defs = [
            node
            for node in tree.body
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef))
        ]
        if not defs:
            raise SerializationError("Function source defines no function")
        exec(compile(tree, FUNCTION_FILENAME, "exec"), namespace)
        fn = namespace[defs[-1].name]

    if not callable(fn):
        raise SerializationError(f"Function source evaluated to {type(fn).__name__}")
    return fn


# ---------------------------------------------------------------------------
# Worker side
# ---------------------------------------------------------------------------


def serialize_args(args: Sequence[Any]) -> List[Any]:
    return [serialize_arg(arg) for arg in args]


def serialize_kwargs(kwargs: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {key: serialize_arg(value) for key, value in (kwargs or {}).items()}


def serialize_arg(value: Any) -> Any:
    if isinstance(value, RemoteHandle):
        return {HANDLE_ID_KEY: value._bridge_handle_id}
    if isinstance(value, HostFunction):
        return {FUNCTION_KEY: value.source}
    if is_function(value):
        return {FUNCTION_KEY: function_source(value)}
    if isinstance(value, VALUE_TYPES):
        return wire_default(value)
    if isinstance(value, BINARY_TYPES):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (list, tuple)):
        return [serialize_arg(item) for item in value]
    if isinstance(value, dict) and not is_handle_reference(value):
        return {key: serialize_arg(item) for key, item in value.items()}
    return value


def function_source(fn: Callable) -> str:
    if isinstance(fn, functools.partial):
        raise SerializationError("functools.partial objects cannot cross the bridge")
    try:
        source = inspect.getsource(fn)
    except (OSError, TypeError) as e:
        raise SerializationError(
            f"Cannot recover the source of {fn!r}, wrap it in HostFunction: {e}"
        ) from e
    source = textwrap.dedent(source)
    if fn.__name__ == "<lambda>":
        return _extract_lambda(source, fn)
    return source


def _extract_lambda(source: str, fn: Callable) -> str:
    candidates = []
    for match in re.finditer(r"\blambda\b", source):
        expression = _longest_lambda(source, match.start())
        if expression is not None:
            candidates.append(expression)

    if len(candidates) > 1:
        candidates = [c for c in candidates if _same_code(c, fn)]
    if len(candidates) != 1:
        raise SerializationError(
            f"Cannot isolate the lambda source in {source.strip()!r}, wrap it in HostFunction"
        )
    return candidates[0]


def _longest_lambda(source: str, start: int) -> Optional[str]:
    for end in range(len(source), start, -1):
        text = source[start:end].strip()
        try:
            tree = ast.parse(text, mode="eval")
        except SyntaxError:
            continue
        if isinstance(tree.body, ast.Lambda):
            return ast.get_source_segment(text, tree.body)
    return None


def _same_code(expression: str, fn: Callable) -> bool:
    code = compile(expression, FUNCTION_FILENAME, "eval")
    return any(
        inspect.iscode(const) and const.co_code == fn.__code__.co_code
        for const in code.co_consts
    )


def unwrap_result(data: Any, make_handle: Callable[[str], Any]) -> Any:
    if is_handle_reference(data):
        return make_handle(data[HANDLE_ID_KEY])
    if isinstance(data, list):
        return [unwrap_result(item, make_handle) for item in data]
    if isinstance(data, dict):
        return {key: unwrap_result(item, make_handle) for key, item in data.items()}
    return data
