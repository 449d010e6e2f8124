import inspect
import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from browser_bridge.registry import HandleRegistry, describe_missing_target
from browser_bridge.serialization import (
    deserialize_args,
    deserialize_kwargs,
    serialize_result,
)
from browser_bridge.type.error_type import (
    BridgeError,
    MalformedMessageError,
    NotAFunctionError,
    TargetNotFoundError,
)
from browser_bridge.type.message_type import REGISTRY_TARGET, BridgeMessage, BridgeResult

logger = logging.getLogger(__name__)

_MISSING = object()


class Dispatcher:
    """
    Resolves a request's target and method against the live object graph and invokes it.

    The root context maps top-level names (``page``, ``context``, ``browser``,
    ``request``, ``playwright``) to live objects. ``dispatch`` is the single entry
    point the host exposes; it never raises, every failure becomes a failed result.
    """

    def __init__(
        self,
        root_context: Mapping[str, Any],
        registry: Optional[HandleRegistry] = None,
    ):
        self.root_context: Dict[str, Any] = dict(root_context)
        self.registry = registry if registry is not None else HandleRegistry()

    async def dispatch(self, message: Any) -> Dict[str, Any]:
        return (await self.dispatch_result(message)).to_dict()

    async def dispatch_result(self, message: Any) -> BridgeResult:
        try:
            bridge_message = self._validate(message)
            target_name = bridge_message.target
            method = bridge_message.method
            logger.debug(f"Dispatching {target_name}.{method}")

            if target_name == REGISTRY_TARGET:
                return self._registry_command(method)

            target = self.resolve(target_name)
            args = deserialize_args(bridge_message.args, self.registry)
            kwargs = deserialize_kwargs(bridge_message.kwargs, self.registry)

            fn = getattr(target, method, None)
            if not callable(fn):
                raise NotAFunctionError(
                    f"Method '{method}' is not a function on target '{target_name}'"
                )

            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result

            return BridgeResult.ok(serialize_result(result, self.registry))
        except BridgeError as e:
            logger.warning(f"Dispatch failed ({e.error_info.code.value}): {e}")
            return BridgeResult.fail(str(e))
        except Exception as e:
            logger.warning(f"Dispatched call raised {type(e).__name__}: {e}", exc_info=True)
            return BridgeResult.fail(str(e) or type(e).__name__)

    def resolve(self, target: str) -> Any:
        if self.registry.has(target):
            return self.registry.get(target)

        current: Any = self.root_context
        for part in target.split("."):
            if isinstance(current, Mapping):
                current = current.get(part, _MISSING)
            else:
                current = getattr(current, part, _MISSING)
            if current is _MISSING or current is None:
                raise TargetNotFoundError(describe_missing_target(target))
        return current

    def _registry_command(self, method: str) -> BridgeResult:
        if method == "size":
            return BridgeResult.ok(self.registry.size())
        if method == "clear":
            self.registry.clear()
            return BridgeResult.ok(None)
        raise NotAFunctionError(
            f"Method '{method}' is not a function on target '{REGISTRY_TARGET}'"
        )

    @staticmethod
    def _validate(message: Any) -> BridgeMessage:
        if not isinstance(message, Mapping):
            raise MalformedMessageError("Invalid message format")
        if not message.get("target") or not message.get("method"):
            raise MalformedMessageError("Message must include target and method")
        try:
            return BridgeMessage(
                target=message["target"],
                method=message["method"],
                args=message.get("args") or [],
                kwargs=message.get("kwargs") or {},
            )
        except ValidationError as e:
            raise MalformedMessageError(f"Invalid message format: {e}") from e
