import logging
import re
from typing import Any, Dict

logger = logging.getLogger(__name__)

HANDLE_PREFIX = "handle_"
HANDLE_ID_PATTERN = re.compile(r"^handle_\d+$")

_MISSING = object()


def looks_like_handle_id(target: str) -> bool:
    return bool(HANDLE_ID_PATTERN.match(target))


def describe_missing_target(target: str) -> str:
    message = f"Target '{target}' not found"
    if looks_like_handle_id(target):
        message += (
            " (it looks like a handle id; handles are cleared between test cases"
            " unless auto clear is disabled)"
        )
    return message


class HandleRegistry:
    """
    Host-side table of live objects that cannot cross the channel.

    Ids are ``handle_<n>`` with ``n`` counting up from 1 for the lifetime of the
    registry. The counter survives ``delete`` and ``clear`` so an id issued before
    a clear can never resolve to a newer object.
    """

    def __init__(self):
        self._handles: Dict[str, Any] = {}
        self._next_id = 1

    def register(self, value: Any) -> str:
        handle_id = f"{HANDLE_PREFIX}{self._next_id}"
        self._next_id += 1
        self._handles[handle_id] = value
        logger.debug(f"Registered {handle_id} for {type(value).__name__}")
        return handle_id

    def get(self, handle_id: str, default: Any = None) -> Any:
        return self._handles.get(handle_id, default)

    def has(self, handle_id: str) -> bool:
        return handle_id in self._handles

    def delete(self, handle_id: str) -> bool:
        return self._handles.pop(handle_id, _MISSING) is not _MISSING

    def clear(self) -> None:
        logger.debug(f"Clearing {len(self._handles)} handles")
        self._handles.clear()

    def size(self) -> int:
        return len(self._handles)

    def __contains__(self, handle_id: str) -> bool:
        return handle_id in self._handles
