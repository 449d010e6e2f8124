"""
Registry lifecycle policy.

By default the host registry is cleared before every test case so handles do not
pile up across a long suite. Turning auto clear off is process-wide and lasts
until it is turned back on.
"""

import logging
import threading
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from browser_bridge.client import BridgeClient

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_auto_clear_enabled = True


def is_auto_clear_enabled() -> bool:
    return _auto_clear_enabled


def set_auto_clear(enabled: bool):
    global _auto_clear_enabled
    with _lock:
        if _auto_clear_enabled != enabled:
            logger.info(f"Registry auto clear {'enabled' if enabled else 'disabled'}")
        _auto_clear_enabled = enabled


def enable_auto_clear():
    set_auto_clear(True)


def disable_auto_clear():
    set_auto_clear(False)


def clear_before_test(client: Optional["BridgeClient"]) -> bool:
    """Clear the host registry through ``client`` if the policy asks for it."""
    if client is None or client.closed or not is_auto_clear_enabled():
        return False
    client.clear_registry_sync()
    return True
