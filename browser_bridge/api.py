"""
Worker-facing module API.

Test code imports the root objects straight from here::

    from browser_bridge import api

    async def test_title():
        await api.page.goto("http://localhost:3000")
        assert await api.page.title() == "Home"

``page``, ``context``, ``browser``, ``request`` and ``playwright`` are proxies bound
to the default client, which is created from the configuration on first use.
"""

import logging
import threading
from typing import Dict, Optional

from browser_bridge import lifecycle
from browser_bridge.client import BridgeClient
from browser_bridge.config import BridgeConfig, config_loader
from browser_bridge.proxy import RemoteProxy, make_root

logger = logging.getLogger(__name__)

ROOT_NAMES = ("page", "context", "browser", "request", "playwright")

_lock = threading.RLock()
_client: Optional[BridgeClient] = None
_config: Optional[BridgeConfig] = None
_roots: Dict[str, RemoteProxy] = {}


def configure(config_path: Optional[str] = None) -> BridgeConfig:
    """Load the configuration used when the default client is created."""
    global _config
    with _lock:
        _config = config_loader(config_path)
        return _config


def get_config() -> BridgeConfig:
    with _lock:
        if _config is None:
            return configure()
        return _config


def is_configured() -> bool:
    return _config is not None


def get_client(create: bool = True) -> Optional[BridgeClient]:
    global _client
    with _lock:
        if _client is None or _client.closed:
            if not create:
                return None
            _client = BridgeClient.from_config(get_config())
            _roots.clear()
        return _client


def set_client(client: Optional[BridgeClient]):
    """Install ``client`` as the default client, e.g. one built over a LocalChannel."""
    global _client
    with _lock:
        _client = client
        _roots.clear()


def close_client():
    global _client
    with _lock:
        if _client is not None:
            _client.close()
        _client = None
        _roots.clear()


def root(name: str) -> RemoteProxy:
    with _lock:
        proxy = _roots.get(name)
        if proxy is None:
            proxy = make_root(get_client(), name)
            _roots[name] = proxy
        return proxy


def __getattr__(name: str):
    if name in ROOT_NAMES:
        return root(name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


async def get_registry_size() -> int:
    return await get_client().registry_size()


async def clear_registry():
    await get_client().clear_registry()


def disable_auto_clear_registry():
    lifecycle.disable_auto_clear()


def enable_auto_clear_registry():
    lifecycle.enable_auto_clear()
