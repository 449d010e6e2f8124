"""pytest integration: clears the host registry before each test case."""

import logging
from typing import Optional

import pytest

from browser_bridge import api, lifecycle

logger = logging.getLogger(__name__)

AUTO_CLEAR_PLUGIN_NAME = "browser_bridge_auto_clear"


class RegistryAutoClear:
    """Before-each hook; a client is only created when a config was given explicitly."""

    def __init__(self, create_client: bool = False):
        self.create_client = create_client
        self.num_cleared = 0

    @pytest.hookimpl(tryfirst=True)
    def pytest_runtest_setup(self, item):
        if not lifecycle.is_auto_clear_enabled():
            return
        client = api.get_client(create=self.create_client)
        if lifecycle.clear_before_test(client):
            self.num_cleared += 1
            logger.debug(f"Cleared bridge registry before {item.nodeid}")


def pytest_addoption(parser):
    group = parser.getgroup("browser_bridge", "playwright bridge")
    group.addoption(
        "--bridge-config",
        action="store",
        dest="bridge_config",
        default=None,
        help="path to the bridge YAML config",
    )
    group.addoption(
        "--no-bridge-auto-clear",
        action="store_true",
        dest="no_bridge_auto_clear",
        default=False,
        help="keep bridge handles across test cases",
    )
    parser.addini("bridge_config", "path to the bridge YAML config", default=None)


def install_auto_clear(config, create_client: bool = False) -> Optional[RegistryAutoClear]:
    """Register the before-each hook unless it is already installed."""
    if config.pluginmanager.has_plugin(AUTO_CLEAR_PLUGIN_NAME):
        return None
    hook = RegistryAutoClear(create_client=create_client)
    config.pluginmanager.register(hook, AUTO_CLEAR_PLUGIN_NAME)
    return hook


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "bridge_e2e: drives a real browser through the bridge host"
    )

    config_path = config.getoption("bridge_config") or config.getini("bridge_config")
    if config_path:
        bridge_config = api.configure(config_path)
        if not bridge_config.pytest.auto_clear:
            lifecycle.disable_auto_clear()

    if config.getoption("no_bridge_auto_clear"):
        lifecycle.disable_auto_clear()

    install_auto_clear(config, create_client=bool(config_path))


def pytest_unconfigure(config):
    api.close_client()
