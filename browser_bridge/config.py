import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_FILE = "bridge_config.yaml"
CONFIG_ENV_VAR = "BROWSER_BRIDGE_CONFIG"


class ChannelConfig(BaseModel):
    name: str = "playwright-bridge"
    transport: Literal["zmq", "local"] = "zmq"
    frontend: str = "ipc:///tmp/playwright-bridge-in.sock"
    backend: str = "ipc:///tmp/playwright-bridge-out.sock"
    start_hub: bool = True
    ready_timeout: float = 10.0
    serializer: Literal["orjson", "msgpack"] = "orjson"


class ClientConfig(BaseModel):
    timeout: float = 30.0


class ServerConfig(BaseModel):
    browser_type: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = True
    url: Optional[str] = None
    context_options: Dict[str, Any] = Field(default_factory=dict)


class PytestConfig(BaseModel):
    auto_clear: bool = True


class BridgeConfig(BaseModel):
    channel: ChannelConfig = Field(default_factory=ChannelConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    pytest: PytestConfig = Field(default_factory=PytestConfig)
    config_path: Optional[str] = None


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    if "BROWSER_HEADLESS" in os.environ:
        config.setdefault("server", {})["headless"] = (
            os.environ["BROWSER_HEADLESS"].lower() == "true"
        )
    if "BRIDGE_CHANNEL" in os.environ:
        config.setdefault("channel", {})["name"] = os.environ["BRIDGE_CHANNEL"]
    if "BRIDGE_TIMEOUT" in os.environ:
        config.setdefault("client", {})["timeout"] = float(os.environ["BRIDGE_TIMEOUT"])
    return config


def config_loader(config_path: Optional[str] = None) -> BridgeConfig:
    """
    Load configuration from a YAML file with simple path resolution.

    An explicitly requested file (argument or environment variable) must exist;
    without one, ``bridge_config.yaml`` in the working directory is used when
    present and the built-in defaults otherwise.
    """
    # 1. Use provided path or environment variable
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR)

    if config_path is not None and not os.path.isfile(config_path):
        raise FileNotFoundError(
            f"Config file {config_path} not found. Create it or unset {CONFIG_ENV_VAR}."
        )

    # 2. Fall back to the working directory
    if config_path is None:
        candidate = Path.cwd() / DEFAULT_CONFIG_FILE
        if candidate.exists():
            config_path = str(candidate)

    raw: Dict[str, Any] = {}
    if config_path is not None:
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f) or {}

    raw = apply_env_overrides(raw)
    config = BridgeConfig(**raw)
    config.config_path = config_path
    return config
