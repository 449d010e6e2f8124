import pytest
import yaml

from browser_bridge.config import CONFIG_ENV_VAR, config_loader

ENV_VARS = (CONFIG_ENV_VAR, "BROWSER_HEADLESS", "BRIDGE_CHANNEL", "BRIDGE_TIMEOUT")


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def write_config(path, data):
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_defaults_without_file(clean_env):
    config = config_loader()
    assert config.config_path is None
    assert config.channel.name == "playwright-bridge"
    assert config.channel.transport == "zmq"
    assert config.client.timeout == 30.0
    assert config.server.headless is True
    assert config.pytest.auto_clear is True


def test_explicit_path(clean_env, tmp_path):
    path = write_config(
        tmp_path / "custom.yaml",
        {"channel": {"name": "suite", "transport": "local"}, "client": {"timeout": 5}},
    )
    config = config_loader(path)
    assert config.config_path == path
    assert config.channel.name == "suite"
    assert config.channel.transport == "local"
    assert config.client.timeout == 5.0


def test_env_var_path(clean_env, tmp_path):
    path = write_config(tmp_path / "from_env.yaml", {"server": {"browser_type": "firefox"}})
    clean_env.setenv(CONFIG_ENV_VAR, path)
    assert config_loader().server.browser_type == "firefox"


def test_default_file_in_working_directory(clean_env, tmp_path):
    write_config(tmp_path / "bridge_config.yaml", {"pytest": {"auto_clear": False}})
    config = config_loader()
    assert config.pytest.auto_clear is False
    assert config.config_path.endswith("bridge_config.yaml")


def test_missing_explicit_path_raises(clean_env, tmp_path):
    with pytest.raises(FileNotFoundError):
        config_loader(str(tmp_path / "nope.yaml"))


def test_empty_file_uses_defaults(clean_env, tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert config_loader(str(path)).channel.name == "playwright-bridge"


def test_env_overrides(clean_env, tmp_path):
    path = write_config(tmp_path / "c.yaml", {"server": {"headless": True}})
    clean_env.setenv("BROWSER_HEADLESS", "false")
    clean_env.setenv("BRIDGE_CHANNEL", "override")
    clean_env.setenv("BRIDGE_TIMEOUT", "2.5")
    config = config_loader(path)
    assert config.server.headless is False
    assert config.channel.name == "override"
    assert config.client.timeout == 2.5


def test_invalid_values_are_rejected(clean_env, tmp_path):
    path = write_config(tmp_path / "bad.yaml", {"channel": {"transport": "carrier-pigeon"}})
    with pytest.raises(ValueError):
        config_loader(path)
