"""Unit tests for configuration management."""

import os
import tempfile
from pathlib import Path

import pytest
import yaml

from acipoll.models.config import ConfigManager, ControllerConfig, PollerConfig


def test_poller_config_defaults():
    """Test that PollerConfig has correct default values."""
    config = PollerConfig()

    assert config.controllers == []
    assert config.scheme == "https"
    assert config.max_concurrent_requests == 10

    # Timeouts
    assert config.connect_timeout == 10.0
    assert config.request_timeout == 30.0
    assert config.total_timeout is None

    # Collection
    assert config.capacity_class == "eqptcapacityPolUsage5min"
    assert config.fault_filter == 'ne(faultInst.severity,"cleared")'

    # Output
    assert config.output_directory == "out"
    assert config.usage_deny_list == []

    # Events
    assert config.forward_events is True
    assert config.event_port == 5817


def test_output_directories():
    config = PollerConfig(output_directory="custom_out")

    assert config.interfaces_directory == Path("custom_out/capacity/interfaces")
    assert config.policer_directory == Path("custom_out/capacity/policer-cam")


def test_controller_config_validation():
    controller = ControllerConfig(name="apic1", address=" 10.0.0.1 ")
    assert controller.address == "10.0.0.1"
    assert controller.hostname is None

    with pytest.raises(ValueError, match="must not be empty"):
        ControllerConfig(name="bad", address="  ")


def test_poller_config_validators():
    """Test PollerConfig field validators."""
    with pytest.raises(ValueError, match="max_concurrent_requests must be positive"):
        PollerConfig(max_concurrent_requests=0)

    with pytest.raises(ValueError, match="timeout must be positive or null"):
        PollerConfig(request_timeout=0.0)

    with pytest.raises(ValueError, match="timeout must be positive or null"):
        PollerConfig(total_timeout=-10.0)

    with pytest.raises(ValueError, match="timeout must be positive or null"):
        PollerConfig(connect_timeout=0.0)

    with pytest.raises(ValueError, match="scheme must be http or https"):
        PollerConfig(scheme="ftp")

    with pytest.raises(ValueError, match="event_port out of range"):
        PollerConfig(event_port=70000)

    with pytest.raises(ValueError, match="invalid usage_deny_list pattern"):
        PollerConfig(usage_deny_list=["(unclosed"])


def test_request_timeout_may_be_null():
    assert PollerConfig(request_timeout=None).request_timeout is None


def test_connect_timeout_may_be_null():
    assert PollerConfig(connect_timeout=None).connect_timeout is None


def test_config_from_env():
    """Test loading configuration from environment variables."""
    env_vars = {
        "ACIPOLL_CONCURRENCY": "4",
        "ACIPOLL_OUTPUT_DIR": "/tmp/acipoll",
        "ACIPOLL_LOG_LEVEL": "DEBUG",
        "ACIPOLL_REQUEST_TIMEOUT": "15.0",
        "ACIPOLL_EVENT_PORT": "15817",
    }

    for key, value in env_vars.items():
        os.environ[key] = value

    try:
        config = PollerConfig.from_env()

        assert config.max_concurrent_requests == 4
        assert config.output_directory == "/tmp/acipoll"
        assert config.log_level == "DEBUG"
        assert config.request_timeout == 15.0
        assert config.event_port == 15817
    finally:
        for key in env_vars:
            os.environ.pop(key, None)


def test_config_manager_loads_yaml():
    """Test ConfigManager loads controllers and settings from YAML."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_file = Path(tmpdir) / "test_config.yaml"

        test_config = {
            "max_concurrent_requests": 6,
            "request_timeout": None,
            "usage_deny_list": ["^infra$"],
            "controllers": [
                {"name": "apic1", "address": "10.0.0.1"},
                {"name": "apic2", "address": "10.0.0.2", "hostname": "apic2.example.net"},
            ],
        }

        with open(config_file, 'w') as f:
            yaml.dump(test_config, f)

        config = ConfigManager(config_file).load_config()

        assert config.max_concurrent_requests == 6
        assert config.request_timeout is None
        assert config.usage_deny_list == ["^infra$"]
        assert [c.name for c in config.controllers] == ["apic1", "apic2"]
        assert config.controllers[1].hostname == "apic2.example.net"


def test_config_manager_env_overrides_yaml():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_file = Path(tmpdir) / "test_config.yaml"
        with open(config_file, 'w') as f:
            yaml.dump({"max_concurrent_requests": 5, "output_directory": "yaml_out"}, f)

        os.environ["ACIPOLL_CONCURRENCY"] = "15"

        try:
            config = ConfigManager(config_file).load_config()

            # ENV should override YAML
            assert config.max_concurrent_requests == 15
            # YAML value should be preserved
            assert config.output_directory == "yaml_out"
        finally:
            os.environ.pop("ACIPOLL_CONCURRENCY", None)


def test_config_manager_cli_overrides_all():
    """Test that CLI overrides have highest precedence."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_file = Path(tmpdir) / "test_config.yaml"
        with open(config_file, 'w') as f:
            yaml.dump({"max_concurrent_requests": 5, "request_timeout": 20.0}, f)

        os.environ["ACIPOLL_CONCURRENCY"] = "10"

        try:
            cli_overrides = {
                "max_concurrent_requests": 2,
                "log_level": None,  # Should be ignored
            }

            config = ConfigManager(config_file).load_config(cli_overrides)

            assert config.max_concurrent_requests == 2
            assert config.request_timeout == 20.0
            assert config.log_level == "INFO"
        finally:
            os.environ.pop("ACIPOLL_CONCURRENCY", None)


def test_cli_explicit_none_clears_timeout():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_file = Path(tmpdir) / "test_config.yaml"
        with open(config_file, 'w') as f:
            yaml.dump({"request_timeout": 20.0}, f)

        config = ConfigManager(config_file).load_config({
            "request_timeout": None,
            "_explicit_none": ["request_timeout"],
        })

        assert config.request_timeout is None


def test_config_manager_missing_yaml_uses_defaults():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = ConfigManager(Path(tmpdir) / "nonexistent.yaml")
        config = manager.load_config()

        assert config.max_concurrent_requests == 10
        assert config.controllers == []


def test_config_manager_property_caches_config():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_file = Path(tmpdir) / "test_config.yaml"
        with open(config_file, 'w') as f:
            yaml.dump({"max_concurrent_requests": 3}, f)

        manager = ConfigManager(config_file)

        config1 = manager.config
        config2 = manager.config

        assert config1 is config2
        assert config1.max_concurrent_requests == 3


def test_example_config_is_valid():
    config = ConfigManager(Path(__file__).parents[2] / "config" / "config.yaml").load_config()

    assert len(config.controllers) == 2
    assert config.event_port == 5817


def test_yaml_null_connect_timeout():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_file = Path(tmpdir) / "test_config.yaml"
        with open(config_file, 'w') as f:
            yaml.dump({"connect_timeout": None, "request_timeout": None}, f)

        config = ConfigManager(config_file).load_config()

        assert config.connect_timeout is None
        assert config.request_timeout is None


def test_cli_explicit_none_clears_both_timeouts():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_file = Path(tmpdir) / "test_config.yaml"
        with open(config_file, 'w') as f:
            yaml.dump({"connect_timeout": 5.0, "request_timeout": 20.0}, f)

        config = ConfigManager(config_file).load_config({
            "connect_timeout": None,
            "request_timeout": None,
            "_explicit_none": ["connect_timeout", "request_timeout"],
        })

        assert config.connect_timeout is None
        assert config.request_timeout is None
