"""Configuration management for the fabric poller."""

import os
import re
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


class ControllerConfig(BaseModel):
    """Configuration for a single controller."""
    name: str = Field(description="Controller identifier, also used for output file names")
    address: str = Field(description="Network address (IP or host[:port])")
    hostname: Optional[str] = Field(default=None, description="Skip reverse resolution and use this name")

    @field_validator('address')
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("controller address must not be empty")
        return v.strip()


class PollerConfig(BaseModel):
    """Main poller configuration."""

    controllers: List[ControllerConfig] = Field(default_factory=list, description="Controllers to poll")

    # Controller access
    scheme: str = Field(default="https", description="Connection scheme for controllers")
    verify_ssl: bool = Field(default=False, description="Verify controller TLS certificates")
    apic_username: str = Field(default="admin", description="Controller login user")
    apic_password: str = Field(default="", description="Controller login password")

    # Concurrency and timeouts
    max_concurrent_requests: int = Field(default=10, description="Statistics requests in flight per controller")
    connect_timeout: Optional[float] = Field(
        default=10.0,
        description="Connect timeout in seconds for HTTP and event connections, None waits forever"
    )
    request_timeout: Optional[float] = Field(
        default=30.0,
        description="HTTP read timeout in seconds, None waits forever"
    )
    total_timeout: Optional[float] = Field(default=None, description="Bound on the whole run, None for no bound")

    # Collection
    capacity_class: str = Field(default="eqptcapacityPolUsage5min", description="Capacity class to query")
    fault_filter: str = Field(
        default='ne(faultInst.severity,"cleared")',
        description="query-target-filter applied to the fault query"
    )

    # Output
    output_directory: str = Field(default="out", description="Base directory for capacity files")
    usage_deny_list: List[str] = Field(
        default_factory=list,
        description="Regular expressions; interfaces whose usage matches any are not written"
    )

    # Monitoring system node lookup
    monitoring_scheme: str = Field(default="https", description="Monitoring system scheme")
    monitoring_host: str = Field(default="localhost:8980", description="Monitoring system host[:port]")
    monitoring_username: str = Field(default="admin", description="Monitoring system user")
    monitoring_password: str = Field(default="", description="Monitoring system password")
    monitoring_node_query_path: str = Field(default="/opennms/rest/nodes", description="Node query path")
    monitoring_node_query_param: str = Field(default="label", description="Query parameter carrying the controller name")

    # Event forwarding
    forward_events: bool = Field(default=True, description="Forward fault events")
    event_host: str = Field(default="127.0.0.1", description="Event receiver host")
    event_port: int = Field(default=5817, description="Event receiver TCP port")
    event_uei: str = Field(default="uei.opennms.org/vendor/cisco/aci/fault", description="Event UEI")
    event_source: str = Field(default="acipoll", description="Event source name")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator('scheme', 'monitoring_scheme')
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        if v not in ("http", "https"):
            raise ValueError(f"scheme must be http or https, got: {v}")
        return v

    @field_validator('max_concurrent_requests')
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"max_concurrent_requests must be positive, got: {v}")
        return v

    @field_validator('connect_timeout', 'request_timeout', 'total_timeout')
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError(f"timeout must be positive or null, got: {v}")
        return v

    @field_validator('event_port')
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError(f"event_port out of range: {v}")
        return v

    @field_validator('usage_deny_list')
    @classmethod
    def validate_deny_list(cls, v: List[str]) -> List[str]:
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid usage_deny_list pattern {pattern!r}: {e}")
        return v

    @property
    def interfaces_directory(self) -> Path:
        return Path(self.output_directory) / "capacity" / "interfaces"

    @property
    def policer_directory(self) -> Path:
        return Path(self.output_directory) / "capacity" / "policer-cam"

    @classmethod
    def from_env(cls) -> "PollerConfig":
        """Create configuration with environment variable overrides."""
        config = cls()

        env_mappings = {
            "ACIPOLL_CONCURRENCY": "max_concurrent_requests",
            "ACIPOLL_OUTPUT_DIR": "output_directory",
            "ACIPOLL_LOG_LEVEL": "log_level",
            "ACIPOLL_CONNECT_TIMEOUT": "connect_timeout",
            "ACIPOLL_REQUEST_TIMEOUT": "request_timeout",
            "ACIPOLL_APIC_USERNAME": "apic_username",
            "ACIPOLL_APIC_PASSWORD": "apic_password",
            "ACIPOLL_MONITORING_USERNAME": "monitoring_username",
            "ACIPOLL_MONITORING_PASSWORD": "monitoring_password",
            "ACIPOLL_EVENT_HOST": "event_host",
            "ACIPOLL_EVENT_PORT": "event_port",
        }

        int_fields = {"max_concurrent_requests", "event_port"}
        float_fields = {"connect_timeout", "request_timeout"}

        for env_var, field_name in env_mappings.items():
            if env_var in os.environ:
                value = os.environ[env_var]
                if field_name in int_fields:
                    setattr(config, field_name, int(value))
                elif field_name in float_fields:
                    setattr(config, field_name, float(value))
                else:
                    setattr(config, field_name, value)

        return config


class ConfigManager:
    """Manages configuration loading with override precedence."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = config_file or Path("config/config.yaml")
        self._config: Optional[PollerConfig] = None

    def load_config(self, cli_overrides: Optional[Dict] = None) -> PollerConfig:
        """
        Load configuration with override precedence: CLI > ENV > YAML.

        Args:
            cli_overrides: Optional dictionary of CLI flag overrides. A key
                present with a None value is ignored, except for timeout
                keys listed in ``cli_overrides["_explicit_none"]``.

        Returns:
            Fully merged PollerConfig instance

        Raises:
            ValueError: If configuration validation fails
        """
        config_dict = {}

        if self.config_file.exists():
            with open(self.config_file, 'r') as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    if 'controllers' in yaml_config:
                        yaml_config['controllers'] = [
                            ControllerConfig(**c) if isinstance(c, dict) else c
                            for c in yaml_config['controllers']
                        ]
                    config_dict.update(yaml_config)

        base_config = PollerConfig(**config_dict)

        env_config = PollerConfig.from_env()

        merged_dict = base_config.model_dump()
        env_dict = env_config.model_dump()

        # Only override with env values that differ from defaults
        default_dict = PollerConfig().model_dump()
        for key, value in env_dict.items():
            if value != default_dict[key]:
                merged_dict[key] = value

        if cli_overrides:
            explicit_none = set(cli_overrides.pop("_explicit_none", ()))
            for key, value in cli_overrides.items():
                if value is not None or key in explicit_none:
                    merged_dict[key] = value

        self._config = PollerConfig(**merged_dict)
        return self._config

    @property
    def config(self) -> PollerConfig:
        """Get the loaded configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config
