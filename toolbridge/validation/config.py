"""
Toolbridge Configuration - typed settings for the executor, permission
rules, MCP servers and logging, read from layered YAML files.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from toolbridge.errors import ConfigError
from toolbridge.tools.permissions import PermissionConfig

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ExecutorConfig(BaseModel):
    """Configuration for the tool executor. Timeouts are in seconds."""

    default_timeout: float = Field(default=30.0, gt=0)
    shell_timeout: float = Field(default=120.0, gt=0)
    enable_logging: bool = True


class MCPServerConfig(BaseModel):
    """Configuration for a single MCP server."""

    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    cwd: Optional[str] = None
    prefix: Optional[str] = None
    enabled: bool = True


class MCPConfig(BaseModel):
    """Configuration for bridging MCP server tools into the registry."""

    enabled: bool = True
    tool_prefix: str = "mcp_"
    timeout: float = Field(default=30.0, gt=0)
    servers: Dict[str, MCPServerConfig] = Field(default_factory=dict)

    def enabled_servers(self) -> Dict[str, MCPServerConfig]:
        if not self.enabled:
            return {}
        return {name: server for name, server in self.servers.items() if server.enabled}

    def prefix_for(self, server_name: str) -> str:
        server = self.servers.get(server_name)
        if server is not None and server.prefix is not None:
            return server.prefix
        return self.tool_prefix


class LoggingConfig(BaseModel):
    level: str = "WARNING"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level {value!r}, expected one of {', '.join(LOG_LEVELS)}")
        return level


class ToolbridgeConfig(BaseModel):
    """Complete toolbridge configuration schema."""

    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    permissions: PermissionConfig = Field(default_factory=PermissionConfig)
    mcp: MCPConfig = Field(default_factory=MCPConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class Config:
    """
    Layered toolbridge settings.

    Raw mappings from ``~/.toolbridge/config.yaml`` and the nearest project
    ``.toolbridge/config.yaml`` are kept apart so ``set``/``save`` can write
    back to the right file; ``merged`` validates the combination, with
    project values overriding global ones key by key.

    Example:
        >>> config = Config.load()
        >>> config.merged.executor.default_timeout
        30.0
        >>> config.set("executor.shell_timeout", 300, global_=True)
        >>> config.save()
    """

    GLOBAL_CONFIG_DIR = Path.home() / ".toolbridge"
    LOCAL_CONFIG_DIR = Path(".toolbridge")

    def __init__(
        self,
        global_config: Optional[Dict[str, Any]] = None,
        local_config: Optional[Dict[str, Any]] = None,
        local_path: Optional[Path] = None,
    ):
        """
        Wrap already-loaded configuration mappings.

        Args:
            global_config: Global configuration dictionary.
            local_config: Local (project) configuration dictionary.
            local_path: Where the local configuration was loaded from, if anywhere.
        """
        self._global_config = global_config or {}
        self._local_config = local_config or {}
        self._local_path = local_path
        self._merged: Optional[ToolbridgeConfig] = None

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """
        Read the global file and the project (or explicit) file.

        Args:
            path: Explicit local config file, used instead of searching
                upward from the current directory.

        Returns:
            A Config over both mappings; missing files count as empty.
        """
        local_path = Path(path) if path is not None else cls._find_local_config()
        if local_path is not None and not local_path.exists():
            raise ConfigError(f"Config file not found: {local_path}")

        global_config = cls._load_yaml(cls.GLOBAL_CONFIG_DIR / "config.yaml")
        local_config = cls._load_yaml(local_path)

        return cls(global_config=global_config, local_config=local_config, local_path=local_path)

    @classmethod
    def _load_yaml(cls, path: Optional[Path]) -> Dict[str, Any]:
        """Load YAML file if it exists."""
        if path is None or not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Failed to load config from {path}: expected a mapping")
        return data

    @classmethod
    def _find_local_config(cls) -> Optional[Path]:
        """Find the local config file by walking up the directory tree."""
        current = Path.cwd()
        while current != current.parent:
            config_path = current / cls.LOCAL_CONFIG_DIR / "config.yaml"
            if config_path.exists():
                return config_path
            current = current.parent
        return None

    def get_merged_config(self) -> Dict[str, Any]:
        """Get the merged configuration as a dictionary."""
        return self._deep_merge(self._global_config.copy(), self._local_config)

    def get_global_config(self) -> Dict[str, Any]:
        return self._global_config

    def get_local_config(self) -> Dict[str, Any]:
        return self._local_config

    @property
    def merged(self) -> ToolbridgeConfig:
        """Get the validated merged configuration."""
        if self._merged is None:
            try:
                self._merged = ToolbridgeConfig(**self.get_merged_config())
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._merged

    def set(self, key_path: str, value: Any, global_: bool = False) -> None:
        """
        Set a value by dotted key path, e.g. ``mcp.servers.github.command``.

        Args:
            key_path: Dotted path into the configuration mapping.
            value: The value to store.
            global_: Whether to set globally or locally.
        """
        keys = [key for key in key_path.split(".") if key]
        if not keys:
            raise ConfigError("Empty configuration key")

        node = self._global_config if global_ else self._local_config
        for key in keys[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[keys[-1]] = value
        self._merged = None  # Reset cache

    def save(self) -> None:
        """Write the global file, and the local file when it has content."""
        self._write_yaml(self.GLOBAL_CONFIG_DIR / "config.yaml", self._global_config)

        if self._local_config:
            local_path = self._local_path or self.LOCAL_CONFIG_DIR / "config.yaml"
            self._write_yaml(local_path, self._local_config)
            self._local_path = local_path

    @staticmethod
    def _write_yaml(path: Path, data: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @classmethod
    def create_default_global(cls) -> Path:
        """
        Write the built-in defaults to ``~/.toolbridge/config.yaml``.

        An existing file is left untouched.

        Returns:
            Path of the global config file.
        """
        path = cls.GLOBAL_CONFIG_DIR / "config.yaml"
        if not path.exists():
            cls._write_yaml(path, ToolbridgeConfig().model_dump(mode="json"))
        return path
