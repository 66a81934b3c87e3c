"""
Configuration management module for the Qwen MCP gateway.

This module provides optional YAML-based configuration with environment
variable overrides (read after loading a ``.env`` file), validation, and type
safety using Pydantic models.

Example usage:
    >>> config_manager = ConfigManager()
    >>> config = config_manager.load_config("config.yaml")
    >>> print(config.qwen.default_model)

Environment variable overrides:
    - PORT: Overrides server.port
    - HOST: Overrides server.host
    - DEFAULT_MODEL: Overrides qwen.default_model
    - QWEN_API_KEY: Overrides qwen.api_key
    - QWEN_ENDPOINT: Overrides qwen.endpoint
    - QWEN_TIMEOUT_SECONDS: Overrides qwen.timeout_seconds
    - LOG_LEVEL: Overrides logging.level
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from .exceptions import ConfigurationError


# Constants for validation and defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 4000
DEFAULT_MODEL = "qwen-max"
DEFAULT_ENDPOINT = "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation"
DEFAULT_TIMEOUT_SECONDS = 60.0

logger = logging.getLogger(__name__)


class ServerConfig(BaseModel):
    """Server configuration section.

    Attributes:
        host (str): Address the HTTP server binds to. Defaults to all interfaces.
        port (int): Listen port, between 1 and 65535. Defaults to 4000.
    """
    model_config = ConfigDict(validate_assignment=True)

    host: str = Field(default=DEFAULT_HOST, description="Server bind address")
    port: int = Field(default=DEFAULT_PORT, description="Server port number", ge=1, le=65535)


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level (str): DEBUG, INFO, WARNING, ERROR or CRITICAL. Defaults to 'INFO'.
        format_json (bool): Emit JSON lines instead of plain text. Defaults to True.
        include_source_location (bool): Add file:line and function to JSON records.
            Defaults to False.
    """
    level: str = Field(default="INFO", description="Logging level")
    format_json: bool = Field(default=True, description="Use JSON log formatting")
    include_source_location: bool = Field(default=False, description="Log source file, line and function")


class QwenConfig(BaseModel):
    """Qwen Cloud (DashScope) connection section.

    Attributes:
        endpoint (str): Text-generation endpoint URL.
        default_model (str): Model used when a request does not name one.
        api_key (str): Process-wide default API key. May be empty, in which
                       case every ``model/generate`` call must carry ``apiKey``.
                       Keep this secure and never log it.
        timeout_seconds (float): Transport timeout for one upstream call.
    """
    endpoint: str = Field(default=DEFAULT_ENDPOINT, description="Qwen Cloud generation endpoint")
    default_model: str = Field(default=DEFAULT_MODEL, description="Default model name")
    api_key: str = Field(default="", description="Default Qwen Cloud API key")
    timeout_seconds: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS,
        description="Upstream request timeout in seconds",
        gt=0
    )


class McpConfig(BaseModel):
    """MCP server metadata, reported by the health endpoint."""
    name: str = Field(default="qwen-mcp-gateway", description="MCP server name identifier")
    version: str = Field(default="0.1.0", description="Server version")


class Config(BaseModel):
    """Main configuration container.

    Example:
        >>> config = Config(qwen={"api_key": "sk-..."})
        >>> config.server.port = 8080
    """
    model_config = ConfigDict(validate_assignment=True)

    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    qwen: QwenConfig = Field(default_factory=QwenConfig)
    mcp: McpConfig = Field(default_factory=McpConfig)


class ConfigManager:
    """Configuration manager for loading configuration.

    Example:
        >>> manager = ConfigManager()
        >>> config = manager.load_config()
        >>> print(config.server.port)
    """

    def __init__(self, load_env_file: bool = True) -> None:
        self.load_env_file = load_env_file
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def load_config(self, config_path: Optional[str] = None) -> Config:
        """
        Load configuration from an optional YAML file with environment overrides.

        Args:
            config_path: Path to a YAML configuration file, or None to start
                         from defaults

        Returns:
            Config: Populated configuration object

        Raises:
            FileNotFoundError: If config_path is given but doesn't exist
            ConfigurationError: If YAML parsing or validation fails
        """
        if self.load_env_file:
            load_dotenv(find_dotenv(usecwd=True))

        yaml_data: Dict[str, Any] = {}
        if config_path is not None:
            yaml_data = self._read_yaml(config_path)

        self.logger.debug("Applying environment variable overrides")
        yaml_data = self._apply_env_overrides(yaml_data)

        try:
            config = Config(**yaml_data)
        except PydanticValidationError as e:
            self.logger.error(f"Configuration validation failed: {e}")
            raise ConfigurationError(
                f"Configuration validation failed: {e}",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

        self.logger.info("Configuration loaded and validated successfully")
        return config

    def _read_yaml(self, config_path: str) -> Dict[str, Any]:
        self.logger.info(f"Loading configuration from: {config_path}")

        config_file = Path(config_path)
        if not config_file.exists():
            self.logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(
                f"Configuration file not found: {config_path}\n"
                f"Please ensure the file exists and is readable."
            )

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self.logger.error(f"Invalid YAML format in {config_path}: {e}")
            raise ConfigurationError(
                f"Invalid YAML format in {config_path}: {e}\n"
                f"Please check the YAML syntax and ensure proper indentation."
            ) from e

        if yaml_data is None:
            self.logger.warning("YAML file is empty, using default configuration")
            return {}
        if not isinstance(yaml_data, dict):
            raise ConfigurationError(f"Configuration root in {config_path} must be a mapping")

        self.logger.debug(f"Loaded YAML sections: {list(yaml_data.keys())}")
        return yaml_data

    def _apply_env_overrides(self, yaml_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to YAML data."""
        for section in ('server', 'logging', 'qwen'):
            if not isinstance(yaml_data.get(section), dict):
                yaml_data[section] = {}

        if 'HOST' in os.environ:
            yaml_data['server']['host'] = os.environ['HOST']
        if 'PORT' in os.environ:
            self._set_numeric(yaml_data['server'], 'port', 'PORT', int)

        if 'DEFAULT_MODEL' in os.environ:
            yaml_data['qwen']['default_model'] = os.environ['DEFAULT_MODEL']
        if 'QWEN_API_KEY' in os.environ:
            yaml_data['qwen']['api_key'] = os.environ['QWEN_API_KEY']
        if 'QWEN_ENDPOINT' in os.environ:
            yaml_data['qwen']['endpoint'] = os.environ['QWEN_ENDPOINT']
        if 'QWEN_TIMEOUT_SECONDS' in os.environ:
            self._set_numeric(yaml_data['qwen'], 'timeout_seconds', 'QWEN_TIMEOUT_SECONDS', float)

        if 'LOG_LEVEL' in os.environ:
            yaml_data['logging']['level'] = os.environ['LOG_LEVEL']

        return yaml_data

    def _set_numeric(self, section: Dict[str, Any], key: str, env_name: str, cast) -> None:
        raw = os.environ[env_name]
        try:
            section[key] = cast(raw)
        except ValueError:
            # Keep original value if conversion fails
            self.logger.warning(f"Ignoring non-numeric {env_name}={raw!r}")
