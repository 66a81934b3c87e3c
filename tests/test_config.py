"""
Test cases for configuration management.

Covers defaults, YAML loading, environment variable overrides and error
reporting of ConfigManager.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from qwen_mcp_gateway.core.config import (
    DEFAULT_ENDPOINT,
    Config,
    ConfigManager,
    QwenConfig,
    ServerConfig,
)
from qwen_mcp_gateway.core.exceptions import ConfigurationError


@pytest.fixture
def manager() -> ConfigManager:
    return ConfigManager(load_env_file=False)


class TestConfigDefaults:
    """Test cases for configuration models."""

    def test_defaults_without_file(self, manager: ConfigManager):
        config = manager.load_config()

        assert config.server.host == "0.0.0.0"
        assert config.server.port == 4000
        assert config.qwen.default_model == "qwen-max"
        assert config.qwen.endpoint == DEFAULT_ENDPOINT
        assert config.qwen.api_key == ""
        assert config.qwen.timeout_seconds == 60.0
        assert config.logging.level == "INFO"
        assert config.logging.include_source_location is False
        assert config.mcp.name == "qwen-mcp-gateway"

    @pytest.mark.parametrize("port", [0, -1, 65536])
    def test_server_config_port_range(self, port):
        with pytest.raises(PydanticValidationError):
            ServerConfig(port=port)

    def test_timeout_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            QwenConfig(timeout_seconds=0)

    def test_assignment_is_validated(self):
        config = Config()
        with pytest.raises(PydanticValidationError):
            config.server.port = 70000


class TestYamlLoading:
    def test_loads_sections_from_yaml(self, manager: ConfigManager, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "server:\n"
            "  port: 8080\n"
            "qwen:\n"
            "  default_model: qwen-plus\n"
            "  timeout_seconds: 15\n"
            "logging:\n"
            "  level: DEBUG\n"
            "  format_json: false\n"
            "  include_source_location: true\n",
            encoding="utf-8",
        )

        config = manager.load_config(str(path))

        assert config.server.port == 8080
        assert config.server.host == "0.0.0.0"
        assert config.qwen.default_model == "qwen-plus"
        assert config.qwen.timeout_seconds == 15.0
        assert config.logging.level == "DEBUG"
        assert config.logging.format_json is False
        assert config.logging.include_source_location is True

    def test_empty_yaml_uses_defaults(self, manager: ConfigManager, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert manager.load_config(str(path)).server.port == 4000

    def test_missing_file_raises(self, manager: ConfigManager, tmp_path):
        with pytest.raises(FileNotFoundError) as excinfo:
            manager.load_config(str(tmp_path / "nope.yaml"))
        assert "Configuration file not found" in str(excinfo.value)

    def test_invalid_yaml_raises_configuration_error(self, manager: ConfigManager, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("server: [port: 1\n  - nope", encoding="utf-8")

        with pytest.raises(ConfigurationError) as excinfo:
            manager.load_config(str(path))
        assert "Invalid YAML format" in excinfo.value.message

    def test_non_mapping_root_rejected(self, manager: ConfigManager, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            manager.load_config(str(path))

    def test_invalid_values_raise_configuration_error(self, manager: ConfigManager, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("server:\n  port: 99999\n", encoding="utf-8")

        with pytest.raises(ConfigurationError) as excinfo:
            manager.load_config(str(path))
        assert excinfo.value.details["errors"][0]["loc"] == ("server", "port")


class TestEnvironmentOverrides:
    def test_env_overrides_defaults(self, manager: ConfigManager, monkeypatch):
        monkeypatch.setenv("PORT", "5005")
        monkeypatch.setenv("HOST", "127.0.0.1")
        monkeypatch.setenv("DEFAULT_MODEL", "qwen-turbo")
        monkeypatch.setenv("QWEN_API_KEY", "sk-env")
        monkeypatch.setenv("QWEN_ENDPOINT", "http://localhost:9999/gen")
        monkeypatch.setenv("QWEN_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("LOG_LEVEL", "WARNING")

        config = manager.load_config()

        assert config.server.port == 5005
        assert config.server.host == "127.0.0.1"
        assert config.qwen.default_model == "qwen-turbo"
        assert config.qwen.api_key == "sk-env"
        assert config.qwen.endpoint == "http://localhost:9999/gen"
        assert config.qwen.timeout_seconds == 2.5
        assert config.logging.level == "WARNING"

    def test_env_wins_over_yaml(self, manager: ConfigManager, monkeypatch, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("server:\n  port: 8080\nqwen:\n  api_key: from-file\n", encoding="utf-8")
        monkeypatch.setenv("PORT", "9090")
        monkeypatch.setenv("QWEN_API_KEY", "from-env")

        config = manager.load_config(str(path))

        assert config.server.port == 9090
        assert config.qwen.api_key == "from-env"

    def test_non_numeric_port_is_ignored(self, manager: ConfigManager, monkeypatch):
        monkeypatch.setenv("PORT", "http")

        assert manager.load_config().server.port == 4000

    def test_out_of_range_env_port_is_rejected(self, manager: ConfigManager, monkeypatch):
        monkeypatch.setenv("PORT", "0")

        with pytest.raises(ConfigurationError):
            manager.load_config()

    def test_dotenv_file_is_loaded(self, monkeypatch, tmp_path):
        (tmp_path / ".env").write_text("QWEN_API_KEY=sk-dotenv\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        # Register the variable so load_dotenv's write is undone after the test
        monkeypatch.setenv("QWEN_API_KEY", "placeholder")
        monkeypatch.delenv("QWEN_API_KEY")

        config = ConfigManager().load_config()

        assert config.qwen.api_key == "sk-dotenv"
