"""Tests for ConfigManager"""

from decimal import Decimal
from pathlib import Path

import pytest

from martingrid.api.exceptions import ConfigurationError
from martingrid.config import ConfigManager
from martingrid.config.schemas import StrategyConfig

VALID_YAML = """
name: test_strategy
long:
  leverage: 5
  grid:
    max_levels: 4
    ddown_factor: "1.5"
portfolio:
  max_symbols: 2
  symbol_universe: [BTCUSDT, ETHUSDT, SOLUSDT]
exchange:
  name: binanceusdm
  api_key: file_key
  api_secret: file_secret
  testnet: true
logging:
  level: DEBUG
  log_to_file: false
"""


@pytest.fixture
def write_config(tmp_path: Path):
    def _write(content: str, name: str = "strategy.yaml") -> Path:
        path = tmp_path / name
        path.write_text(content)
        return path

    return _write


class TestConfigManager:
    """Test ConfigManager functionality"""

    def test_load_valid_config(self, write_config):
        """Test loading a valid configuration"""
        manager = ConfigManager(write_config(VALID_YAML), environ={})
        config = manager.load()

        assert isinstance(config, StrategyConfig)
        assert manager.config is config
        assert config.name == "test_strategy"
        assert config.long.leverage == 5
        assert config.long.grid.ddown_factor == Decimal("1.5")
        assert config.portfolio.symbol_universe == ["BTCUSDT", "ETHUSDT", "SOLUSDT"]
        assert config.exchange.api_key == "file_key"
        assert config.logging.level == "DEBUG"

    def test_config_before_load(self, write_config):
        manager = ConfigManager(write_config(VALID_YAML), environ={})
        assert manager.config is None
        assert manager.config_hash is None

    def test_load_nonexistent_file(self, tmp_path: Path):
        """Test loading a non-existent file"""
        manager = ConfigManager(tmp_path / "nonexistent.yaml", environ={})

        with pytest.raises(ConfigurationError, match="not found"):
            manager.load()

    def test_load_invalid_yaml(self, write_config):
        """Test loading invalid YAML"""
        manager = ConfigManager(write_config("{ invalid yaml content"), environ={})

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            manager.load()

    def test_top_level_must_be_mapping(self, write_config):
        manager = ConfigManager(write_config("- just\n- a list\n"), environ={})

        with pytest.raises(ConfigurationError, match="mapping"):
            manager.load()

    def test_load_invalid_schema(self, write_config):
        """Test loading YAML that fails validation"""
        content = VALID_YAML.replace("leverage: 5", "leverage: 500")
        manager = ConfigManager(write_config(content), environ={})

        with pytest.raises(ConfigurationError, match="validation failed"):
            manager.load()
        assert manager.config is None

    def test_missing_credentials(self, write_config):
        manager = ConfigManager(write_config("name: no_exchange\n"), environ={})

        with pytest.raises(ConfigurationError):
            manager.load()


class TestEnvironment:
    """Credentials and ${VAR} expansion"""

    def test_credentials_from_environment(self, write_config):
        content = "exchange:\n  name: bybit\n"
        manager = ConfigManager(
            write_config(content),
            environ={"EXCHANGE_API_KEY": "env_key", "EXCHANGE_API_SECRET": "env_secret"},
        )

        config = manager.load()

        assert config.exchange.api_key == "env_key"
        assert config.exchange.api_secret == "env_secret"
        assert config.exchange.name == "bybit"

    def test_file_credentials_take_precedence(self, write_config):
        manager = ConfigManager(
            write_config(VALID_YAML),
            environ={"EXCHANGE_API_KEY": "env_key", "EXCHANGE_API_SECRET": "env_secret"},
        )
        assert manager.load().exchange.api_key == "file_key"

    def test_variable_expansion(self, write_config):
        content = VALID_YAML.replace("api_secret: file_secret", "api_secret: ${MY_SECRET}")
        manager = ConfigManager(write_config(content), environ={"MY_SECRET": "expanded"})

        assert manager.load().exchange.api_secret == "expanded"

    def test_missing_variable(self, write_config):
        content = VALID_YAML.replace("api_secret: file_secret", "api_secret: ${MY_SECRET}")
        manager = ConfigManager(write_config(content), environ={})

        with pytest.raises(ConfigurationError, match="MY_SECRET"):
            manager.load()


class TestConfigVersioning:
    def test_hash_is_stable(self, write_config):
        """Test configuration version tracking"""
        path = write_config(VALID_YAML)
        first = ConfigManager(path, environ={})
        second = ConfigManager(path, environ={})
        first.load()
        second.load()

        assert isinstance(first.config_hash, str)
        assert len(first.config_hash) == 16
        assert first.config_hash == second.config_hash

    def test_hash_changes_with_content(self, write_config):
        a = ConfigManager(write_config(VALID_YAML, "a.yaml"), environ={})
        b = ConfigManager(
            write_config(VALID_YAML.replace("leverage: 5", "leverage: 6"), "b.yaml"), environ={}
        )
        a.load()
        b.load()

        assert a.config_hash != b.config_hash


class TestShippedConfig:
    def test_sample_config_loads(self):
        path = Path(__file__).parents[2] / "configs" / "strategy.yaml"
        manager = ConfigManager(
            path, environ={"EXCHANGE_API_KEY": "k", "EXCHANGE_API_SECRET": "s"}
        )

        config = manager.load()

        assert config.exchange.testnet
        assert config.soft_warnings() == []
        assert config.portfolio.symbol_universe == ["BTCUSDT", "ETHUSDT", "SOLUSDT"]
