"""
Configuration Manager: YAML loading, environment credentials, Pydantic validation.
"""

import hashlib
import json
import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from martingrid.api.exceptions import ConfigurationError
from martingrid.config.schemas import StrategyConfig
from martingrid.utils.logger import LoggerMixin

API_KEY_ENV = "EXCHANGE_API_KEY"
API_SECRET_ENV = "EXCHANGE_API_SECRET"


class ConfigManager(LoggerMixin):
    """
    Loads a strategy configuration file once, before the engine starts.

    Credentials in the ``exchange`` section may be omitted from the file and
    supplied through EXCHANGE_API_KEY / EXCHANGE_API_SECRET instead; values
    written as ``${VAR}`` are expanded from the environment as well.
    Every failure surfaces as ConfigurationError.
    """

    def __init__(self, config_path: Path, environ: dict[str, str] | None = None) -> None:
        self.config_path = Path(config_path)
        self._environ = environ if environ is not None else dict(os.environ)
        self._config: StrategyConfig | None = None
        self._config_hash: str | None = None

    @property
    def config(self) -> StrategyConfig | None:
        return self._config

    @property
    def config_hash(self) -> str | None:
        return self._config_hash

    def load(self) -> StrategyConfig:
        """
        Read, expand and validate the configuration file.

        Returns:
            Validated StrategyConfig

        Raises:
            ConfigurationError: file missing, unreadable, not YAML, or invalid
        """
        if not self.config_path.exists():
            raise ConfigurationError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            self.logger.error("config_parse_failed", path=str(self.config_path), error=str(e))
            raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigurationError(f"Top level of {self.config_path} must be a mapping")

        raw = self._expand(raw)
        self._apply_env_credentials(raw)

        try:
            config = StrategyConfig.model_validate(raw)
        except ValidationError as e:
            self.logger.error("config_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        self._config = config
        self._config_hash = hashlib.sha256(
            json.dumps(raw, sort_keys=True, default=str).encode()
        ).hexdigest()[:16]

        for warning in config.soft_warnings():
            self.logger.warning("config_warning", detail=warning)

        self.logger.info(
            "config_loaded",
            path=str(self.config_path),
            version_hash=self._config_hash,
            symbols=len(config.portfolio.symbol_universe),
            long_enabled=config.long.enabled,
            short_enabled=config.short.enabled,
        )
        return config

    # -------------------------------------------------------------------------

    def _expand(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: self._expand(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._expand(v) for v in value]
        if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            name = value[2:-1]
            if name not in self._environ:
                raise ConfigurationError(f"Environment variable {name} is not set")
            return self._environ[name]
        return value

    def _apply_env_credentials(self, raw: dict[str, Any]) -> None:
        exchange = raw.setdefault("exchange", {})
        if not isinstance(exchange, dict):
            raise ConfigurationError("exchange section must be a mapping")
        if not exchange.get("api_key") and self._environ.get(API_KEY_ENV):
            exchange["api_key"] = self._environ[API_KEY_ENV]
        if not exchange.get("api_secret") and self._environ.get(API_SECRET_ENV):
            exchange["api_secret"] = self._environ[API_SECRET_ENV]
