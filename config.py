"""
Configuration management for the lexicon harvester.
"""

import os
import threading
from typing import Dict, Any, Optional, Callable, Tuple
from dataclasses import dataclass, field, asdict
from pathlib import Path
import json
import logging
from jsonschema import validate, ValidationError as SchemaValidationError

from lexicon_harvester.pipeline.models import PipelineConfig
from lexicon_harvester.utils.errors import ConfigurationError


@dataclass
class DatasetConfig:
    """Input and output dataset settings."""
    input_path: str = "vocabulary.csv"
    output_path: str = "translated-full.csv"
    key_column: str = "simplified_chinese"
    encoding: str = "utf-8"


@dataclass
class BrowserConfig:
    """Headless browser settings."""
    headless: bool = True
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    viewport_width: int = 1366
    viewport_height: int = 768
    locale: str = "vi-VN"
    accept_language: str = "vi-VN,vi;q=0.9,en;q=0.8,zh;q=0.7"
    page_timeout_ms: int = 30000
    block_heavy_resources: bool = True


@dataclass
class SystemConfig:
    """Main system configuration."""
    dataset: DatasetConfig = field(default_factory=DatasetConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    extractor: str = "hanzii"
    extractor_options: Dict[str, Any] = field(default_factory=dict)
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_retention_days: int = 7


# Configuration schema for validation
CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "dataset": {
            "type": "object",
            "properties": {
                "input_path": {"type": "string", "minLength": 1},
                "output_path": {"type": "string", "minLength": 1},
                "key_column": {"type": "string", "minLength": 1},
                "encoding": {"type": "string", "minLength": 1}
            },
            "additionalProperties": False
        },
        "browser": {
            "type": "object",
            "properties": {
                "headless": {"type": "boolean"},
                "user_agent": {"type": "string", "minLength": 10},
                "viewport_width": {"type": "integer", "minimum": 320, "maximum": 7680},
                "viewport_height": {"type": "integer", "minimum": 240, "maximum": 4320},
                "locale": {"type": "string", "minLength": 2},
                "accept_language": {"type": "string", "minLength": 2},
                "page_timeout_ms": {"type": "integer", "minimum": 1000, "maximum": 600000},
                "block_heavy_resources": {"type": "boolean"}
            },
            "additionalProperties": False
        },
        "pipeline": {
            "type": "object",
            "properties": {
                "concurrency": {"type": "integer", "minimum": 1, "maximum": 32},
                "batch_size": {"type": "integer", "minimum": 1, "maximum": 1000},
                "max_retries": {"type": "integer", "minimum": 0, "maximum": 10},
                "retry_base_delay": {"type": "number", "minimum": 0, "maximum": 600.0},
                "item_delay": {"type": "number", "minimum": 0, "maximum": 600.0},
                "batch_delay": {"type": "number", "minimum": 0, "maximum": 3600.0},
                "failure_threshold": {"type": "integer", "minimum": 1, "maximum": 1000},
                "cooldown_seconds": {"type": "number", "minimum": 0, "maximum": 3600.0},
                "recycle_every_batches": {"type": "integer", "minimum": 0, "maximum": 10000},
                "attempt_timeout": {"type": ["number", "null"], "exclusiveMinimum": 0}
            },
            "additionalProperties": False
        },
        "extractor": {"type": "string", "minLength": 1},
        "extractor_options": {"type": "object"},
        "log_level": {
            "type": "string",
            "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        },
        "log_file": {"type": ["string", "null"]},
        "log_retention_days": {"type": "integer", "minimum": 1, "maximum": 3650}
    },
    "additionalProperties": False
}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# Environment variable -> (section, attribute, parser); section None means top level
ENV_OVERRIDES: Dict[str, Tuple[Optional[str], str, Callable[[str], Any]]] = {
    "HARVESTER_INPUT": ("dataset", "input_path", str),
    "HARVESTER_OUTPUT": ("dataset", "output_path", str),
    "HARVESTER_KEY_COLUMN": ("dataset", "key_column", str),
    "HARVESTER_ENCODING": ("dataset", "encoding", str),
    "HARVESTER_HEADLESS": ("browser", "headless", _parse_bool),
    "HARVESTER_USER_AGENT": ("browser", "user_agent", str),
    "HARVESTER_CONCURRENCY": ("pipeline", "concurrency", int),
    "HARVESTER_BATCH_SIZE": ("pipeline", "batch_size", int),
    "HARVESTER_MAX_RETRIES": ("pipeline", "max_retries", int),
    "HARVESTER_RETRY_DELAY": ("pipeline", "retry_base_delay", float),
    "HARVESTER_ITEM_DELAY": ("pipeline", "item_delay", float),
    "HARVESTER_BATCH_DELAY": ("pipeline", "batch_delay", float),
    "HARVESTER_FAILURE_THRESHOLD": ("pipeline", "failure_threshold", int),
    "HARVESTER_COOLDOWN": ("pipeline", "cooldown_seconds", float),
    "HARVESTER_RECYCLE_EVERY": ("pipeline", "recycle_every_batches", int),
    "HARVESTER_EXTRACTOR": (None, "extractor", str),
    "HARVESTER_LOG_LEVEL": (None, "log_level", str.upper),
    "HARVESTER_LOG_FILE": (None, "log_file", str),
}


class ConfigManager:
    """Configuration manager: JSON file with schema validation, environment overrides on top."""

    def __init__(self, config_path: str = "config.json", env_file: str = ".env"):
        self.config_path = Path(config_path)
        self.env_file = Path(env_file)
        self._config: Optional[SystemConfig] = None
        self._last_modified: Optional[float] = None
        self._lock = threading.RLock()

    def validate_config(self, config_data: Dict[str, Any]) -> None:
        """Validate configuration data against schema."""
        try:
            validate(instance=config_data, schema=CONFIG_SCHEMA)
        except SchemaValidationError as e:
            raise ConfigurationError(
                f"Configuration validation failed: {e.message}",
                {"path": list(e.absolute_path)}
            ) from e

    def load_config(self) -> SystemConfig:
        """Load configuration from file (if present) and environment variables."""
        with self._lock:
            if self.config_path.exists():
                current_modified = self.config_path.stat().st_mtime
                if self._config is None or current_modified != self._last_modified:
                    self._load_from_file()
                    self._last_modified = current_modified
            elif self._config is None:
                self._load_from_env()

            return self._config

    def _load_from_file(self) -> None:
        """Load configuration from JSON file with validation."""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logging.error(f"Failed to load config from file: {e}")
            raise ConfigurationError(
                f"Cannot read configuration file {self.config_path}",
                {"error": str(e)}
            ) from e

        self.validate_config(config_data)

        config = self._dict_to_config(config_data)
        self._apply_env_overrides(config)
        self._config = config

        logging.info(f"Configuration loaded and validated from {self.config_path}")

    def _load_from_env(self) -> None:
        """Load configuration from defaults plus environment variables."""
        config = SystemConfig()
        self._apply_env_overrides(config)
        self._config = config

        logging.info("Configuration loaded from environment variables")

    def _load_env_file(self) -> None:
        """Export KEY=VALUE lines of the .env file that are not already set."""
        if not self.env_file.exists():
            return

        try:
            with open(self.env_file, 'r', encoding='utf-8') as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        key, value = line.split('=', 1)
                        os.environ.setdefault(key.strip(), value.strip())
            logging.info(f"Loaded environment variables from {self.env_file}")
        except OSError as e:
            logging.warning(f"Failed to load {self.env_file}: {e}")

    def _apply_env_overrides(self, config: SystemConfig) -> None:
        """Override configuration with HARVESTER_* environment variables."""
        self._load_env_file()

        for env_name, (section, attribute, parser) in ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if raw is None or raw == "":
                continue

            try:
                value = parser(raw)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid value for {env_name}",
                    {"value": raw, "error": str(e)}
                ) from e

            target = getattr(config, section) if section else config
            setattr(target, attribute, value)

        # Overrides bypass the dataclass constructor
        config.pipeline.validate()

    def _dict_to_config(self, data: Dict[str, Any]) -> SystemConfig:
        """Convert dictionary to SystemConfig object."""
        config = SystemConfig()

        if "dataset" in data:
            config.dataset = DatasetConfig(**data["dataset"])

        if "browser" in data:
            config.browser = BrowserConfig(**data["browser"])

        if "pipeline" in data:
            config.pipeline = PipelineConfig(**data["pipeline"])

        config.extractor = data.get("extractor", config.extractor)
        config.extractor_options = dict(data.get("extractor_options", {}))
        config.log_level = data.get("log_level", config.log_level)
        config.log_file = data.get("log_file", config.log_file)
        config.log_retention_days = data.get("log_retention_days", config.log_retention_days)

        return config

    def export_config(self) -> Dict[str, Any]:
        """Export current configuration as dictionary."""
        with self._lock:
            if not self._config:
                return {}

            return {
                "dataset": asdict(self._config.dataset),
                "browser": asdict(self._config.browser),
                "pipeline": asdict(self._config.pipeline),
                "extractor": self._config.extractor,
                "extractor_options": dict(self._config.extractor_options),
                "log_level": self._config.log_level,
                "log_file": self._config.log_file,
                "log_retention_days": self._config.log_retention_days
            }

    def save_config(self, config_path: Optional[str] = None) -> None:
        """Save current configuration to file."""
        with self._lock:
            if not self._config:
                raise ConfigurationError("No configuration loaded to save")

            save_path = Path(config_path) if config_path else self.config_path
            config_dict = self.export_config()

            # Validate before saving
            self.validate_config(config_dict)

            with open(save_path, 'w', encoding='utf-8') as f:
                json.dump(config_dict, f, indent=2, ensure_ascii=False)

            logging.info(f"Configuration saved to {save_path}")


# Global config manager instance
config_manager = ConfigManager()


def get_config(config_path: Optional[str] = None) -> SystemConfig:
    """
    Get the current system configuration.

    Args:
        config_path: Alternative config file; replaces the global manager
    """
    global config_manager
    if config_path and Path(config_path) != config_manager.config_path:
        config_manager = ConfigManager(config_path)
    return config_manager.load_config()


def reload_config() -> SystemConfig:
    """Force reload configuration and return updated config."""
    config_manager._config = None
    config_manager._last_modified = None
    return config_manager.load_config()
