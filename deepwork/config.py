"""Configuration management for Deep Work Insights.

Settings live in a YAML file and are loaded into dataclasses, one per
section. Missing keys fall back to dataclass defaults and unknown keys are
ignored, so old config files keep loading as settings are added.

Configuration Sections:
- storage: Location of the SQLite database
- generation: Ollama model, host, timeouts and retry policy
- insights: Aggregation and prompt tuning
- web: HTTP API server

Example:
    >>> from deepwork.config import ConfigManager
    >>> config_mgr = ConfigManager()
    >>> print(config_mgr.config.generation.timeout_seconds)
    60
    >>> config_mgr.update('generation', 'model', 'llama3.2:3b')
"""

import dataclasses
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class StorageConfig:
    """Database location.

    Attributes:
        data_dir: Directory holding the database (default: ~/deepwork-data)
        db_name: Database file name (default: deepwork.db)
    """
    data_dir: str = "~/deepwork-data"
    db_name: str = "deepwork.db"

    @property
    def db_path(self) -> Path:
        return Path(self.data_dir).expanduser() / self.db_name


@dataclass
class GenerationConfig:
    """LLM settings for insight text.

    Attributes:
        model: Ollama model name (default: gemma3:12b-it-qat)
        ollama_host: Ollama API URL (default: http://localhost:11434)
        timeout_seconds: Budget for one insight generation, retries included (default: 60)
        request_timeout_seconds: Timeout for a single HTTP request (default: 15)
        max_retries: Retries for timeouts, connection errors and 429/5xx (default: 2)
        retry_delay_seconds: Base backoff delay, doubled per retry (default: 1.0)
        min_request_interval_seconds: Minimum gap between request starts (default: 1.0)
        temperature: Sampling temperature (default: 0.7)
        max_tokens: Maximum generated tokens (default: 400)
    """
    model: str = "gemma3:12b-it-qat"
    ollama_host: str = "http://localhost:11434"
    timeout_seconds: float = 60.0
    # 3 attempts x 15s + 1s + 2s backoff stays inside timeout_seconds
    request_timeout_seconds: float = 15.0
    max_retries: int = 2
    retry_delay_seconds: float = 1.0
    min_request_interval_seconds: float = 1.0
    temperature: float = 0.7
    max_tokens: int = 400


@dataclass
class InsightsConfig:
    """Aggregation and prompt settings.

    Attributes:
        sample_descriptions: Session notes kept per summary (default: 5)
        description_threshold: Note density above which notes are quoted (default: 0.3)
        activity_window_days: Days covered by activity insights (default: 7)
        cache_retention_days: Age after which cached windows are purged (default: 180)
    """
    sample_descriptions: int = 5
    description_threshold: float = 0.3
    activity_window_days: int = 7
    cache_retention_days: int = 180


@dataclass
class WebConfig:
    """HTTP API server configuration.

    Attributes:
        host: Host address to bind to (default: 127.0.0.1)
        port: Port number (default: 55556)
    """
    host: str = "127.0.0.1"
    port: int = 55556


@dataclass
class Config:
    """Top-level configuration container."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    insights: InsightsConfig = field(default_factory=InsightsConfig)
    web: WebConfig = field(default_factory=WebConfig)


_SECTIONS = {
    'storage': StorageConfig,
    'generation': GenerationConfig,
    'insights': InsightsConfig,
    'web': WebConfig,
}


class ConfigManager:
    """Manages configuration loading, saving, and updates.

    Attributes:
        DEFAULT_PATH: Default configuration file location
        path: Actual configuration file path being used
        config: Current configuration object
    """

    DEFAULT_PATH = Path("~/.config/deepwork/config.yaml").expanduser()

    def __init__(self, path: Optional[Path] = None):
        """Initialize ConfigManager.

        Args:
            path: Custom config file path (uses DEFAULT_PATH if None)
        """
        self.path = Path(path).expanduser() if path else self.DEFAULT_PATH
        self.config = self._load()

    def _load(self) -> Config:
        """Load configuration from YAML file.

        Returns:
            Config object with loaded or default values. Invalid YAML
            yields the defaults.
        """
        if not self.path.exists():
            logger.info(f"No config file at {self.path}, using defaults")
            return Config()

        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {self.path}")
            return self._dict_to_config(data)
        except (yaml.YAMLError, OSError, TypeError) as e:
            logger.warning(f"Failed to load config from {self.path}: {e}")
            logger.info("Using default configuration")
            return Config()

    def _dict_to_config(self, data: dict) -> Config:
        """Construct Config from a dictionary, merging with defaults."""
        sections = {}
        for name, dataclass_type in _SECTIONS.items():
            section_data = data.get(name) or {}
            known_fields = {f.name for f in dataclasses.fields(dataclass_type)}
            unknown = set(section_data) - known_fields
            if unknown:
                logger.debug(f"Ignoring unknown config fields in {name}: {unknown}")
            sections[name] = dataclass_type(
                **{k: v for k, v in section_data.items() if k in known_fields}
            )
        return Config(**sections)

    def save(self) -> None:
        """Save current configuration to the YAML file.

        Raises:
            OSError: If file write fails
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                yaml.dump(
                    asdict(self.config),
                    f,
                    default_flow_style=False,
                    sort_keys=False,
                    indent=2
                )
            logger.info(f"Saved configuration to {self.path}")
        except OSError as e:
            logger.error(f"Failed to save config to {self.path}: {e}")
            raise

    def update(self, section: str, key: str, value) -> bool:
        """Update a single configuration value and save.

        Returns:
            True if value was changed and saved, False if unchanged or invalid
        """
        section_obj = getattr(self.config, section, None)
        if section not in _SECTIONS or section_obj is None:
            logger.warning(f"Invalid config section: {section}")
            return False

        if not hasattr(section_obj, key):
            logger.warning(f"Invalid config key: {section}.{key}")
            return False

        old_value = getattr(section_obj, key)
        if old_value == value:
            logger.debug(f"No change for {section}.{key} (already {value})")
            return False

        setattr(section_obj, key, value)
        self.save()
        logger.info(f"Updated {section}.{key}: {old_value} -> {value}")
        return True

    def to_dict(self) -> dict:
        return asdict(self.config)

    def reload(self) -> None:
        """Reload configuration from file."""
        self.config = self._load()
        logger.info("Configuration reloaded")

    def create_default_file(self) -> bool:
        """Write the default configuration if no file exists yet.

        Returns:
            True if a file was created.
        """
        if self.path.exists():
            logger.warning(f"Configuration file already exists at {self.path}")
            return False
        self.save()
        logger.info(f"Created default configuration at {self.path}")
        return True


_default_config_manager: Optional[ConfigManager] = None


def get_config_manager(path: Optional[Path] = None) -> ConfigManager:
    """Get or create the process-wide ConfigManager.

    Args:
        path: Optional custom config path (only used on first call)
    """
    global _default_config_manager
    if _default_config_manager is None:
        _default_config_manager = ConfigManager(path)
    return _default_config_manager
