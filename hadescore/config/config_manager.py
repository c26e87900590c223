"""
Configuration Manager
=====================

Centralized configuration for the HADES dialogue engine: YAML settings,
environment overrides for provider credentials, validation and optional
hot-reloading.

The resulting ``Settings`` object is passed explicitly into the agent;
nothing below the config layer reads the environment.
"""

import os
import copy
from pathlib import Path
from typing import Dict, Any, Optional, List, Callable
from dataclasses import dataclass, field, asdict
from enum import Enum
import logging

import yaml
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from .validation import ConfigValidator, ConfigurationError

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)


class Environment(Enum):
    """Environment types for configuration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


DEFAULT_AI_PRIORITY = [
    "openai", "deepseek", "huggingface", "groq", "perplexity", "openrouter", "aimlapi"
]

DEFAULT_PROVIDER_MODELS = {
    "openai": "gpt-4-turbo",
    "deepseek": "deepseek-chat",
    "huggingface": "mistralai/Mixtral-8x7B-Instruct-v0.1",
    "groq": "llama3-70b-8192",
    "perplexity": "pplx-70b-online",
    "openrouter": "anthropic/claude-3-opus",
    "aimlapi": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-latest",
}


@dataclass
class NLPConfig:
    """Text analysis settings."""
    enable_sentiment: bool = True
    enable_stemming: bool = True


@dataclass
class MemoryConfig:
    """Memory store and persistence settings."""
    short_term_capacity: int = 10
    episodic_capacity: Optional[int] = 200
    persistence_enabled: bool = False
    persistence_path: str = "./data"
    backend: str = "file"
    redis_url: str = "redis://localhost:6379/0"
    blob_key: str = "memory"
    max_sessions: int = 1000


@dataclass
class ConversationConfig:
    """Matching thresholds and dialogue policy."""
    min_match_score: float = 0.5
    ai_cutoff_score: float = 0.3
    keyword_weight: float = 0.75
    max_topics_active: int = 3
    empathy_threshold: float = -0.5
    emotional_fallback_threshold: float = -0.3
    blend_margin: float = 0.5
    sentiment_smoothing: float = 0.4
    max_history: int = 20
    explore_input_words: int = 8
    explore_response_words: int = 15
    related_topic_probability: float = 0.4


@dataclass
class ProviderSettings:
    """Settings for one external text-generation provider."""
    api_key: str = ""
    model: str = ""
    base_url: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 250
    timeout_ms: int = 15000
    retry_attempts: Optional[int] = None
    extra_headers: Dict[str, str] = field(default_factory=dict)

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


def _default_providers() -> Dict[str, ProviderSettings]:
    return {
        name: ProviderSettings(model=model)
        for name, model in DEFAULT_PROVIDER_MODELS.items()
    }


@dataclass
class IntegrationConfig:
    """AI fallback chain configuration."""
    topic_blending: bool = True
    ai_priority: List[str] = field(default_factory=lambda: list(DEFAULT_AI_PRIORITY))
    ai_retry_attempts: int = 2
    ai_retry_delay: float = 0.5
    max_display_length: int = 500
    verbose_threshold: int = 300
    providers: Dict[str, ProviderSettings] = field(default_factory=_default_providers)


@dataclass
class ObservabilityConfig:
    """Logging configuration."""
    log_level: str = "INFO"
    log_file: Optional[str] = None


@dataclass
class Settings:
    """Application settings."""
    environment: Environment = Environment.DEVELOPMENT
    app_name: str = "HADES"
    version: str = "1.0.0"
    debug_mode: bool = False
    topics_directory: Optional[str] = None

    nlp: NLPConfig = field(default_factory=NLPConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    integration: IntegrationConfig = field(default_factory=IntegrationConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        data = asdict(self)
        data['environment'] = self.environment.value
        return data

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION


def configure_logging(observability: ObservabilityConfig):
    """Apply the configured level and optional log file to the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, observability.log_level.upper(), logging.INFO))

    if observability.log_file:
        already_attached = any(
            isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(observability.log_file)
            for h in root.handlers
        )
        if not already_attached:
            handler = logging.FileHandler(observability.log_file)
            handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            root.addHandler(handler)


class ConfigFileHandler(FileSystemEventHandler):
    """File system event handler for configuration hot-reloading."""

    def __init__(self, config_manager: "ConfigManager"):
        super().__init__()
        self.config_manager = config_manager

    def on_modified(self, event):
        """Reload when the active settings file changes."""
        if event.is_directory:
            return
        if os.path.abspath(event.src_path) == os.path.abspath(self.config_manager.config_path):
            logger.info(f"Configuration file modified: {event.src_path}")
            self.config_manager.reload_config()


class ConfigManager:
    """
    Loads settings from YAML, merges environment overrides, validates
    and builds the ``Settings`` dataclass tree.
    """

    ENV_OVERRIDES = {
        'integration.providers.openai.api_key': 'OPENAI_API_KEY',
        'integration.providers.deepseek.api_key': 'DEEPSEEK_API_KEY',
        'integration.providers.groq.api_key': 'GROQ_API_KEY',
        'integration.providers.perplexity.api_key': 'PERPLEXITY_API_KEY',
        'integration.providers.openrouter.api_key': 'OPENROUTER_API_KEY',
        'integration.providers.aimlapi.api_key': 'AIMLAPI_KEY',
        'integration.providers.huggingface.api_key': 'HUGGINGFACE_API_KEY',
        'integration.providers.anthropic.api_key': 'ANTHROPIC_API_KEY',
        'memory.persistence_enabled': 'HADES_MEMORY_PERSISTENCE',
        'memory.persistence_path': 'HADES_MEMORY_PATH',
        'memory.redis_url': 'REDIS_URL',
        'observability.log_level': 'HADES_LOG_LEVEL',
    }

    BOOLEAN_PATHS = {'memory.persistence_enabled'}

    def __init__(self, config_path: Optional[str] = None, enable_hot_reload: bool = False,
                 environ: Optional[Dict[str, str]] = None):
        self.environ = os.environ if environ is None else environ
        self.config_path = config_path or self._find_config_path()
        self._settings: Optional[Settings] = None
        self._observer = None
        self._listeners: List[Callable[[Settings], None]] = []

        self.load_config()

        if enable_hot_reload:
            self._setup_hot_reload()

    def _find_config_path(self) -> str:
        """Find configuration file path based on environment."""
        env = self.environ.get("ENVIRONMENT", "development")
        config_dir = Path(__file__).parent

        env_config = config_dir / f"settings.{env}.yaml"
        if env_config.exists():
            return str(env_config)

        default_config = config_dir / "settings.yaml"
        if default_config.exists():
            return str(default_config)

        raise FileNotFoundError("No configuration file found")

    def load_config(self) -> Settings:
        """Load, validate and build settings from the configuration file."""
        try:
            with open(self.config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load configuration: {e}")
            raise

        config_data = self._merge_environment_variables(config_data)

        result = ConfigValidator.validate_settings(config_data)
        for warning in result.warnings:
            logger.warning(f"Config warning at {warning.field_path}: {warning.message}")
        if not result.is_valid:
            details = "; ".join(f"{e.field_path}: {e.message}" for e in result.errors)
            raise ConfigurationError(f"Invalid configuration in {self.config_path}: {details}", result.errors)

        self._settings = self.create_settings_from_dict(config_data)
        configure_logging(self._settings.observability)

        logger.info(f"Configuration loaded from {self.config_path}")
        return self._settings

    def reload_config(self) -> Settings:
        """Reload configuration, keeping the current settings if the new file is invalid."""
        try:
            settings = self.load_config()
        except Exception as e:
            logger.error(f"Failed to reload configuration: {e}")
            if self._settings is None:
                raise RuntimeError("No valid configuration available")
            return self._settings

        for listener in self._listeners:
            try:
                listener(settings)
            except Exception as e:
                logger.error(f"Configuration listener failed: {e}")
        return settings

    def add_listener(self, listener: Callable[[Settings], None]):
        """Register a callback invoked after each successful reload."""
        self._listeners.append(listener)

    def _merge_environment_variables(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Merge environment variables with configuration data."""
        config_data = copy.deepcopy(config_data)

        for config_path, env_var in self.ENV_OVERRIDES.items():
            env_value = self.environ.get(env_var)
            if env_value:
                if config_path in self.BOOLEAN_PATHS:
                    env_value = env_value.strip().lower() in ("1", "true", "yes", "on")
                self._set_nested_value(config_data, config_path, env_value)

        return config_data

    def _set_nested_value(self, data: Dict[str, Any], path: str, value: Any):
        """Set nested dictionary value using dot notation."""
        keys = path.split('.')
        current = data

        for key in keys[:-1]:
            if current.get(key) is None:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    @staticmethod
    def create_settings_from_dict(config_data: Dict[str, Any]) -> Settings:
        """Create a Settings object from a configuration dictionary."""
        settings_dict: Dict[str, Any] = {}

        settings_dict['environment'] = Environment(config_data.get('environment', 'development'))
        settings_dict['app_name'] = config_data.get('app_name', 'HADES')
        settings_dict['version'] = config_data.get('version', '1.0.0')
        settings_dict['debug_mode'] = config_data.get('debug_mode', False)
        settings_dict['topics_directory'] = config_data.get('topics_directory')

        if config_data.get('nlp'):
            settings_dict['nlp'] = NLPConfig(**config_data['nlp'])

        if config_data.get('memory'):
            settings_dict['memory'] = MemoryConfig(**config_data['memory'])

        if config_data.get('conversation'):
            settings_dict['conversation'] = ConversationConfig(**config_data['conversation'])

        if config_data.get('integration'):
            integration_data = dict(config_data['integration'])
            providers = _default_providers()
            for name, provider_data in (integration_data.pop('providers', None) or {}).items():
                provider_data = dict(provider_data or {})
                provider_data.setdefault('model', DEFAULT_PROVIDER_MODELS.get(name, ''))
                providers[name] = ProviderSettings(**provider_data)
            settings_dict['integration'] = IntegrationConfig(providers=providers, **integration_data)

        if config_data.get('observability'):
            settings_dict['observability'] = ObservabilityConfig(**config_data['observability'])

        return Settings(**settings_dict)

    def _setup_hot_reload(self):
        """Setup file system monitoring for hot-reloading."""
        if self._observer:
            return

        self._observer = Observer()
        handler = ConfigFileHandler(self)
        config_dir = Path(self.config_path).parent

        self._observer.schedule(handler, str(config_dir), recursive=False)
        self._observer.start()

        logger.info("Configuration hot-reloading enabled")

    @property
    def settings(self) -> Settings:
        """Get current settings."""
        if not self._settings:
            self.load_config()
        if self._settings is None:
            raise RuntimeError("Failed to load configuration")
        return self._settings

    def get_provider_settings(self, provider_name: str) -> Optional[ProviderSettings]:
        """Get configuration for a specific AI provider."""
        return self.settings.integration.providers.get(provider_name)

    def close(self):
        """Stop the hot-reload observer if running."""
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_path: Optional[str] = None) -> ConfigManager:
    """Get the process-wide configuration manager."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(config_path)
    return _config_manager


def get_settings() -> Settings:
    """Get current application settings."""
    return get_config_manager().settings
