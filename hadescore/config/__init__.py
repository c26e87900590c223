"""
Configuration Module
====================

Settings dataclasses, YAML loading with environment overrides, and
validation for the HADES dialogue engine.
"""

from .config_manager import (
    ConfigManager,
    Settings,
    Environment,
    NLPConfig,
    MemoryConfig,
    ConversationConfig,
    IntegrationConfig,
    ProviderSettings,
    ObservabilityConfig,
    DEFAULT_AI_PRIORITY,
    configure_logging,
    get_config_manager,
    get_settings,
)
from .validation import ConfigValidator, ValidationResult, ConfigurationError

__all__ = [
    'ConfigManager',
    'Settings',
    'Environment',
    'NLPConfig',
    'MemoryConfig',
    'ConversationConfig',
    'IntegrationConfig',
    'ProviderSettings',
    'ObservabilityConfig',
    'DEFAULT_AI_PRIORITY',
    'configure_logging',
    'get_config_manager',
    'get_settings',
    'ConfigValidator',
    'ValidationResult',
    'ConfigurationError',
]
