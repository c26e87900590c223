"""
Unit Tests for Configuration
============================

YAML loading, environment overrides, validation errors and warnings,
and hot-reload fallback behavior.
"""

import pytest
import yaml

from hadescore.config.config_manager import (
    ConfigManager, ConversationConfig, Environment, Settings,
)
from hadescore.config.validation import ConfigValidator, ConfigurationError


def write_config(tmp_path, data, name="settings.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestConfigManager:
    """Test loading settings from files and the environment."""

    def test_bundled_settings_load(self):
        manager = ConfigManager(environ={})
        settings = manager.settings

        assert isinstance(settings, Settings)
        assert settings.conversation.keyword_weight == 0.75
        assert settings.conversation.min_match_score == 0.5
        assert settings.integration.ai_priority[0] == "openai"
        assert not any(p.has_credentials for p in settings.integration.providers.values())

    def test_environment_overrides(self, tmp_path):
        path = write_config(tmp_path, {
            'memory': {'persistence_enabled': False},
            'integration': {'providers': {'groq': {'model': 'llama3-70b-8192'}}},
        })
        manager = ConfigManager(path, environ={
            'GROQ_API_KEY': 'gsk-test',
            'HADES_MEMORY_PERSISTENCE': 'yes',
            'HADES_MEMORY_PATH': str(tmp_path / "memory"),
        })

        settings = manager.settings
        assert settings.integration.providers['groq'].api_key == 'gsk-test'
        assert settings.integration.providers['groq'].model == 'llama3-70b-8192'
        assert settings.memory.persistence_enabled is True
        assert settings.memory.persistence_path == str(tmp_path / "memory")
        # providers missing from the file keep their defaults
        assert settings.integration.providers['anthropic'].model

    def test_partial_file_uses_defaults(self, tmp_path):
        path = write_config(tmp_path, {'conversation': {'min_match_score': 0.8}})
        settings = ConfigManager(path, environ={}).settings

        assert settings.conversation.min_match_score == 0.8
        assert settings.conversation.keyword_weight == ConversationConfig().keyword_weight
        assert settings.environment == Environment.DEVELOPMENT

    def test_invalid_values_raise(self, tmp_path):
        path = write_config(tmp_path, {
            'conversation': {'sentiment_smoothing': 1.5, 'max_topics_active': 0},
            'memory': {'backend': 'sqlite'},
        })

        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager(path, environ={})

        fields = {error.field_path for error in exc_info.value.errors}
        assert fields == {
            'conversation.sentiment_smoothing',
            'conversation.max_topics_active',
            'memory.backend',
        }

    def test_reload_keeps_last_good_settings(self, tmp_path):
        path = write_config(tmp_path, {'conversation': {'min_match_score': 0.6}})
        manager = ConfigManager(path, environ={})
        seen = []
        manager.add_listener(seen.append)

        write_config(tmp_path, {'conversation': {'min_match_score': 'high'}})
        assert manager.reload_config().conversation.min_match_score == 0.6
        assert seen == []

        write_config(tmp_path, {'conversation': {'min_match_score': 0.7}})
        assert manager.reload_config().conversation.min_match_score == 0.7
        assert len(seen) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            ConfigManager(str(tmp_path / "absent.yaml"), environ={})


class TestConfigValidator:
    """Test section validators directly."""

    def test_production_debug_rejected(self):
        result = ConfigValidator.validate_settings({'environment': 'production', 'debug_mode': True})
        assert not result.is_valid
        assert result.errors[0].field_path == 'debug_mode'

    def test_unknown_environment(self):
        assert not ConfigValidator.validate_settings({'environment': 'moon'}).is_valid

    def test_warnings_do_not_invalidate(self):
        result = ConfigValidator.validate_settings({
            'conversation': {'ai_cutoff_score': 0.9, 'min_match_score': 0.5},
            'integration': {
                'ai_priority': ['openai', 'openai'],
                'providers': {'openai': {'api_key': 'changeme', 'max_tokens': 8000}},
            },
        })

        assert result.is_valid
        paths = [warning.field_path for warning in result.warnings]
        assert 'conversation.ai_cutoff_score' in paths
        assert 'integration.providers.openai.api_key' in paths
        assert 'integration.providers.openai.max_tokens' in paths

    def test_provider_timeout_must_be_positive(self):
        result = ConfigValidator.validate_settings({
            'integration': {'providers': {'groq': {'timeout_ms': 0}}},
        })
        assert [e.field_path for e in result.errors] == ['integration.providers.groq.timeout_ms']

    def test_max_sessions_must_be_positive(self):
        result = ConfigValidator.validate_settings({'memory': {'max_sessions': 0}})
        assert [e.field_path for e in result.errors] == ['memory.max_sessions']

        assert ConfigValidator.validate_settings({'memory': {'max_sessions': 50}}).is_valid
