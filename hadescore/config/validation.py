"""
Configuration Validation
========================

Validation for HADES settings with detailed error reporting. Validators
work on the plain settings dictionary so they can run before the
dataclasses are built.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass
from pathlib import Path
import logging

logger = logging.getLogger(__name__)


PLACEHOLDER_KEYS = {"your_api_key", "sk-xxxxxxx", "changeme", "<api-key>"}


class ConfigurationError(Exception):
    """Raised when settings fail validation."""

    def __init__(self, message: str, errors: Optional[List["ValidationError"]] = None):
        super().__init__(message)
        self.errors = errors or []


@dataclass
class ValidationError:
    """Validation error details."""
    field_path: str
    message: str
    severity: str = "error"  # error, warning
    suggested_value: Optional[Any] = None


class ValidationResult:
    """Result of configuration validation."""

    def __init__(self):
        self.errors: List[ValidationError] = []
        self.warnings: List[ValidationError] = []
        self.is_valid = True

    def add_error(self, field_path: str, message: str, suggested_value: Optional[Any] = None):
        """Add validation error."""
        self.errors.append(ValidationError(field_path, message, "error", suggested_value))
        self.is_valid = False

    def add_warning(self, field_path: str, message: str):
        """Add validation warning."""
        self.warnings.append(ValidationError(field_path, message, "warning"))

    def get_summary(self) -> str:
        """Get validation summary."""
        if self.is_valid:
            return f"Configuration valid. {len(self.warnings)} warnings."
        return f"Configuration invalid. {len(self.errors)} errors, {len(self.warnings)} warnings."


class ConfigValidator:
    """Static validators for each settings section."""

    @staticmethod
    def validate_range(value: Any, low: float, high: float, field_path: str, result: ValidationResult):
        """Validate that a numeric value lies in [low, high]."""
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            result.add_error(field_path, f"Expected a number, got {value!r}")
        elif not (low <= value <= high):
            result.add_error(field_path, f"Value {value} is out of range ({low} to {high})")

    @staticmethod
    def validate_positive_int(value: Any, field_path: str, result: ValidationResult):
        """Validate that a value is an integer of at least 1."""
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            result.add_error(field_path, f"Expected a positive integer, got {value!r}", suggested_value=1)

    @staticmethod
    def validate_api_key(api_key: Optional[str], field_path: str, result: ValidationResult):
        """Warn about placeholder keys; an empty key only disables the provider."""
        if api_key and api_key.strip().lower() in PLACEHOLDER_KEYS:
            result.add_warning(field_path, "Placeholder API key detected")

    @classmethod
    def validate_conversation_config(cls, config: Dict[str, Any], result: ValidationResult):
        """Validate matching and dialogue thresholds."""
        prefix = "conversation"

        for key in ("min_match_score", "ai_cutoff_score", "keyword_weight", "blend_margin"):
            if key in config:
                cls.validate_range(config[key], 0.0, 10.0, f"{prefix}.{key}", result)

        for key in ("empathy_threshold", "emotional_fallback_threshold"):
            if key in config:
                cls.validate_range(config[key], -1.0, 1.0, f"{prefix}.{key}", result)

        if "sentiment_smoothing" in config:
            cls.validate_range(config["sentiment_smoothing"], 0.0, 1.0, f"{prefix}.sentiment_smoothing", result)

        for key in ("max_topics_active", "max_history"):
            if key in config:
                cls.validate_positive_int(config[key], f"{prefix}.{key}", result)

        cutoff = config.get("ai_cutoff_score", 0.3)
        min_score = config.get("min_match_score", 0.5)
        if isinstance(cutoff, (int, float)) and isinstance(min_score, (int, float)) and cutoff > min_score:
            result.add_warning(
                f"{prefix}.ai_cutoff_score",
                "AI cutoff above min_match_score sends confident topic matches to providers"
            )

    @classmethod
    def validate_memory_config(cls, config: Dict[str, Any], result: ValidationResult):
        """Validate memory capacities and persistence settings."""
        prefix = "memory"

        if "short_term_capacity" in config:
            cls.validate_positive_int(config["short_term_capacity"], f"{prefix}.short_term_capacity", result)

        episodic = config.get("episodic_capacity")
        if episodic is not None:
            cls.validate_positive_int(episodic, f"{prefix}.episodic_capacity", result)

        if "max_sessions" in config:
            cls.validate_positive_int(config["max_sessions"], f"{prefix}.max_sessions", result)

        backend = config.get("backend", "file")
        if backend not in ("file", "redis"):
            result.add_error(f"{prefix}.backend", f"Unknown memory backend: {backend}")

        if config.get("persistence_enabled") and backend == "file":
            path = Path(config.get("persistence_path", "./data"))
            if path.exists() and not path.is_dir():
                result.add_error(f"{prefix}.persistence_path", f"Not a directory: {path}")

    @classmethod
    def validate_integration_config(cls, config: Dict[str, Any], result: ValidationResult):
        """Validate the provider priority chain."""
        prefix = "integration"
        providers = config.get("providers", {}) or {}
        priority = config.get("ai_priority", []) or []

        if not isinstance(priority, list):
            result.add_error(f"{prefix}.ai_priority", "ai_priority must be a list of provider names")
            priority = []

        seen = set()
        for name in priority:
            if name in seen:
                result.add_warning(f"{prefix}.ai_priority", f"Provider listed twice: {name}")
            seen.add(name)
            if name not in providers:
                result.add_warning(f"{prefix}.ai_priority", f"No settings for provider '{name}', defaults apply")

        if "ai_retry_attempts" in config:
            cls.validate_positive_int(config["ai_retry_attempts"], f"{prefix}.ai_retry_attempts", result)

        for name, provider_config in providers.items():
            provider_prefix = f"{prefix}.providers.{name}"
            provider_config = provider_config or {}
            cls.validate_api_key(provider_config.get("api_key"), f"{provider_prefix}.api_key", result)

            timeout_ms = provider_config.get("timeout_ms", 15000)
            if not isinstance(timeout_ms, int) or timeout_ms <= 0:
                result.add_error(f"{provider_prefix}.timeout_ms", "Timeout must be a positive integer")

            max_tokens = provider_config.get("max_tokens", 250)
            if not isinstance(max_tokens, int) or max_tokens <= 0:
                result.add_error(f"{provider_prefix}.max_tokens", "Max tokens must be positive integer")
            elif max_tokens > 4000:
                result.add_warning(f"{provider_prefix}.max_tokens", "Very high token limit may be expensive")

    @classmethod
    def validate_settings(cls, settings_dict: Dict[str, Any]) -> ValidationResult:
        """Validate a complete settings dictionary."""
        result = ValidationResult()

        environment = settings_dict.get("environment", "development")
        valid_environments = ["development", "staging", "production", "testing"]
        if environment not in valid_environments:
            result.add_error("environment", f"Invalid environment. Must be one of: {valid_environments}")

        if "conversation" in settings_dict:
            cls.validate_conversation_config(settings_dict["conversation"] or {}, result)

        if "memory" in settings_dict:
            cls.validate_memory_config(settings_dict["memory"] or {}, result)

        if "integration" in settings_dict:
            cls.validate_integration_config(settings_dict["integration"] or {}, result)

        if environment == "production" and settings_dict.get("debug_mode", False):
            result.add_error("debug_mode", "Debug mode must be disabled in production")

        logger.info(f"Configuration validation completed: {result.get_summary()}")
        return result
