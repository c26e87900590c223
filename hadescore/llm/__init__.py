"""
LLM Module for HADES
====================

External text-generation providers and the failover chain that queries
them when no topic answers confidently.

Quick Start:
    from hadescore.llm import AIFallbackOrchestrator
    from hadescore.config import get_settings

    orchestrator = AIFallbackOrchestrator.from_settings(get_settings())
    if orchestrator.should_use_ai(text, match_result):
        response = await orchestrator.try_generate(text)
"""

from .llm_client import (
    # Clients
    BaseProviderClient,
    OpenAICompatibleClient,
    AnthropicClient,
    HTTPProviderClient,
    HuggingFaceClient,
    AIMLAPIClient,
    ProviderClientFactory,

    # Configuration
    ProviderConfig,
    GenerationOptions,
    SYSTEM_PROMPT,
    build_system_prompt,

    # Exceptions
    ErrorKind,
    LLMError,
    RateLimitError,
    AuthenticationError,
    ProviderTimeoutError,
    ResponseParseError,
    ModelError,
    classify_provider_error,

    # Utilities
    ContentFilter,
    content_filter,
)

from .inference_router import (
    AIFallbackOrchestrator,
    ProviderHealth,
    ProviderStatus,
    KNOWLEDGE_PATTERNS,
)

__all__ = [
    "BaseProviderClient",
    "OpenAICompatibleClient",
    "AnthropicClient",
    "HTTPProviderClient",
    "HuggingFaceClient",
    "AIMLAPIClient",
    "ProviderClientFactory",
    "ProviderConfig",
    "GenerationOptions",
    "SYSTEM_PROMPT",
    "build_system_prompt",
    "ErrorKind",
    "LLMError",
    "RateLimitError",
    "AuthenticationError",
    "ProviderTimeoutError",
    "ResponseParseError",
    "ModelError",
    "classify_provider_error",
    "ContentFilter",
    "content_filter",
    "AIFallbackOrchestrator",
    "ProviderHealth",
    "ProviderStatus",
    "KNOWLEDGE_PATTERNS",
]
