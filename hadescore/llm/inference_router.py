"""
AI Fallback Orchestrator
========================

Queries external providers when no topic answers confidently.

Providers form a strict priority chain. Each gets a retry budget:

- success: the cleaned reply is returned, later providers are not tried
- rate limit: remaining retries for that provider are abandoned
- auth failure: the provider is skipped immediately
- timeout / parse / other errors: retried with backoff until the budget is spent

If the chain is exhausted ``try_generate`` returns None and the caller
falls back to local replies. Calls never run concurrently.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .llm_client import (
    AuthenticationError, BaseProviderClient, GenerationOptions, LLMError,
    ProviderClientFactory, ProviderConfig, RateLimitError, ResponseParseError,
    classify_provider_error, content_filter,
)
from ..chatbot.response import Response, ResponseType

logger = logging.getLogger(__name__)


KNOWLEDGE_PATTERNS = [
    re.compile(r'^\s*(?:who|what|when|where|which)\s+(?:is|are|was|were|did|does)\s+(?:the|a|an)\b', re.IGNORECASE),
    re.compile(r'^\s*(?:who|what|when|where|why|how)\b.*\?\s*$', re.IGNORECASE),
    re.compile(r'\b(?:tell me about|explain|define|definition of|history of|meaning of)\b', re.IGNORECASE),
    re.compile(r'\b(?:capital|population|inventor|founder|author)\s+of\b', re.IGNORECASE),
]


class ProviderStatus(Enum):
    """Provider health status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    RATE_LIMITED = "rate_limited"


@dataclass
class ProviderHealth:
    """Provider health and counters."""
    status: ProviderStatus = ProviderStatus.HEALTHY
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    rate_limited: int = 0
    consecutive_failures: int = 0
    last_success: Optional[datetime] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'attempts': self.attempts,
            'successes': self.successes,
            'failures': self.failures,
            'rate_limited': self.rate_limited,
            'consecutive_failures': self.consecutive_failures,
            'last_success': self.last_success.isoformat() if self.last_success else None,
            'last_error': self.last_error,
        }


class AIFallbackOrchestrator:
    """Weighted failover chain over provider clients."""

    def __init__(self, clients: List[BaseProviderClient], config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.clients = list(clients)
        self.ai_cutoff_score = self.config.get('ai_cutoff_score', 0.3)
        self.retry_attempts = self.config.get('ai_retry_attempts', 2)
        self.retry_delay = self.config.get('ai_retry_delay', 0.5)
        self.max_display_length = self.config.get('max_display_length', 500)
        self.verbose_threshold = self.config.get('verbose_threshold', 300)

        self.health: Dict[str, ProviderHealth] = {c.name: ProviderHealth() for c in self.clients}
        self.metrics = {
            'requests': 0,
            'successes': 0,
            'exhausted': 0,
        }

    @classmethod
    def from_settings(cls, settings) -> "AIFallbackOrchestrator":
        """Build the chain from ``Settings``, keeping only providers with credentials."""
        integration = settings.integration
        clients = []

        for rank, name in enumerate(integration.ai_priority):
            provider = integration.providers.get(name)
            if provider is None or not provider.has_credentials:
                logger.debug(f"Provider '{name}' has no credentials; skipped")
                continue
            config = ProviderConfig(
                name=name,
                api_key=provider.api_key,
                model=provider.model,
                priority=rank,
                retry_attempts=provider.retry_attempts or integration.ai_retry_attempts,
                timeout_ms=provider.timeout_ms,
                temperature=provider.temperature,
                max_tokens=provider.max_tokens,
                base_url=provider.base_url,
                extra_headers=dict(provider.extra_headers),
            )
            try:
                clients.append(ProviderClientFactory.create_client(config))
            except LLMError as e:
                logger.error(f"Could not create provider '{name}': {e}")

        logger.info(f"AI fallback chain: {[c.name for c in clients] or 'disabled'}")
        return cls(clients, config={
            'ai_cutoff_score': settings.conversation.ai_cutoff_score,
            'ai_retry_attempts': integration.ai_retry_attempts,
            'ai_retry_delay': integration.ai_retry_delay,
            'max_display_length': integration.max_display_length,
            'verbose_threshold': integration.verbose_threshold,
        })

    @property
    def has_providers(self) -> bool:
        return bool(self.clients)

    @staticmethod
    def looks_like_knowledge_question(input_text: str) -> bool:
        return any(pattern.search(input_text) for pattern in KNOWLEDGE_PATTERNS)

    def should_use_ai(self, input_text: str, match_result) -> bool:
        """
        True when a provider is configured and the input is an open
        knowledge question, matched no topic, or matched below the cutoff.
        A cross-topic handoff is always answered locally.
        """
        if not self.has_providers:
            return False
        if match_result is not None and match_result.forced_response is not None:
            return False
        if self.looks_like_knowledge_question(input_text):
            return True
        if match_result is None or match_result.topic is None:
            return True
        return match_result.score < self.ai_cutoff_score

    async def try_generate(self, input_text: str, options: Optional[GenerationOptions] = None) -> Optional[Response]:
        """Walk the chain in priority order; None when every provider failed."""
        self.metrics['requests'] += 1
        options = options or GenerationOptions()

        for client in self.clients:
            text = await self._attempt_provider(client, input_text, options)
            if text is not None:
                self.metrics['successes'] += 1
                return Response(
                    text=text,
                    topic="ai",
                    metadata={
                        'type': ResponseType.AI.value,
                        'provider': client.name,
                        'model': client.config.model,
                        'sentiment': options.sentiment or 0.0,
                        'related_topic': options.topic,
                    },
                )

        self.metrics['exhausted'] += 1
        logger.warning("All AI providers failed; using local fallback")
        return None

    async def _attempt_provider(self, client: BaseProviderClient, input_text: str,
                                options: GenerationOptions) -> Optional[str]:
        health = self.health.setdefault(client.name, ProviderHealth())
        attempts = client.config.retry_attempts or self.retry_attempts

        for attempt in range(1, attempts + 1):
            health.attempts += 1
            try:
                raw = await client.generate_response(input_text, options)
                cleaned = client.clean_response(raw, self.max_display_length, self.verbose_threshold)
                if not cleaned:
                    raise ResponseParseError(f"{client.name} reply was empty after cleanup", provider=client.name)
            except RateLimitError as e:
                self._record_failure(health, e, rate_limited=True)
                logger.warning(f"{client.name} rate limited; moving to next provider")
                return None
            except AuthenticationError as e:
                self._record_failure(health, e)
                logger.error(f"{client.name} rejected credentials; moving to next provider")
                return None
            except Exception as e:
                error = classify_provider_error(e, client.name)
                if isinstance(error, RateLimitError):
                    self._record_failure(health, error, rate_limited=True)
                    logger.warning(f"{client.name} rate limited; moving to next provider")
                    return None
                if isinstance(error, AuthenticationError):
                    self._record_failure(health, error)
                    return None
                self._record_failure(health, error)
                logger.warning(
                    f"{client.name} attempt {attempt}/{attempts} failed "
                    f"({error.kind.value}): {content_filter.sanitize_for_logging(str(error))}"
                )
                if attempt < attempts and self.retry_delay > 0:
                    await asyncio.sleep(self.retry_delay * (2 ** (attempt - 1)))
                continue

            self._record_success(health)
            logger.info(f"{client.name} answered on attempt {attempt}")
            return cleaned

        return None

    @staticmethod
    def _record_success(health: ProviderHealth):
        health.successes += 1
        health.consecutive_failures = 0
        health.last_success = datetime.now(timezone.utc)
        health.status = ProviderStatus.HEALTHY

    @staticmethod
    def _record_failure(health: ProviderHealth, error: LLMError, rate_limited: bool = False):
        health.failures += 1
        health.consecutive_failures += 1
        health.last_error = error.kind.value
        if rate_limited:
            health.rate_limited += 1
            health.status = ProviderStatus.RATE_LIMITED
        elif health.consecutive_failures >= 3:
            health.status = ProviderStatus.UNHEALTHY
        else:
            health.status = ProviderStatus.DEGRADED

    def get_metrics(self) -> Dict[str, Any]:
        return {
            **self.metrics,
            'providers': {name: health.to_dict() for name, health in self.health.items()},
        }

    async def health_check(self) -> Dict[str, Any]:
        return {
            'status': 'healthy' if self.has_providers else 'disabled',
            'chain': [client.get_model_info() for client in self.clients],
        }

    async def close(self):
        for client in self.clients:
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"Error closing provider {client.name}: {e}")
