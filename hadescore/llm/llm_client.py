"""
AI Provider Clients
===================

Clients for the external text-generation services used as the AI
fallback. Every client exposes the same contract::

    await client.generate_response(input_text, options) -> str

and fails with a classified ``LLMError`` subclass so the fallback chain
can tell rate limits from auth failures, timeouts and bad payloads.

Providers:
- OpenAI-compatible chat APIs (openai, deepseek, groq, perplexity, openrouter) via ``openai``
- Anthropic via ``anthropic``
- HuggingFace Inference API and AIMLAPI via ``aiohttp``
"""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Type
import logging

import aiohttp
import anthropic
import openai

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = "You are HADES, an AI assistant. Provide concise, factual answers."


class ErrorKind(Enum):
    """Classification used by the fallback chain."""
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    PARSE = "parse"
    AUTH = "auth"
    GENERIC = "generic"


class LLMError(Exception):
    """Base exception for provider operations."""

    kind = ErrorKind.GENERIC

    def __init__(self, message: str, error_code: str = "UNKNOWN", provider: Optional[str] = None,
                 status_code: Optional[int] = None, **kwargs):
        super().__init__(message)
        self.error_code = error_code
        self.provider = provider
        self.status_code = status_code
        self.metadata = kwargs


class RateLimitError(LLMError):
    """Rate limit or quota exceeded (HTTP 429/403)."""

    kind = ErrorKind.RATE_LIMIT

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, error_code="RATE_LIMIT", **kwargs)
        self.retry_after = retry_after


class AuthenticationError(LLMError):
    """Credentials rejected (HTTP 401)."""

    kind = ErrorKind.AUTH

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="AUTH_FAILED", **kwargs)


class ProviderTimeoutError(LLMError):
    """Call exceeded its timeout."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="TIMEOUT", **kwargs)


class ResponseParseError(LLMError):
    """Provider answered with an unusable payload."""

    kind = ErrorKind.PARSE

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="PARSE_ERROR", **kwargs)


class ModelError(LLMError):
    """Any other provider failure."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="MODEL_ERROR", **kwargs)


RATE_LIMIT_HINTS = re.compile(r'rate.?limit|too many requests|quota|\b429\b|\b403\b', re.IGNORECASE)


def error_for_status(status: int, message: str, provider: Optional[str] = None,
                     retry_after: Optional[float] = None) -> LLMError:
    """Map an HTTP status to the error taxonomy."""
    if status in (429, 403):
        return RateLimitError(message, retry_after=retry_after, provider=provider, status_code=status)
    if status == 401:
        return AuthenticationError(message, provider=provider, status_code=status)
    if status in (408, 504):
        return ProviderTimeoutError(message, provider=provider, status_code=status)
    return ModelError(message, provider=provider, status_code=status)


def classify_provider_error(error: BaseException, provider: Optional[str] = None) -> LLMError:
    """Wrap an arbitrary exception into the LLMError hierarchy."""
    if isinstance(error, LLMError):
        return error

    message = f"{provider or 'provider'} request failed: {error}"
    status = getattr(error, 'status_code', None) or getattr(error, 'status', None)

    if isinstance(error, asyncio.TimeoutError):
        return ProviderTimeoutError(message, provider=provider)
    if isinstance(status, int):
        return error_for_status(status, message, provider)
    if isinstance(error, (json.JSONDecodeError, KeyError, IndexError, TypeError)):
        return ResponseParseError(message, provider=provider)
    if RATE_LIMIT_HINTS.search(str(error)):
        return RateLimitError(message, provider=provider)
    return ModelError(message, provider=provider)


class ContentFilter:
    """Redaction of sensitive data before text reaches the logs."""

    SENSITIVE_PATTERNS = [
        r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b',  # Email
        r'\b\d{3}-?\d{2}-?\d{4}\b',  # SSN
        r'\b\d{4}[- ]?\d{4}[- ]?\d{4}[- ]?\d{4}\b',  # Credit card
        r'Bearer\s+[A-Za-z0-9\-\._~\+\/]+=*',  # Bearer token
        r'sk-[A-Za-z0-9_\-]{20,}',  # API key
        r'hf_[A-Za-z0-9]{20,}',  # HuggingFace token
    ]

    def __init__(self, max_length: int = 200):
        self.max_length = max_length
        self.sensitive_regex = re.compile('|'.join(self.SENSITIVE_PATTERNS), re.IGNORECASE)

    def sanitize_for_logging(self, text: str) -> str:
        """Sanitize text for logging purposes."""
        sanitized = self.sensitive_regex.sub('[REDACTED]', str(text))
        if len(sanitized) > self.max_length:
            sanitized = sanitized[:self.max_length - 3] + "..."
        return sanitized


content_filter = ContentFilter()


@dataclass(frozen=True)
class ProviderConfig:
    """Immutable per-provider configuration; ``priority`` is the position in the chain."""
    name: str
    api_key: str
    model: str
    priority: int = 0
    retry_attempts: int = 2
    timeout_ms: int = 15000
    temperature: float = 0.7
    max_tokens: int = 250
    base_url: Optional[str] = None
    extra_headers: Dict[str, str] = field(default_factory=dict)

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass
class GenerationOptions:
    """Per-call hints passed to the provider."""
    sentiment: Optional[float] = None
    topic: Optional[str] = None
    is_fallback: bool = False


def build_system_prompt(options: Optional[GenerationOptions] = None) -> str:
    prompt = SYSTEM_PROMPT
    if options is None:
        return prompt
    if options.sentiment is not None and options.sentiment < -0.3:
        prompt += " The user seems distressed; answer gently and supportively."
    if options.topic:
        prompt += f" The conversation is about {options.topic.replace('_', ' ')}."
    if options.is_fallback:
        prompt += " No prepared answer matched this message, so keep the reply short and helpful."
    return prompt


INSTRUCTION_ARTIFACTS = re.compile(r'\[/?INST\]|</?s>|<<\/?SYS>>|<\|[^|>]*\|>', re.IGNORECASE)
ROLE_PREFIX = re.compile(r'^\s*(?:assistant|hades|ai|answer)\s*:\s*', re.IGNORECASE)
FIRST_SENTENCE = re.compile(r'^(.+?[.!?])(?:\s|$)', re.DOTALL)


def first_sentence(text: str) -> str:
    match = FIRST_SENTENCE.match(text)
    return match.group(1).strip() if match else text


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    cut = text[:max_length - 3]
    if ' ' in cut:
        cut = cut[:cut.rfind(' ')]
    return cut.rstrip(' ,;:') + "..."


class BaseProviderClient(ABC):
    """Abstract base class for provider clients."""

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.content_filter = content_filter

    @property
    def name(self) -> str:
        return self.config.name

    async def generate_response(self, input_text: str, options: Optional[GenerationOptions] = None) -> str:
        """
        Call the provider once with the configured timeout.

        Raises:
            LLMError: classified failure
        """
        try:
            text = await asyncio.wait_for(
                self._make_request(input_text, options or GenerationOptions()),
                timeout=self.config.timeout,
            )
        except asyncio.TimeoutError:
            raise ProviderTimeoutError(
                f"{self.name} timed out after {self.config.timeout_ms}ms", provider=self.name
            )
        except LLMError:
            raise
        except Exception as e:
            raise classify_provider_error(e, self.name)

        if not isinstance(text, str) or not text.strip():
            raise ResponseParseError(f"{self.name} returned an empty response", provider=self.name)
        return text

    @abstractmethod
    async def _make_request(self, input_text: str, options: GenerationOptions) -> str:
        pass

    def clean_response(self, text: str, max_length: int = 500, verbose_threshold: int = 300) -> str:
        """Strip prompt-format artifacts, shorten verbose answers, cap the length."""
        text = INSTRUCTION_ARTIFACTS.sub('', text)
        text = ROLE_PREFIX.sub('', text)
        text = re.sub(r'[ \t]+', ' ', text)
        text = re.sub(r'\n{3,}', '\n\n', text).strip()

        if len(text) > verbose_threshold:
            sentence = first_sentence(text)
            if len(sentence) >= 20:
                text = sentence

        return truncate(text, max_length)

    def get_model_info(self) -> Dict[str, Any]:
        return {
            'provider': self.name,
            'model': self.config.model,
            'priority': self.config.priority,
            'timeout_ms': self.config.timeout_ms,
        }

    async def close(self) -> None:
        return None


class OpenAICompatibleClient(BaseProviderClient):
    """Chat-completions client for OpenAI and API-compatible services."""

    DEFAULT_BASE_URLS = {
        'openai': None,
        'deepseek': 'https://api.deepseek.com',
        'groq': 'https://api.groq.com/openai/v1',
        'perplexity': 'https://api.perplexity.ai',
        'openrouter': 'https://openrouter.ai/api/v1',
    }

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        if not config.api_key:
            raise AuthenticationError(f"{config.name} API key not provided", provider=config.name)

        self.client = openai.AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url or self.DEFAULT_BASE_URLS.get(config.name),
            timeout=config.timeout,
            max_retries=0,  # retries belong to the fallback chain
            default_headers=dict(config.extra_headers) or None,
        )

    async def _make_request(self, input_text: str, options: GenerationOptions) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": build_system_prompt(options)},
                    {"role": "user", "content": input_text},
                ],
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
        except openai.RateLimitError as e:
            retry_after = e.response.headers.get('retry-after') if e.response is not None else None
            raise RateLimitError(f"{self.name} rate limit exceeded: {e}", retry_after=_as_float(retry_after),
                                 provider=self.name, status_code=429)
        except openai.PermissionDeniedError as e:
            raise RateLimitError(f"{self.name} access denied: {e}", provider=self.name, status_code=403)
        except openai.AuthenticationError as e:
            raise AuthenticationError(f"{self.name} authentication failed: {e}", provider=self.name, status_code=401)
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError(f"{self.name} request timed out: {e}", provider=self.name)
        except openai.APIStatusError as e:
            raise error_for_status(e.status_code, f"{self.name} API error {e.status_code}: {e}", self.name)
        except openai.APIConnectionError as e:
            raise ModelError(f"{self.name} connection failed: {e}", provider=self.name)

        try:
            return response.choices[0].message.content or ""
        except (IndexError, AttributeError) as e:
            raise ResponseParseError(f"{self.name} response had no choices: {e}", provider=self.name)

    async def close(self) -> None:
        await self.client.close()


class AnthropicClient(BaseProviderClient):
    """Anthropic Messages API client."""

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        if not config.api_key:
            raise AuthenticationError("Anthropic API key not provided", provider=config.name)

        self.client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            timeout=config.timeout,
            max_retries=0,
        )

    async def _make_request(self, input_text: str, options: GenerationOptions) -> str:
        try:
            response = await self.client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=build_system_prompt(options),
                messages=[{"role": "user", "content": input_text}],
            )
        except anthropic.RateLimitError as e:
            raise RateLimitError(f"Anthropic rate limit exceeded: {e}", provider=self.name, status_code=429)
        except anthropic.PermissionDeniedError as e:
            raise RateLimitError(f"Anthropic access denied: {e}", provider=self.name, status_code=403)
        except anthropic.AuthenticationError as e:
            raise AuthenticationError(f"Anthropic authentication failed: {e}", provider=self.name, status_code=401)
        except anthropic.APITimeoutError as e:
            raise ProviderTimeoutError(f"Anthropic request timed out: {e}", provider=self.name)
        except anthropic.APIStatusError as e:
            raise error_for_status(e.status_code, f"Anthropic API error {e.status_code}: {e}", self.name)
        except anthropic.APIConnectionError as e:
            raise ModelError(f"Anthropic connection failed: {e}", provider=self.name)

        parts = [block.text for block in response.content if getattr(block, 'type', None) == 'text']
        if not parts:
            raise ResponseParseError("Anthropic response had no text content", provider=self.name)
        return "".join(parts)

    async def close(self) -> None:
        await self.client.close()


class HTTPProviderClient(BaseProviderClient):
    """Shared aiohttp plumbing for providers without an SDK."""

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
            **self.config.extra_headers,
        }

    async def _post_json(self, url: str, payload: Dict[str, Any]) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload, headers=self._headers()) as response:
                    if response.status >= 400:
                        error_text = await response.text()
                        retry_after = _as_float(response.headers.get('Retry-After'))
                        raise error_for_status(
                            response.status,
                            f"{self.name} API error {response.status}: {error_text[:200]}",
                            self.name,
                            retry_after=retry_after,
                        )
                    return await response.json(content_type=None)
        except aiohttp.ContentTypeError as e:
            raise ResponseParseError(f"{self.name} returned non-JSON payload: {e}", provider=self.name)
        except json.JSONDecodeError as e:
            raise ResponseParseError(f"{self.name} returned invalid JSON: {e}", provider=self.name)
        except aiohttp.ClientError as e:
            raise ModelError(f"{self.name} connection failed: {e}", provider=self.name)


class HuggingFaceClient(HTTPProviderClient):
    """HuggingFace Inference API client for instruction-tuned models."""

    DEFAULT_BASE_URL = "https://api-inference.huggingface.co/models"

    def build_prompt(self, input_text: str, options: GenerationOptions) -> str:
        return f"[INST] {build_system_prompt(options)} [/INST]\n\n{input_text}"

    async def _make_request(self, input_text: str, options: GenerationOptions) -> str:
        base_url = (self.config.base_url or self.DEFAULT_BASE_URL).rstrip('/')
        payload = {
            "inputs": self.build_prompt(input_text, options),
            "parameters": {
                "max_new_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
                "return_full_text": False,
            },
        }
        data = await self._post_json(f"{base_url}/{self.config.model}", payload)

        if isinstance(data, list) and data and isinstance(data[0], dict):
            data = data[0]
        if isinstance(data, dict):
            if data.get("error"):
                raise ModelError(f"HuggingFace error: {data['error']}", provider=self.name)
            if "generated_text" in data:
                return str(data["generated_text"])
        raise ResponseParseError("HuggingFace response missing generated_text", provider=self.name)

    def clean_response(self, text: str, max_length: int = 500, verbose_threshold: int = 300) -> str:
        # some models echo the prompt despite return_full_text=False
        if SYSTEM_PROMPT in text:
            text = text.split(SYSTEM_PROMPT, 1)[1]
        if "[/INST]" in text:
            text = text.rsplit("[/INST]", 1)[1]
        return super().clean_response(text, max_length, verbose_threshold)


class AIMLAPIClient(HTTPProviderClient):
    """AIMLAPI chat-completions client."""

    DEFAULT_BASE_URL = "https://api.aimlapi.com/v1"

    async def _make_request(self, input_text: str, options: GenerationOptions) -> str:
        base_url = (self.config.base_url or self.DEFAULT_BASE_URL).rstrip('/')
        payload = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": build_system_prompt(options)},
                {"role": "user", "content": input_text},
            ],
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }
        data = await self._post_json(f"{base_url}/chat/completions", payload)

        if isinstance(data, dict):
            choices = data.get("choices")
            if choices:
                try:
                    return choices[0]["message"]["content"] or ""
                except (KeyError, IndexError, TypeError) as e:
                    raise ResponseParseError(f"AIMLAPI choice malformed: {e}", provider=self.name)
            if data.get("output"):
                return str(data["output"])
        raise ResponseParseError("AIMLAPI response missing content", provider=self.name)


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class ProviderClientFactory:
    """Factory for provider clients keyed by provider name."""

    _client_classes: Dict[str, Type[BaseProviderClient]] = {
        'openai': OpenAICompatibleClient,
        'deepseek': OpenAICompatibleClient,
        'groq': OpenAICompatibleClient,
        'perplexity': OpenAICompatibleClient,
        'openrouter': OpenAICompatibleClient,
        'anthropic': AnthropicClient,
        'huggingface': HuggingFaceClient,
        'aimlapi': AIMLAPIClient,
    }

    @classmethod
    def create_client(cls, config: ProviderConfig) -> BaseProviderClient:
        client_class = cls._client_classes.get(config.name)
        if not client_class:
            raise ModelError(f"Unsupported provider: {config.name}", provider=config.name)
        return client_class(config)

    @classmethod
    def register_provider(cls, name: str, client_class: Type[BaseProviderClient]) -> None:
        cls._client_classes[name] = client_class
        logger.info(f"Registered custom provider: {name}")

    @classmethod
    def supported_providers(cls):
        return list(cls._client_classes)
