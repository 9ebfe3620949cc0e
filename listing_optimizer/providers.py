"""
Generation backends.

Every backend implements the Provider interface; the orchestrator depends on
nothing else. The bundled backends all speak the OpenAI chat-completions
protocol, so one implementation covers them with a per-backend base_url.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence, Type
import json
import logging
import re

import openai
from openai import AsyncOpenAI

from .config import GENERIC_RULES, PLATFORM_RULES
from .errors import (
    AuthenticationFailure,
    ConfigurationError,
    ProviderError,
    ProviderTimeout,
    RateLimitExceeded,
    ResponseFormatError,
    TransientNetworkError,
)
from .models import GenerationRequest, GenerationResponse, ProviderDescriptor, RuleSet
from .prompts import build_prompt

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "bullets", "description", "keywords", "platform_notes")

# (platform, category, limit) -> stored examples
ExampleSource = Callable[[str, Optional[str], int], Sequence[Any]]


class Provider(ABC):
    """One remote text-generation backend."""

    def __init__(self, descriptor: ProviderDescriptor):
        self.descriptor = descriptor

    @abstractmethod
    async def generate(
        self,
        request: GenerationRequest,
        rules: Optional[RuleSet] = None,
    ) -> GenerationResponse:
        """
        Run one generation call.

        Args:
            request: Generation request
            rules: Rule set the listing will be validated against; the prompt
                states the same limits. Looked up from request.platform if omitted

        Raises:
            AuthenticationFailure, RateLimitExceeded, ResponseFormatError,
            TransientNetworkError, ProviderTimeout
        """

    def validate_structure(self, response: Any) -> bool:
        """True if response carries every listing field with the right shape."""
        if not isinstance(response, dict):
            return False
        for name in REQUIRED_FIELDS:
            if name not in response:
                logger.debug(f"[{self.name()}] Missing field: {name}")
                return False

        if not isinstance(response["title"], str) or not response["title"].strip():
            return False
        if not isinstance(response["bullets"], list) or not response["bullets"]:
            return False
        if not isinstance(response["description"], str) or not response["description"].strip():
            return False
        if not isinstance(response["keywords"], list):
            return False
        if not isinstance(response["platform_notes"], str):
            return False
        return True

    def name(self) -> str:
        """Backend identity used for cooldowns and diagnostics."""
        return self.descriptor.backend_id

    @property
    def timeout(self) -> float:
        return self.descriptor.timeout

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name()!r}, model={self.descriptor.model!r})"


# Provider registry for factory function
_provider_types: dict[str, Type[Provider]] = {}


def register_provider(name: str):
    """Decorator to register a Provider implementation under a type name."""
    def decorator(cls: Type[Provider]):
        _provider_types[name] = cls
        return cls
    return decorator


def get_provider_type(name: str) -> Type[Provider]:
    """Look up a registered implementation."""
    if name not in _provider_types:
        available = ", ".join(sorted(_provider_types))
        raise ConfigurationError(f"Unknown provider type: {name}. Available: {available}")
    return _provider_types[name]


def registered_provider_types() -> list[str]:
    return sorted(_provider_types)


def create_provider(descriptor: ProviderDescriptor, **kwargs) -> Provider:
    """
    Factory function to create a provider instance.

    Args:
        descriptor: Backend descriptor
        **kwargs: Additional provider parameters

    Returns:
        Configured Provider instance
    """
    return get_provider_type(descriptor.provider_type)(descriptor, **kwargs)


def extract_json(content: str) -> Any:
    """
    Parse JSON from model output, handling common formatting issues.

    Raises:
        ResponseFormatError: If no JSON object can be recovered
    """
    if not content:
        raise ResponseFormatError("Empty response")

    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    # Handle cases where model wraps JSON in markdown code blocks
    fence = re.search(r"```(?:json)?\s*([\s\S]*?)```", content)
    if fence:
        try:
            return json.loads(fence.group(1).strip())
        except json.JSONDecodeError:
            pass

    # Text before/after JSON: take the outermost { }
    brace_start = content.find("{")
    brace_end = content.rfind("}")
    if brace_start != -1 and brace_end > brace_start:
        try:
            return json.loads(content[brace_start:brace_end + 1])
        except json.JSONDecodeError:
            pass

    raise ResponseFormatError(f"Could not extract valid JSON from response: {content[:200]}")


def translate_openai_error(exc: openai.OpenAIError, backend: str) -> ProviderError:
    """Map an OpenAI SDK exception onto the typed error taxonomy."""
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AuthenticationFailure(f"Authentication failed for {backend}: {exc}", backend)
    if isinstance(exc, openai.RateLimitError):
        return RateLimitExceeded(f"Rate limit exceeded for {backend}: {exc}", backend)
    # APITimeoutError subclasses APIConnectionError, so check it first
    if isinstance(exc, openai.APITimeoutError):
        return ProviderTimeout(f"Request to {backend} timed out", backend)
    if isinstance(exc, openai.APIConnectionError):
        return TransientNetworkError(f"Connection to {backend} failed: {exc}", backend)
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code >= 500 or exc.status_code in (408, 409):
            return TransientNetworkError(f"{backend} API error {exc.status_code}: {exc}", backend)
        return ResponseFormatError(f"{backend} rejected the request ({exc.status_code}): {exc}", backend)
    return TransientNetworkError(f"{backend} API error: {exc}", backend)


class OpenAICompatibleProvider(Provider):
    """
    Provider for any backend exposing an OpenAI-compatible chat endpoint.

    Args:
        descriptor: Backend descriptor (credentials, model, limits)
        client: Optional pre-built AsyncOpenAI client (for tests)
        example_source: Optional callable returning stored training examples
    """

    json_mode = True

    def __init__(
        self,
        descriptor: ProviderDescriptor,
        client: Optional[AsyncOpenAI] = None,
        example_source: Optional[ExampleSource] = None,
    ):
        super().__init__(descriptor)
        # Retries belong to the orchestrator; the SDK must not retry on its own
        self.client = client or AsyncOpenAI(
            api_key=descriptor.api_key,
            base_url=descriptor.base_url,
            timeout=descriptor.timeout,
            max_retries=0,
        )
        self.example_source = example_source

    def _examples(self, request: GenerationRequest) -> Sequence[Any]:
        if self.example_source is None:
            return []
        try:
            return self.example_source(request.platform, request.product.category, 3)
        except Exception as e:
            logger.warning(f"[{self.name()}] Could not load training examples: {e}")
            return []

    async def generate(
        self,
        request: GenerationRequest,
        rules: Optional[RuleSet] = None,
    ) -> GenerationResponse:
        if rules is None:
            rules = PLATFORM_RULES.get(request.platform, GENERIC_RULES)
        system_prompt, user_prompt = build_prompt(request, rules, self._examples(request))

        logger.debug(f"[{self.name()}] Platform: {request.platform} | Mode: {request.mode.value}")

        params = {
            "model": self.descriptor.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.descriptor.temperature,
            "max_tokens": self.descriptor.max_tokens,
        }
        if self.json_mode:
            params["response_format"] = {"type": "json_object"}

        try:
            completion = await self.client.chat.completions.create(**params)
        except openai.OpenAIError as e:
            raise translate_openai_error(e, self.name()) from e

        if not completion.choices or not completion.choices[0].message.content:
            raise ResponseFormatError(f"Empty response from {self.name()}", self.name())

        content = completion.choices[0].message.content.strip()
        logger.debug(f"[{self.name()}] Raw response: {content[:200]}...")

        try:
            data = extract_json(content)
        except ResponseFormatError as e:
            e.provider = self.name()
            raise

        if not self.validate_structure(data):
            raise ResponseFormatError(f"Invalid response format from {self.name()}", self.name())

        return GenerationResponse(
            title=data["title"],
            bullets=[str(b) for b in data["bullets"]],
            description=data["description"],
            keywords=[str(k) for k in data["keywords"]],
            platform_notes=data["platform_notes"],
        )

    async def test_connection(self) -> bool:
        """
        Test connection to the backend.

        Returns:
            True if the backend answers a tiny completion, False otherwise
        """
        try:
            await self.client.chat.completions.create(
                model=self.descriptor.model,
                messages=[{"role": "user", "content": "Say OK"}],
                max_tokens=5,
            )
            return True
        except openai.OpenAIError as e:
            logger.error(f"Failed to connect to {self.name()}: {e}")
            return False


@register_provider("groq")
class GroqProvider(OpenAICompatibleProvider):
    """Groq-hosted Llama models."""


@register_provider("cloudflare")
class CloudflareProvider(OpenAICompatibleProvider):
    """Cloudflare Workers AI."""

    # Workers AI models do not all honour response_format
    json_mode = False


@register_provider("gemini")
class GeminiProvider(OpenAICompatibleProvider):
    """Google Gemini through its OpenAI-compatible endpoint."""


@register_provider("deepseek")
class DeepSeekProvider(OpenAICompatibleProvider):
    """DeepSeek chat models."""


@register_provider("openai")
class OpenAIProvider(OpenAICompatibleProvider):
    """OpenAI models."""
