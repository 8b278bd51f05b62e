"""
LLM Manager for handling different language model providers.
"""

import logging
from typing import Dict, Any, List, Optional
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from ..exceptions import (
    ClassificationTimeoutError,
    ClassificationUnavailableError,
    ConfigurationError,
)

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"

DEFAULT_MODELS = {
    "gemini": "gemini-1.5-flash",
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
}


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""
    provider: str
    model: str
    temperature: float = 0.1
    max_tokens: int = 200
    api_key: Optional[str] = None
    timeout: float = 30.0

    @classmethod
    def from_dict(cls, provider: str, config: Dict[str, Any]) -> "LLMConfig":
        return cls(
            provider=provider,
            model=config.get("model", DEFAULT_MODELS[provider]),
            temperature=config.get("temperature", 0.1),
            max_tokens=config.get("max_tokens", 200),
            api_key=config.get("api_key") or None,
            timeout=config.get("timeout", 30.0),
        )


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    def __init__(self, config: LLMConfig):
        self.config = config
        if not config.api_key:
            raise ConfigurationError(f"{config.provider} API key not configured")

    @abstractmethod
    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate text using the LLM."""
        pass

    async def close(self):
        """Release any client resources held by the provider."""
        pass


class GeminiProvider(LLMProvider):
    """Google Gemini provider using the generateContent REST API."""

    def __init__(self, config: LLMConfig, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(config)
        self.client = http_client or httpx.AsyncClient(timeout=config.timeout)

    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate text using Gemini."""
        url = f"{GEMINI_API_URL}/models/{self.config.model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": kwargs.get("temperature", self.config.temperature),
                "maxOutputTokens": kwargs.get("max_tokens", self.config.max_tokens),
            },
        }
        try:
            response = await self.client.post(
                url,
                json=payload,
                headers={"x-goog-api-key": self.config.api_key},
            )
        except httpx.TimeoutException as e:
            raise ClassificationTimeoutError(f"Gemini request timed out: {e}") from e
        except httpx.RequestError as e:
            raise ClassificationUnavailableError(f"Gemini request failed: {e}") from e

        if response.is_error:
            raise ClassificationUnavailableError(
                f"Gemini API error {response.status_code}: {response.text[:200]}"
            )

        data = response.json()
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"] or ""
        except (KeyError, IndexError, TypeError):
            logger.warning("Gemini response contained no text candidate")
            return ""

    async def close(self):
        await self.client.aclose()


class OpenAIProvider(LLMProvider):
    """OpenAI provider implementation."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        try:
            import openai
        except ImportError:
            raise ImportError("OpenAI package not installed")
        self._sdk = openai
        self.client = openai.AsyncOpenAI(api_key=config.api_key, timeout=config.timeout)

    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate text using OpenAI."""
        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=kwargs.get("max_tokens", self.config.max_tokens),
                temperature=kwargs.get("temperature", self.config.temperature)
            )
        except self._sdk.APITimeoutError as e:
            raise ClassificationTimeoutError(f"OpenAI request timed out: {e}") from e
        except self._sdk.APIError as e:
            raise ClassificationUnavailableError(f"OpenAI generation error: {e}") from e
        return response.choices[0].message.content or ""

    async def close(self):
        await self.client.close()


class AnthropicProvider(LLMProvider):
    """Anthropic provider implementation."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        try:
            import anthropic
        except ImportError:
            raise ImportError("Anthropic package not installed")
        self._sdk = anthropic
        self.client = anthropic.AsyncAnthropic(api_key=config.api_key, timeout=config.timeout)

    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate text using Anthropic."""
        try:
            response = await self.client.messages.create(
                model=self.config.model,
                max_tokens=kwargs.get("max_tokens", self.config.max_tokens),
                temperature=kwargs.get("temperature", self.config.temperature),
                messages=[{"role": "user", "content": prompt}]
            )
        except self._sdk.APITimeoutError as e:
            raise ClassificationTimeoutError(f"Anthropic request timed out: {e}") from e
        except self._sdk.APIError as e:
            raise ClassificationUnavailableError(f"Anthropic generation error: {e}") from e
        if not response.content:
            return ""
        return response.content[0].text


class LLMManager:
    """Manager for handling different LLM providers."""

    def __init__(self, config: Dict[str, Any], http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.http_client = http_client
        self.providers: Dict[str, LLMProvider] = {}
        self._initialize_providers()
        self.default_provider = self.config.get("default_provider") or next(iter(self.providers))
        if self.default_provider not in self.providers:
            raise ConfigurationError(
                f"Default provider {self.default_provider} is not configured"
            )

    def _initialize_providers(self):
        """Initialize every provider that has a configuration block."""
        for name, provider_cls in (
            ("gemini", GeminiProvider),
            ("openai", OpenAIProvider),
            ("anthropic", AnthropicProvider),
        ):
            if name not in self.config:
                continue
            provider_config = LLMConfig.from_dict(name, self.config[name] or {})
            try:
                if provider_cls is GeminiProvider:
                    self.providers[name] = GeminiProvider(provider_config, self.http_client)
                else:
                    self.providers[name] = provider_cls(provider_config)
                logger.info(f"{name} provider initialized with model {provider_config.model}")
            except (ConfigurationError, ImportError) as e:
                logger.warning(f"Failed to initialize {name} provider: {e}")

        if not self.providers:
            raise ConfigurationError("No LLM providers could be initialized")

    async def generate(self, prompt: str, provider: Optional[str] = None, **kwargs) -> str:
        """Generate text using specified or default provider."""
        provider_name = provider or self.default_provider

        if provider_name not in self.providers:
            raise ClassificationUnavailableError(f"Provider {provider_name} not available")

        return await self.providers[provider_name].generate(prompt, **kwargs)

    def get_available_providers(self) -> List[str]:
        """Get list of available providers."""
        return list(self.providers.keys())

    async def close(self):
        for provider in self.providers.values():
            await provider.close()
