"""
LLM provider abstraction for the enrichment providers.

A thin async completion interface over the OpenAI and Anthropic chat APIs,
plus a scripted mock for tests and offline runs. SDK clients are created
lazily on the first request, so building a provider never needs network
access or credentials.
"""

from __future__ import annotations

import json
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ..exceptions import ConfigurationError, ProviderError


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""

    provider: str  # "openai", "anthropic", "mock"
    model: str | None = None
    api_key: str | None = None
    base_url: str | None = None
    temperature: float = 0.3
    max_tokens: int = 2048

    def __repr__(self) -> str:
        """Repr with the API key reduced to its first three characters."""
        if not self.api_key:
            key_repr = "None"
        elif len(self.api_key) > 6:
            key_repr = f"'{self.api_key[:3]}...'"
        else:
            key_repr = "'***'"
        return (
            f"LLMConfig(provider={self.provider!r}, model={self.model!r}, "
            f"api_key={key_repr}, base_url={self.base_url!r}, "
            f"temperature={self.temperature!r}, max_tokens={self.max_tokens!r})"
        )


@dataclass
class LLMResponse:
    """Text of one completion plus accounting."""

    text: str
    tokens_used: int | None = None
    duration_ms: int = 0
    raw_response: Any = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name = "llm"
    display_name = "LLM"
    default_model = ""
    api_key_env: str | None = None

    def __init__(self, config: LLMConfig):
        self.config = config

    @property
    def model(self) -> str:
        return self.config.model or self.default_model

    def _client_kwargs(self) -> dict[str, Any]:
        """SDK client arguments: API key from config, then environment; optional base URL.

        Raises:
            ConfigurationError: If no API key is available.
        """
        api_key = self.config.api_key
        if not api_key and self.api_key_env:
            api_key = os.environ.get(self.api_key_env)
        if not api_key:
            raise ConfigurationError(
                f"{self.display_name} API key not found. "
                f"Set {self.api_key_env} env var or pass in config."
            )
        kwargs: dict[str, Any] = {"api_key": api_key}
        if self.config.base_url:
            kwargs["base_url"] = self.config.base_url
        return kwargs

    def check_credentials(self) -> None:
        """Fail fast when a keyed backend has no API key.

        Raises:
            ConfigurationError: If no API key is available.
        """
        if self.api_key_env:
            self._client_kwargs()

    @abstractmethod
    async def complete(self, system: str, user: str) -> LLMResponse:
        """
        Send one system + user prompt pair and return the completion.

        Raises:
            ConfigurationError: If the backend is not configured.
            ProviderError: If the API call fails.
        """
        ...


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API. Needs ANTHROPIC_API_KEY or ``api_key`` in LLMConfig."""

    name = "anthropic"
    display_name = "Anthropic"
    default_model = "claude-sonnet-4-20250514"
    api_key_env = "ANTHROPIC_API_KEY"

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            import anthropic

            self._client = anthropic.AsyncAnthropic(**self._client_kwargs())
        return self._client

    async def complete(self, system: str, user: str) -> LLMResponse:
        client = self._get_client()
        started = time.time()
        try:
            message = await client.messages.create(
                model=self.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=system,
                messages=[{"role": "user", "content": user}],
            )
        except Exception as e:
            raise ProviderError(f"Anthropic API call failed: {e}") from e

        text = "".join(block.text for block in message.content if block.type == "text")
        usage = message.usage
        return LLMResponse(
            text=text,
            tokens_used=usage.input_tokens + usage.output_tokens if usage else None,
            duration_ms=int((time.time() - started) * 1000),
            raw_response=message,
        )


class OpenAIProvider(LLMProvider):
    """
    OpenAI Chat Completions API. Needs OPENAI_API_KEY or ``api_key`` in LLMConfig.

    Requests JSON-object output, since every enrichment prompt asks for a
    single JSON object. ``base_url`` covers Azure and compatible proxies.
    """

    name = "openai"
    display_name = "OpenAI"
    default_model = "gpt-4o-mini"
    api_key_env = "OPENAI_API_KEY"

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            import openai

            self._client = openai.AsyncOpenAI(**self._client_kwargs())
        return self._client

    async def complete(self, system: str, user: str) -> LLMResponse:
        client = self._get_client()
        started = time.time()
        try:
            response = await client.chat.completions.create(
                model=self.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
            )
        except Exception as e:
            raise ProviderError(f"OpenAI API call failed: {e}") from e

        text = ""
        if response.choices:
            message = response.choices[0].message
            if message and message.content:
                text = message.content
        usage = response.usage
        return LLMResponse(
            text=text,
            tokens_used=usage.prompt_tokens + usage.completion_tokens if usage else None,
            duration_ms=int((time.time() - started) * 1000),
            raw_response=response,
        )


class MockProvider(LLMProvider):
    """Offline provider for tests and dry runs.

    ``responses`` maps a marker string to a canned completion; the first
    marker found in the system or user prompt wins. Anything else gets
    ``{}``, which every enrichment reads as "nothing found".
    """

    name = "mock"
    display_name = "Mock"
    default_model = "mock"

    def __init__(self, config: LLMConfig, responses: dict[str, str] | None = None):
        super().__init__(config)
        self.responses = responses or {}
        self.call_count = 0
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system: str, user: str) -> LLMResponse:
        self.call_count += 1
        self.calls.append((system, user))
        for marker, text in self.responses.items():
            if marker in system or marker in user:
                return LLMResponse(text=text)
        return LLMResponse(text=json.dumps({}))


_PROVIDERS: dict[str, type[LLMProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "mock": MockProvider,
}


def create_llm_provider(config: LLMConfig) -> LLMProvider:
    """
    Build the LLM client named by ``config.provider``.

    Raises:
        ConfigurationError: If ``config.provider`` is not a known backend.
    """
    provider_cls = _PROVIDERS.get(config.provider)
    if provider_cls is None:
        raise ConfigurationError(f"Unknown LLM provider: {config.provider}")
    return provider_cls(config)


__all__ = [
    "AnthropicProvider",
    "LLMConfig",
    "LLMProvider",
    "LLMResponse",
    "MockProvider",
    "OpenAIProvider",
    "create_llm_provider",
]
