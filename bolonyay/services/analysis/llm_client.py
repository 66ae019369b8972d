"""LLM provider abstraction layer.

Routes analysis requests to Azure OpenAI, OpenAI or Anthropic based on
the configured provider. Returns raw reply text and token usage. Retry
logic handles transient errors and rate limits with exponential backoff.
The client is prompt-agnostic: callers choose the template.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bolonyay.core.exceptions import AnalysisError, ConfigurationError, LLMProviderError, RateLimitError

if TYPE_CHECKING:
    from bolonyay.core.config import Settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

DEFAULT_SYSTEM_PROMPT = "You are a legal assistant for Indian citizens."


@runtime_checkable
class LanguageAnalysisClient(Protocol):
    """Contract consumed by the case analysis engine."""

    async def analyze(
        self,
        prompt: str,
        language: str,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        temperature: float = 0.2,
        max_tokens: int = 800,
    ) -> str: ...


@dataclass(frozen=True)
class LLMResponse:
    """Raw response from an LLM provider."""

    content: str
    prompt_tokens: int
    completion_tokens: int
    model: str


class LLMClient:
    """Unified async client for Azure OpenAI, OpenAI and Anthropic.

    SDK clients are created lazily on first use so that importing this
    module never requires credentials.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._provider = settings.llm_provider
        self._openai_client: object | None = None
        self._anthropic_client: object | None = None

    @property
    def model(self) -> str:
        if self._provider == "azure":
            return self._settings.azure_openai_deployment
        if self._provider == "anthropic":
            return self._settings.anthropic_model
        return self._settings.openai_model

    def _get_openai(self) -> object:
        if self._openai_client is None:
            if self._provider == "azure":
                from openai import AsyncAzureOpenAI

                if not self._settings.azure_openai_endpoint:
                    raise ConfigurationError("Azure OpenAI endpoint is not configured")
                self._openai_client = AsyncAzureOpenAI(
                    api_key=self._settings.azure_openai_api_key,
                    azure_endpoint=self._settings.azure_openai_endpoint,
                    api_version=self._settings.azure_openai_api_version,
                    timeout=self._settings.llm_request_timeout,
                )
            else:
                from openai import AsyncOpenAI

                self._openai_client = AsyncOpenAI(
                    api_key=self._settings.openai_api_key,
                    timeout=self._settings.llm_request_timeout,
                )
        return self._openai_client

    def _get_anthropic(self) -> object:
        if self._anthropic_client is None:
            from anthropic import AsyncAnthropic

            self._anthropic_client = AsyncAnthropic(
                api_key=self._settings.anthropic_api_key,
                timeout=self._settings.llm_request_timeout,
            )
        return self._anthropic_client

    async def analyze(
        self,
        prompt: str,
        language: str,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        temperature: float = 0.2,
        max_tokens: int = 800,
    ) -> str:
        """Send one prompt and return the trimmed reply text."""
        response = await self.complete(
            system_prompt=system_prompt,
            user_prompt=prompt,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        content = response.content.strip()
        if not content:
            msg = "Language model returned an empty response"
            raise AnalysisError(msg, details={"model": response.model, "language": language})
        logger.info(
            "analysis_completed",
            model=response.model,
            language=language,
            prompt_tokens=response.prompt_tokens,
            completion_tokens=response.completion_tokens,
        )
        return content

    @retry(
        retry=retry_if_exception_type((LLMProviderError,)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    async def complete(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 800,
    ) -> LLMResponse:
        """Send a chat request to the configured provider."""
        if self._provider == "anthropic":
            return await self._call_anthropic(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        return await self._call_openai(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    async def _call_openai(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        from openai import (
            APIConnectionError,
            APIStatusError,
            AsyncOpenAI,
        )
        from openai import (
            RateLimitError as OAIRateLimit,
        )

        client: AsyncOpenAI = self._get_openai()  # type: ignore[assignment]
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OAIRateLimit as exc:
            raise RateLimitError("OpenAI rate limit", retry_after=60.0) from exc
        except (APIStatusError, APIConnectionError) as exc:
            msg = f"OpenAI API error: {exc}"
            raise LLMProviderError(msg) from exc

        if not response.choices:
            raise AnalysisError("No AI response received")
        content = response.choices[0].message.content or ""
        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0

        logger.debug(
            "openai_response",
            provider=self._provider,
            model=response.model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )

        return LLMResponse(
            content=content,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            model=response.model or self.model,
        )

    async def _call_anthropic(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic
        from anthropic import RateLimitError as AnthropicRateLimit

        client: AsyncAnthropic = self._get_anthropic()  # type: ignore[assignment]
        try:
            response = await client.messages.create(
                model=self.model,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except AnthropicRateLimit as exc:
            raise RateLimitError("Anthropic rate limit", retry_after=60.0) from exc
        except (APIStatusError, APIConnectionError) as exc:
            msg = f"Anthropic API error: {exc}"
            raise LLMProviderError(msg) from exc

        from anthropic.types import TextBlock

        content = "".join(block.text for block in response.content if isinstance(block, TextBlock))

        logger.debug(
            "anthropic_response",
            model=self.model,
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
        )

        return LLMResponse(
            content=content,
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            model=self.model,
        )
