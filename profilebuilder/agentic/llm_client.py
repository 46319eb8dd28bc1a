"""
LLM Client - async wrapper over OpenAI-compatible and Anthropic chat APIs.

Used by the knowledge fallback source and the translator. Provides:
- Async completion calls with retry
- JSON extraction from fenced or chatty responses
- Token usage tracking
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-20241022",
}


@dataclass
class LLMResponse:
    """Response from an LLM call."""

    content: str
    input_tokens: int
    output_tokens: int
    model: str
    raw_response: Any = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def parse_json(self) -> Optional[Any]:
        """
        Parse content as JSON.

        Handles markdown code fences and leading/trailing prose by falling
        back to the outermost {...} or [...] span.
        """
        text = self.content.strip()

        if text.startswith("```"):
            lines = text.split("\n")[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            text = "\n".join(lines)

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

        match = re.search(r"(\{.*\}|\[.*\])", text, re.DOTALL)
        if match:
            try:
                return json.loads(match.group(1))
            except json.JSONDecodeError as e:
                logger.warning(f"Failed to parse LLM response as JSON: {e}")
                return None

        logger.warning("LLM response contained no JSON payload")
        return None


class LLMClient:
    """
    Unified async LLM client supporting OpenAI(-compatible) and Anthropic.

    Usage:
        client = LLMClient(provider="openai", api_key="sk-...")
        response = await client.complete("List the career history of ...")
        data = response.parse_json()
    """

    def __init__(
        self,
        provider: str = "openai",
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        max_tokens: int = 1000,
        temperature: float = 0.1,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """
        Initialize LLM client.

        Args:
            provider: "openai" or "anthropic"
            api_key: Provider API key
            model: Model name (provider default when omitted)
            base_url: OpenAI-compatible endpoint override
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature (0-1)
            max_retries: Number of attempts before giving up
            retry_delay: Base delay between retries (exponential backoff)
        """
        self.provider = provider.lower()
        self.api_key = api_key
        self.model = model or DEFAULT_MODELS.get(self.provider, DEFAULT_MODELS["openai"])
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        self._client = None
        self._total_tokens_used = 0

    @property
    def is_available(self) -> bool:
        return self.provider in DEFAULT_MODELS and bool(self.api_key)

    def _get_client(self):
        """Get or create the provider SDK client."""
        if self._client is None:
            if self.provider == "openai":
                self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
            else:
                self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
        temperature: Optional[float] = None,
    ) -> LLMResponse:
        """
        Send a completion request to the LLM.

        Args:
            prompt: User prompt/message
            system_prompt: Optional system message
            json_mode: Request JSON output format (OpenAI only)
            temperature: Per-call temperature override

        Returns:
            LLMResponse with content and usage stats

        Raises:
            ValueError: If provider not available
            Exception: The last provider error after all retries
        """
        if not self.is_available:
            raise ValueError(
                f"LLM provider '{self.provider}' not available. Check that the API key is set."
            )

        client = self._get_client()
        temp = self.temperature if temperature is None else temperature
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                if self.provider == "openai":
                    response = await self._openai_complete(
                        client, prompt, system_prompt, json_mode, temp
                    )
                else:
                    response = await self._anthropic_complete(
                        client, prompt, system_prompt, temp
                    )
                self._total_tokens_used += response.total_tokens
                return response

            except Exception as e:
                last_error = e
                logger.warning(
                    f"LLM request failed (attempt {attempt + 1}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))

        raise last_error

    async def _openai_complete(
        self,
        client: AsyncOpenAI,
        prompt: str,
        system_prompt: Optional[str],
        json_mode: bool,
        temperature: float,
    ) -> LLMResponse:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await client.chat.completions.create(**kwargs)

        usage = response.usage
        return LLMResponse(
            content=response.choices[0].message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self.model,
            raw_response=response,
        )

    async def _anthropic_complete(
        self,
        client: AsyncAnthropic,
        prompt: str,
        system_prompt: Optional[str],
        temperature: float,
    ) -> LLMResponse:
        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        response = await client.messages.create(**kwargs)

        usage = response.usage
        return LLMResponse(
            content=response.content[0].text if response.content else "",
            input_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
            model=self.model,
            raw_response=response,
        )

    @property
    def total_tokens_used(self) -> int:
        return self._total_tokens_used


def get_llm_client(provider: Optional[str] = None, settings=None) -> Optional[LLMClient]:
    """
    Build an LLM client from settings.

    Args:
        provider: Override provider (openai/anthropic)
        settings: Settings to read keys from (global settings when omitted)

    Returns:
        LLMClient if an API key is available, None otherwise
    """
    from profilebuilder.core.config import get_settings

    settings = settings or get_settings()
    provider = provider or settings.llm_provider

    if provider is None:
        if settings.openai_api_key:
            provider = "openai"
        elif settings.anthropic_api_key:
            provider = "anthropic"
        else:
            logger.warning("No LLM API key configured (OPENAI_API_KEY or ANTHROPIC_API_KEY)")
            return None

    api_key = settings.openai_api_key if provider == "openai" else settings.anthropic_api_key
    if not api_key:
        logger.warning(f"No API key configured for {provider}")
        return None

    return LLMClient(
        provider=provider,
        api_key=api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url if provider == "openai" else None,
        max_tokens=settings.llm_max_tokens,
        max_retries=settings.max_retries,
    )
