"""OpenAI chat completion provider."""

import logging
import os
from collections.abc import Sequence
from typing import Any

from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    RateLimitError,
)

from lexi.core.exceptions import ConfigurationError, GenerationError
from lexi.core.models import ContextTurn
from lexi.engines.generation.base import GenerationProvider

logger = logging.getLogger(__name__)


class OpenAIGenerationProvider(GenerationProvider):
    """OpenAI chat completions provider.

    Sends the system prompt, any prior conversational turns and the user
    prompt as chat messages.

    Default variants: gpt-4o, then gpt-4
    """

    def __init__(
        self,
        models: Sequence[str] = ("gpt-4o", "gpt-4"),
        api_key: str | None = None,
        timeout: float = 60.0,
    ):
        """Initialize OpenAI generation provider.

        Args:
            models: Chat model variants, tried in order
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
            timeout: Request timeout in seconds (default: 60s)

        A missing API key does not raise here: the provider reports
        is_configured=False and is skipped by the gateway.
        """
        super().__init__(models)
        self.timeout = timeout
        self.api_key = api_key or os.getenv("OPENAI_API_KEY") or ""
        self.client: AsyncOpenAI | None = None

        if self.api_key:
            self.client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout)
        else:
            logger.info("OpenAI generation provider not configured (no API key)")

    @property
    def provider_name(self) -> str:
        """Get provider name."""
        return "openai"

    @property
    def is_configured(self) -> bool:
        """True when an API key was provided."""
        return self.client is not None

    async def _generate_with_model(
        self,
        model: str,
        prompt: str,
        system_prompt: str,
        temperature: float,
        max_tokens: int,
        context: Sequence[ContextTurn],
    ) -> str:
        if self.client is None:
            raise ConfigurationError("OpenAI API key required. Set OPENAI_API_KEY.")

        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": turn.role, "content": turn.content} for turn in context)
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except AuthenticationError as e:
            raise ConfigurationError(f"OpenAI rejected credentials: {e}") from e
        except (APITimeoutError, APIConnectionError, RateLimitError) as e:
            raise GenerationError(
                f"OpenAI {model} unavailable: {e}", details={"transient": True}
            ) from e
        except Exception as e:
            logger.error(f"OpenAI API error: {e}")
            raise GenerationError(f"OpenAI {model} failed: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
