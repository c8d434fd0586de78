"""Google Gemini generation provider."""

import logging
import os
from collections.abc import Sequence

from google import genai
from google.genai import errors, types

from lexi.core.exceptions import ConfigurationError, GenerationError
from lexi.core.models import ContextTurn
from lexi.engines.generation.base import GenerationProvider

logger = logging.getLogger(__name__)

# HTTP status codes worth retrying on another model or backend
_TRANSIENT_CODES = {408, 429, 500, 502, 503, 504}


class GoogleGenerationProvider(GenerationProvider):
    """Google Gemini provider via the google-genai SDK.

    Default variants: gemini-2.5-flash, gemini-1.5-flash, gemini-pro.
    Older variants stay in the list so a deprecation of the newest model
    degrades to an older one instead of failing over to another backend.
    """

    def __init__(
        self,
        models: Sequence[str] = ("gemini-2.5-flash", "gemini-1.5-flash", "gemini-pro"),
        api_key: str | None = None,
        timeout: float = 60.0,
    ):
        """Initialize Gemini generation provider.

        Args:
            models: Gemini model variants, tried in order
            api_key: Google API key (defaults to GOOGLE_API_KEY env var)
            timeout: Request timeout in seconds (default: 60s)
        """
        super().__init__(models)
        self.timeout = timeout
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY") or ""
        self.client: genai.Client | None = None

        if self.api_key:
            self.client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        else:
            logger.info("Google generation provider not configured (no API key)")

    @property
    def provider_name(self) -> str:
        """Get provider name."""
        return "google"

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
            raise ConfigurationError("Google AI not configured. Set GOOGLE_API_KEY.")

        contents = [
            types.Content(
                role="model" if turn.role == "assistant" else "user",
                parts=[types.Part(text=turn.content)],
            )
            for turn in context
        ]
        contents.append(types.Content(role="user", parts=[types.Part(text=prompt)]))

        try:
            response = await self.client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
            )
        except errors.APIError as e:
            if e.code in (401, 403):
                raise ConfigurationError(f"Google AI rejected credentials: {e}") from e
            raise GenerationError(
                f"Google AI {model} failed: {e}",
                details={"transient": e.code in _TRANSIENT_CODES, "status": e.code},
            ) from e
        except Exception as e:
            logger.error(f"Google AI API error: {e}")
            raise GenerationError(f"Google AI {model} failed: {e}") from e

        return response.text or ""
