"""Generation providers for prompt -> text.

Supports interchangeable backends, each with nested model fallback:
- Google Gemini (google-genai SDK, requires GOOGLE_API_KEY)
- OpenAI chat completions (openai SDK, requires OPENAI_API_KEY)
"""

from lexi.engines.generation.base import GenerationProvider
from lexi.engines.generation.factory import (
    create_generation_provider,
    create_generation_providers,
)
from lexi.engines.generation.google import GoogleGenerationProvider
from lexi.engines.generation.openai import OpenAIGenerationProvider

__all__ = [
    "GenerationProvider",
    "GoogleGenerationProvider",
    "OpenAIGenerationProvider",
    "create_generation_provider",
    "create_generation_providers",
]
