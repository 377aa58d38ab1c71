"""
Text generation client.

The rest of the backend only depends on the ``TextGenerator`` protocol
(prompt in, text out). ``OpenAITextGenerator`` implements it over the
``openai`` SDK, so any OpenAI-compatible endpoint can be used via
``OPENAI_BASE_URL``.
"""

import logging
from typing import Optional, Protocol

from openai import OpenAI

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


class TextGenerationError(Exception):
    """Raised when the generation endpoint is misconfigured or returns nothing usable."""
    pass


class TextGenerator(Protocol):
    """Prompt-in, text-out generator. Implementations do not retry."""

    model_name: str

    def generate(self, prompt: str) -> str:
        ...


class OpenAITextGenerator:
    """TextGenerator backed by the Chat Completions API."""

    SYSTEM_MESSAGE = (
        "You are an expert admissions consultant. "
        "Respond with valid JSON only, without markdown code fences."
    )

    def __init__(self, settings: Optional[Settings] = None, client: Optional[OpenAI] = None):
        self.settings = settings or get_settings()
        if client is None:
            if not self.settings.OPENAI_API_KEY:
                raise TextGenerationError(
                    "Missing OPENAI_API_KEY. Set it in environment variables or a .env file."
                )
            client = OpenAI(
                api_key=self.settings.OPENAI_API_KEY,
                base_url=self.settings.OPENAI_BASE_URL,
            )
        self._client = client
        self.model_name = self.settings.OPENAI_MODEL

    def generate(self, prompt: str) -> str:
        response = self._client.chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": self.SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ],
            temperature=self.settings.GENERATION_TEMPERATURE,
            max_tokens=self.settings.GENERATION_MAX_TOKENS,
            timeout=self.settings.OPENAI_TIMEOUT_S,
        )
        choice = response.choices[0]
        content = choice.message.content if choice.message else None
        if not content:
            raise TextGenerationError("Empty response from text generation endpoint")
        if choice.finish_reason == "length":
            logger.info("Generation hit the token limit after %d chars", len(content))
        return content
