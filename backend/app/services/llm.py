"""Text generation with Gemini as primary provider and DeepSeek as fallback."""

from __future__ import annotations

import logging
from typing import Sequence

from google import genai
from google.genai import types
from openai import OpenAI

from .. import settings
from .errors import UnavailableError

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    pass


class GeminiProvider:
    name = "gemini"

    def __init__(self, api_key: str | None = None, model: str | None = None):
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self._client = None

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(settings.LLM_TIMEOUT_SECONDS * 1000)),
            )
        return self._client

    def generate(self, prompt: str) -> str:
        response = self._get_client().models.generate_content(model=self.model, contents=prompt)
        text = (getattr(response, "text", None) or "").strip()
        if not text:
            raise ProviderError("Gemini returned an empty response")
        return text


class DeepSeekProvider:
    name = "deepseek"

    def __init__(self, api_key: str | None = None, model: str | None = None, base_url: str | None = None):
        self.api_key = api_key if api_key is not None else settings.DEEPSEEK_API_KEY
        self.model = model or settings.DEEPSEEK_MODEL
        self.base_url = base_url or settings.DEEPSEEK_BASE_URL
        self._client = None

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=settings.LLM_TIMEOUT_SECONDS,
                max_retries=0,
            )
        return self._client

    def generate(self, prompt: str) -> str:
        completion = self._get_client().chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.7,
        )
        text = ((completion.choices[0].message.content if completion.choices else "") or "").strip()
        if not text:
            raise ProviderError("DeepSeek returned an empty response")
        return text


def default_providers() -> list:
    return [GeminiProvider(), DeepSeekProvider()]


def generate_text(prompt: str, providers: Sequence | None = None, stage: str = "generation") -> str:
    """
    Try each configured provider once, in order.

    There is no retry beyond moving on to the next provider; when every
    provider fails (or none is configured) the caller gets an
    UnavailableError.
    """
    providers = default_providers() if providers is None else providers
    for provider in providers:
        if not provider.is_configured():
            continue
        try:
            return provider.generate(prompt)
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s generation failed, trying next provider: %s", provider.name, exc)
    raise UnavailableError("No AI provider available", stage=stage)
