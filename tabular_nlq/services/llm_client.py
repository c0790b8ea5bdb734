from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from groq import Groq
from openai import OpenAI

from tabular_nlq.config import Settings, get_settings
from tabular_nlq.errors import TranslationFailure
from tabular_nlq.services.prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    content: str
    model: str = ""


class TextGenerator(Protocol):
    def generate(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse: ...


class LLMClient:
    """Chat-completion client backed by Groq or OpenAI.

    Both SDKs expose the same ``chat.completions.create`` surface. If the
    configured model fails and ``llm.fallback_model`` is set, the call is
    retried once with the fallback.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        config = self._settings.llm
        if not config.api_key:
            raise TranslationFailure("LLM API key is not configured in config.yml (llm.api_key)")

        if config.provider == "groq":
            self._client = Groq(api_key=config.api_key)
        elif config.provider == "openai":
            self._client = OpenAI(api_key=config.api_key)
        else:
            raise TranslationFailure(f"Unsupported LLM provider: {config.provider}")

        logger.info("LLM client using provider=%s model=%s", config.provider, config.model)

    @property
    def provider(self) -> str:
        return self._settings.llm.provider

    def generate(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        config = self._settings.llm
        primary = model or config.model
        temperature = self._settings.inference.temperature if temperature is None else temperature
        max_tokens = max_tokens or self._settings.inference.max_tokens
        logger.debug("Generating with model=%s prompt_chars=%d", primary, len(prompt))
        try:
            return self._invoke(prompt, primary, temperature, max_tokens)
        except Exception as exc:  # noqa: BLE001 - provider SDKs raise many types
            fallback = config.fallback_model
            if not fallback or fallback == primary:
                raise
            logger.warning("Model %s failed (%s); retrying with fallback %s", primary, exc, fallback)
            return self._invoke(prompt, fallback, temperature, max_tokens)

    def _invoke(self, prompt: str, model: str, temperature: float, max_tokens: int) -> LLMResponse:
        completion = self._client.chat.completions.create(
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        content = completion.choices[0].message.content or ""
        logger.debug("LLM response received: %d chars", len(content))
        return LLMResponse(content=content, model=model)
