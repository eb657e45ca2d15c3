"""Anthropic LLM provider adapter.

Wraps the ``anthropic`` async client to implement :class:`ILLMProvider`
via the Messages API.  Responses are a list of content blocks; only text
blocks are kept and joined.
"""

from __future__ import annotations

import anthropic
import structlog

from ragdesk.config.settings import Settings
from ragdesk.interfaces.llm_provider import ILLMProvider
from ragdesk.utils.errors import GenerationError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MODEL = "claude-3-5-haiku-latest"


class AnthropicLLMProvider(ILLMProvider):
    """LLM provider backed by the Anthropic Claude API."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.anthropic_api_key
        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        self._default_model = settings.chat_model or _DEFAULT_MODEL
        self._temperature = settings.generation_temperature
        self._max_tokens = settings.generation_max_tokens

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def generate(self, prompt: str, model: str | None = None) -> str:
        model_name = model or self._default_model
        try:
            response = await self._client.messages.create(
                model=model_name,
                max_tokens=self._max_tokens,
                messages=[{"role": "user", "content": prompt}],
                temperature=self._temperature,
            )
        except anthropic.APIError as exc:
            raise GenerationError(
                message=f"Anthropic API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise GenerationError(
                message="Anthropic returned no text content",
                provider_name=self.get_provider_name(),
            )

        logger.info(
            "anthropic_completion",
            model=model_name,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return "\n".join(text_blocks)

    def get_default_model(self) -> str:
        return self._default_model

    def get_provider_name(self) -> str:
        return "anthropic"

    def is_available(self) -> bool:
        return bool(self._api_key)
