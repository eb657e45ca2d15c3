"""Abstract base class for answer-generation (LLM) providers.

The generator is the only nondeterministic step of answering a question.
Everything around it (retrieval, prompt assembly, citation parsing) is
deterministic, so the contract here is deliberately narrow: one prompt in,
one block of text out.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: AnthropicLLMProvider, OpenAILLMProvider, OllamaLLMProvider
# Located in: ragdesk/providers/llm/
class ILLMProvider(ABC):
    """Contract for text generators used by the answer generator."""

    @abstractmethod
    async def generate(self, prompt: str, model: str | None = None) -> str:
        """Generate free-form text for *prompt*.

        Parameters
        ----------
        prompt:
            The complete grounding prompt built by
            :class:`~ragdesk.services.rag.prompt_builder.PromptBuilder`.
        model:
            Model identifier.  ``None`` selects :meth:`get_default_model`.

        Returns
        -------
        str
            The model's answer text.

        Raises
        ------
        ragdesk.utils.errors.GenerationError
            If the API call fails or returns no text.
        """

    @abstractmethod
    def get_default_model(self) -> str:
        """Return the model used when :meth:`generate` gets ``model=None``."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"anthropic"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are configured."""
