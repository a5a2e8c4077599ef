"""Abstract base class for LLM text generators.

The chat manager and insight service treat the model as a black box that
turns a system prompt, optional conversation history and a user prompt into
prose.  Implementations wrap OpenAI, Anthropic Claude or a local Ollama
server.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator


class ILLMProvider(ABC):
    """Contract for text generation used to answer questions about documents."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
        history: list[dict[str, str]] | None = None,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The user-facing prompt containing the question and context.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.
        history:
            Earlier conversation turns as ``{"role", "content"}`` dicts,
            oldest first.  Roles are ``"user"`` or ``"assistant"``.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        thinkfolio.utils.errors.LLMError
            If the API call fails or returns an empty response.
        """

    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
        history: list[dict[str, str]] | None = None,
    ) -> AsyncGenerator[str, None]:
        """Generate the same completion as :meth:`complete`, piece by piece.

        Yields non-empty text deltas in order; joined they form the reply.

        Raises
        ------
        thinkfolio.utils.errors.LLMError
            If the API call fails, before or during the stream.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are present (no network call)."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Perform a lightweight API call to confirm credentials are valid."""
