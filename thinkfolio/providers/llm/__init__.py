"""LLM provider adapters.

Three implementations of ILLMProvider:
    - AnthropicLLMProvider -- Claude via the Messages API
    - OpenAILLMProvider    -- gpt-4o-mini, or any OpenAI-compatible API
    - OllamaLLMProvider    -- local models through an Ollama server

main.py picks the first one with credentials in that order.
"""

from thinkfolio.providers.llm.anthropic_provider import AnthropicLLMProvider
from thinkfolio.providers.llm.ollama_provider import OllamaLLMProvider
from thinkfolio.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider", "AnthropicLLMProvider", "OllamaLLMProvider"]
