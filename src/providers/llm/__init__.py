"""LLM provider adapters.

OpenAILLMProvider implements ILLMProvider (src/interfaces/llm_provider.py)
for OpenAI and every OpenAI-compatible endpoint.  main.py creates it at
startup and wraps it in the plain and RAG generation clients.
"""

from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
