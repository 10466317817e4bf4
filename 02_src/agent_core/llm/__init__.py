"""LLM module."""

from .llm_provider import DEFAULT_MODEL, ILLMService, LLMProvider

__all__ = ["DEFAULT_MODEL", "ILLMService", "LLMProvider"]
