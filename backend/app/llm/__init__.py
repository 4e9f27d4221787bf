"""LLM module - provides unified interface for LLM API providers."""

from .base import LLMProvider, LLMMessage
from .openai_provider import OpenAIProvider, OpenRouterProvider
from .factory import create_llm_provider

__all__ = [
    'LLMProvider',
    'LLMMessage',
    'OpenAIProvider',
    'OpenRouterProvider',
    'create_llm_provider',
]
