"""
LLM Provider implementations for relation classification.
"""

from .llm_manager import LLMProvider, GeminiProvider, OpenAIProvider, AnthropicProvider

__all__ = ["LLMProvider", "GeminiProvider", "OpenAIProvider", "AnthropicProvider"]
