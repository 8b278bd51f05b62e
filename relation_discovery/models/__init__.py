"""
LLM abstraction layer for relation classification.
"""

from .llm_manager import LLMManager
from .providers import GeminiProvider, OpenAIProvider, AnthropicProvider

__all__ = ["LLMManager", "GeminiProvider", "OpenAIProvider", "AnthropicProvider"]
