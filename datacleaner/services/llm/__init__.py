"""
LLM Integration
===============

Remote chat-completions client and the prompts/schemas sent through it.
"""

from datacleaner.services.llm.client import LLMClient, LLMConfig, LLMResponse, OpenRouterClient

__all__ = ["LLMClient", "LLMConfig", "LLMResponse", "OpenRouterClient"]
