"""
LLM Provider abstraction layer.

Supports multiple AI providers (Anthropic, OpenAI, Google) with a unified interface.
"""

from .base import LLMProvider, LLMResponse, ProviderCapabilities
from .anthropic import AnthropicProvider
from .openai import OpenAIProvider
from .google import GoogleProvider
from .factory import create_provider, get_provider_from_env, ProviderType

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "ProviderCapabilities",
    "AnthropicProvider",
    "OpenAIProvider",
    "GoogleProvider",
    "create_provider",
    "get_provider_from_env",
    "ProviderType",
]
