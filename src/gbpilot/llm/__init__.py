"""Model endpoint clients."""

from .llm_client import (
    AnthropicLLMClient,
    LLMClient,
    LLMConfig,
    MockLLMClient,
    OpenAILLMClient,
    create_llm_client,
    encode_frame_png,
)

__all__ = [
    "AnthropicLLMClient",
    "LLMClient",
    "LLMConfig",
    "MockLLMClient",
    "OpenAILLMClient",
    "create_llm_client",
    "encode_frame_png",
]
