"""LLM client abstraction for screen-driven action selection."""

from __future__ import annotations

import base64
import io
import itertools
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
from numpy.typing import NDArray
from PIL import Image

from gbpilot.errors import ConfigurationError, ModelCallError

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_USER_TEXT = "What button should I press based on this Game Boy screen?"


@dataclass
class LLMConfig:
    """Configuration for LLM client."""

    model: str = "google/gemini-2.0-flash-001"
    provider: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_output_tokens: Optional[int] = 300
    timeout: int = 30
    temperature: Optional[float] = None

    @property
    def resolved_provider(self) -> str:
        if self.provider:
            return self.provider.lower()
        model = (self.model or "").lower()
        if model == "mock":
            return "mock"
        if model.startswith("claude-"):
            return "anthropic"
        if model.startswith(("gpt-", "o1", "o3", "o4")) and not self.base_url:
            return "openai"
        return "openrouter"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LLMConfig":
        env = os.environ if environ is None else environ
        config = cls()
        config.model = env.get("GBPILOT_MODEL", config.model)
        config.provider = env.get("GBPILOT_PROVIDER") or None
        config.base_url = env.get("GBPILOT_BASE_URL") or None
        if env.get("GBPILOT_MAX_TOKENS"):
            config.max_output_tokens = int(env["GBPILOT_MAX_TOKENS"])
        if env.get("GBPILOT_TIMEOUT"):
            config.timeout = int(env["GBPILOT_TIMEOUT"])
        if env.get("GBPILOT_TEMPERATURE"):
            config.temperature = float(env["GBPILOT_TEMPERATURE"])
        provider_keys = {
            "openrouter": "OPENROUTER_API_KEY",
            "openai": "OPENAI_API_KEY",
            "anthropic": "ANTHROPIC_API_KEY",
        }
        key_name = provider_keys.get(config.resolved_provider)
        config.api_key = env.get("GBPILOT_API_KEY") or (env.get(key_name) if key_name else None)
        return config


def encode_frame_png(frame: NDArray) -> str:
    """Encode an RGB(A) or greyscale frame as a base64 PNG data URL."""

    array = np.asarray(frame)
    if array.dtype != np.uint8:
        array = np.clip(array, 0, 255).astype(np.uint8)
    image = Image.fromarray(array)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def _coerce_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            item.get("text", "") for item in content if isinstance(item, dict) and item.get("type") == "text"
        )
    return str(content)


class LLMClient(ABC):
    """Abstract base class for LLM clients."""

    config: LLMConfig

    @abstractmethod
    def generate_response(self, messages: List[Dict[str, Any]]) -> str:
        """Generate a response from the LLM, raising ``ModelCallError`` on failure."""

    def has_credentials(self) -> bool:
        return bool(self.config.api_key) and bool(self.config.model)

    def ask(self, system: str, user: str = DEFAULT_USER_TEXT, image: Optional[NDArray] = None) -> str:
        """Send one system/user exchange, attaching ``image`` when given."""

        content: List[Dict[str, Any]] = [{"type": "text", "text": user}]
        if image is not None:
            content.append({"type": "image_url", "image_url": {"url": encode_frame_png(image)}})
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": content},
        ]
        return self.generate_response(messages)


class OpenAILLMClient(LLMClient):
    """Chat-completions client for OpenAI and OpenAI-compatible endpoints (OpenRouter)."""

    def __init__(self, config: LLMConfig):
        self.config = config
        if config.base_url is None and config.resolved_provider == "openrouter":
            config.base_url = OPENROUTER_BASE_URL
        try:
            import openai

            self.client = openai.OpenAI(api_key=config.api_key, base_url=config.base_url, timeout=config.timeout)
        except ImportError as exc:  # pragma: no cover
            raise ImportError("openai package not found. Install with: pip install openai") from exc

    def generate_response(self, messages: List[Dict[str, Any]]) -> str:
        kwargs: Dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
        }
        if self.config.max_output_tokens is not None:
            kwargs["max_tokens"] = self.config.max_output_tokens
        if self.config.temperature is not None:
            kwargs["temperature"] = self.config.temperature

        try:
            response = self.client.chat.completions.create(**kwargs)
        except Exception as exc:
            logger.error("Chat completion failed: %s", exc)
            raise ModelCallError(str(exc)) from exc

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise ModelCallError("Model returned no choices.")
        raw_content = getattr(choices[0].message, "content", "")
        if isinstance(raw_content, list):
            content = "\n".join(
                entry.get("text", "") if isinstance(entry, dict) else str(entry) for entry in raw_content
            ).strip()
        else:
            content = (raw_content or "").strip()
        if not content:
            raise ModelCallError("Model returned an empty reply.")
        return content


class AnthropicLLMClient(LLMClient):
    """Anthropic Claude API client."""

    def __init__(self, config: LLMConfig):
        self.config = config
        try:
            import anthropic

            self.client = anthropic.Anthropic(api_key=config.api_key, timeout=config.timeout)
        except ImportError as exc:  # pragma: no cover
            raise ImportError("anthropic package not found. Install with: pip install anthropic") from exc

    @staticmethod
    def _to_anthropic_content(content: Any) -> List[Dict[str, Any]]:
        if isinstance(content, str):
            return [{"type": "text", "text": content}]
        blocks: List[Dict[str, Any]] = []
        for item in content or []:
            if not isinstance(item, dict):
                blocks.append({"type": "text", "text": str(item)})
            elif item.get("type") == "image_url":
                image = item.get("image_url")
                url = image.get("url") if isinstance(image, dict) else image
                header, _, data = str(url).partition(",")
                media_type = header.removeprefix("data:").split(";")[0] or "image/png"
                blocks.append(
                    {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}}
                )
            else:
                blocks.append({"type": "text", "text": item.get("text", "")})
        return blocks

    def generate_response(self, messages: List[Dict[str, Any]]) -> str:
        system_msg = _coerce_text(next((msg["content"] for msg in messages if msg["role"] == "system"), ""))
        chat = [
            {"role": msg["role"], "content": self._to_anthropic_content(msg.get("content", ""))}
            for msg in messages
            if msg["role"] != "system"
        ]
        kwargs: Dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_output_tokens or 300,
            "system": system_msg,
            "messages": chat,
        }
        if self.config.temperature is not None:
            kwargs["temperature"] = self.config.temperature
        try:
            response = self.client.messages.create(**kwargs)
        except Exception as exc:
            logger.error("Anthropic request failed: %s", exc)
            raise ModelCallError(str(exc)) from exc
        text = "\n".join(getattr(block, "text", "") for block in response.content or []).strip()
        if not text:
            raise ModelCallError("Model returned an empty reply.")
        return text


class MockLLMClient(LLMClient):
    """Mock LLM client for testing without API calls; replays scripted replies in a loop."""

    DEFAULT_REPLIES = (
        "Nothing urgent on screen, heading right to explore.\nRIGHT",
        "Checking what is above.\nUP",
        "Confirming the current prompt.\nA",
    )

    def __init__(self, config: Optional[LLMConfig] = None, replies: Optional[Iterable[str]] = None):
        self.config = config or LLMConfig(model="mock")
        self.response_count = 0
        self.calls: List[List[Dict[str, Any]]] = []
        self._replies = itertools.cycle(list(replies) if replies else list(self.DEFAULT_REPLIES))

    def has_credentials(self) -> bool:
        return True

    def generate_response(self, messages: List[Dict[str, Any]]) -> str:
        self.response_count += 1
        self.calls.append(messages)
        return next(self._replies)


def create_llm_client(config: LLMConfig) -> LLMClient:
    """Create an LLM client based on configuration."""

    provider = config.resolved_provider
    if provider == "mock":
        return MockLLMClient(config)
    if provider == "anthropic":
        return AnthropicLLMClient(config)
    if provider in ("openai", "openrouter"):
        return OpenAILLMClient(config)
    raise ConfigurationError(f"Unsupported model provider: {provider}")


__all__ = [
    "AnthropicLLMClient",
    "DEFAULT_USER_TEXT",
    "LLMClient",
    "LLMConfig",
    "MockLLMClient",
    "OPENROUTER_BASE_URL",
    "OpenAILLMClient",
    "create_llm_client",
    "encode_frame_png",
]
