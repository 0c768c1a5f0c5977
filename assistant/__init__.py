"""Chat backend base class, errors, and factory."""

from __future__ import annotations

from abc import ABC, abstractmethod


class AssistantError(RuntimeError):
    """The language model could not produce an answer."""


class QuotaExceededError(AssistantError):
    """The provider rejected the call because the quota is used up."""


class ServiceUnavailableError(AssistantError):
    """The model is not reachable: no API key, model not enabled, etc."""


class ChatBackend(ABC):
    """Abstract base for a text-in, text-out language model."""

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """Return the model's reply to a single prompt."""
        ...


def create_backend(cfg: dict) -> ChatBackend:
    """Create the configured chat backend (Gemini is the only provider)."""
    from .gemini import GeminiChatBackend

    section = cfg.get("assistant", {})
    return GeminiChatBackend(
        api_key=section.get("api_key", ""),
        model=section.get("model", "gemini-2.5-flash"),
    )
