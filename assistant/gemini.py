"""Google Gemini chat backend."""

from __future__ import annotations

import logging

from . import AssistantError, ChatBackend, QuotaExceededError, ServiceUnavailableError

LOGGER = logging.getLogger(__name__)


class GeminiChatBackend(ChatBackend):
    """Answer prompts with a Gemini model through google-generativeai."""

    def __init__(self, api_key: str = "", model: str = "gemini-2.5-flash") -> None:
        self._api_key = api_key
        self._model = model

    def generate(self, prompt: str) -> str:
        if not self._api_key:
            raise ServiceUnavailableError(
                "Google API key missing. Set GOOGLE_API_KEY or [assistant] api_key."
            )

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model)
        try:
            response = model.generate_content(prompt)
            return response.text or ""
        except Exception as e:
            raise classify_error(e) from e


def classify_error(exc: Exception) -> AssistantError:
    """Map a provider exception onto the assistant error types by its message."""
    message = str(exc)
    if "quota" in message.lower():
        return QuotaExceededError("AI service quota exceeded. Please try again later.")
    if "404 Not Found" in message or message.startswith("404"):
        return ServiceUnavailableError(
            "AI service not available. Check the Google API key and that the "
            "Gemini API is enabled."
        )
    LOGGER.debug("Unclassified Gemini failure: %s", message)
    return AssistantError(f"AI service temporarily unavailable: {message}")
