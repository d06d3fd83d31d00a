"""
Generative model client used by the assistant and document Q&A.
"""

import json
import logging
import re
from typing import Protocol

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from .settings import settings

logger = logging.getLogger(__name__)


class AssistantError(Exception):
    """Raised when the language model cannot produce an answer."""

    def __init__(self, message: str, configured: bool = True):
        self.configured = configured
        super().__init__(message)


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> str: ...


class GeminiClient:
    """Thin wrapper over `google-generativeai` returning plain text."""

    def __init__(self, api_key: str, model_name: str):
        # Accept either plain name (gemini-1.5-flash) or full (models/gemini-1.5-flash)
        if model_name.startswith("models/"):
            model_name = model_name.split("/", 1)[1]
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self._model = genai.GenerativeModel(model_name)

    def generate(self, prompt: str) -> str:
        try:
            response = self._model.generate_content(prompt)
            text = (getattr(response, "text", None) or "").strip()
        except (google_exceptions.GoogleAPIError, ValueError) as e:
            # ValueError: response blocked or carried no text parts
            logger.error(f"Gemini ({self.model_name}) request failed: {e}")
            raise AssistantError(str(e)) from e
        if not text:
            raise AssistantError("Empty response from the model")
        return text


_client: GeminiClient | None = None


def get_llm() -> TextGenerator:
    """FastAPI dependency; tests override it with a scripted fake."""
    global _client
    if not settings.gemini_api_key:
        raise AssistantError("GEMINI_API_KEY not configured", configured=False)
    if _client is None:
        _client = GeminiClient(settings.gemini_api_key, settings.gemini_model)
    return _client


def extract_json(text: str) -> dict | None:
    """Pull a JSON object out of a model reply (markdown fences or first {...} block)."""
    m = re.search(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", text, re.IGNORECASE)
    if m:
        candidate = m.group(1)
    else:
        m2 = re.search(r"(\{[\s\S]*\})", text)
        candidate = m2.group(1) if m2 else text
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
