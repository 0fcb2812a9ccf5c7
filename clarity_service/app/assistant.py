"""
Outbound model access.

The pipeline only needs one capability: ask a question, optionally about an
image, and get free text back. `GeminiAssistant` is the production
implementation; tests substitute anything with the same `ask` coroutine.
"""
from __future__ import annotations

import asyncio
from typing import Optional, Protocol

import structlog
from google import genai
from google.genai import types

log = structlog.get_logger()

_LANGUAGE_NAMES = {
    "zh": "Simplified Chinese",
    "en": "English",
}


class VisionAssistant(Protocol):
    async def ask(
        self,
        prompt: str,
        image: Optional[bytes] = None,
        mime_type: str = "image/jpeg",
    ) -> str:
        ...


def _safe_extract_text(resp) -> str:
    """Extract the text parts of a Gemini response (or "")."""
    if not resp or not getattr(resp, "candidates", None):
        return ""
    parts = getattr(resp.candidates[0].content, "parts", None) or []
    return "".join(getattr(part, "text", None) or "" for part in parts)


class GeminiAssistant:
    def __init__(self, api_key: str, model_name: str, language: str = "zh"):
        self.model_name = model_name
        self.language = language
        self._client = genai.Client(api_key=api_key)

    def _with_language(self, prompt: str) -> str:
        name = _LANGUAGE_NAMES.get(self.language, self.language)
        return f"{prompt}\n\nAnswer in {name}."

    def _generate(self, contents: list) -> str:
        resp = self._client.models.generate_content(
            model=self.model_name,
            contents=contents,
        )
        return _safe_extract_text(resp)

    async def ask(
        self,
        prompt: str,
        image: Optional[bytes] = None,
        mime_type: str = "image/jpeg",
    ) -> str:
        contents: list = [self._with_language(prompt)]
        if image is not None:
            contents.append(types.Part.from_bytes(data=image, mime_type=mime_type))
        text = await asyncio.to_thread(self._generate, contents)
        log.debug("assistant_reply", model=self.model_name, with_image=image is not None, chars=len(text))
        return text


_assistant: VisionAssistant | None = None


def init_assistant(api_key: str, model_name: str, language: str = "zh") -> None:
    """Initialize singleton assistant"""
    global _assistant
    if _assistant is not None:
        raise RuntimeError("Assistant already initialized")
    if not api_key:
        raise RuntimeError("Gemini API key missing: set GEMINI_API_KEY in .env or environment")
    _assistant = GeminiAssistant(api_key, model_name, language)


def get_assistant() -> VisionAssistant:
    """Get singleton assistant instance"""
    if _assistant is None:
        raise RuntimeError("Assistant not initialized. Call init_assistant() first.")
    return _assistant


def assistant_ready() -> bool:
    return _assistant is not None


def reset_assistant() -> None:
    global _assistant
    _assistant = None
