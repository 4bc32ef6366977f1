# Rev 0.3.0
from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Mapping

from ...errors import LLMNotConfiguredError

logger = logging.getLogger(__name__)


@dataclass
class LLMConfig:
    provider: str = "gemini"
    model: str = "gemini-1.5-flash"
    api_key: str | None = None
    timeout: float = 15.0


class LLMClient:
    """Provider-agnostic text-generation interface.

    Implementations return None on any failure instead of raising, and an
    empty string when the provider answered with no text.
    """

    def generate_text(self, prompt: str, *, json_output: bool = False) -> str | None:
        raise NotImplementedError


class GeminiClient(LLMClient):
    """Minimal Gemini HTTP client using REST."""

    def __init__(self, cfg: LLMConfig):
        if not cfg.api_key:
            msg = "GEMINI_API_KEY missing"
            raise LLMNotConfiguredError(msg)
        self.cfg = cfg

    def _url(self) -> str:
        return (
            f"https://generativelanguage.googleapis.com/v1beta/models/"
            f"{self.cfg.model}:generateContent?key={self.cfg.api_key}"
        )

    def generate_text(self, prompt: str, *, json_output: bool = False) -> str | None:
        generation: dict[str, Any] = {"temperature": 0.4}
        if json_output:
            generation["responseMimeType"] = "application/json"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation,
        }
        req = urllib.request.Request(  # noqa: S310 - external URL by config
            self._url(),
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.cfg.timeout) as resp:  # noqa: S310
                obj = json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:  # pragma: no cover - network
            logger.warning("Gemini HTTPError: %s", e.read().decode("utf-8", "ignore"))
            return None
        except Exception as e:  # noqa: BLE001 - catch-all for network/JSON
            logger.warning("Gemini request failed: %s", e)
            return None

        # candidates -> content -> parts -> text
        try:
            candidates = obj.get("candidates") or []
            if not candidates:
                return ""
            parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
            if not parts:
                return ""
            return parts[0].get("text") or ""
        except (AttributeError, IndexError, TypeError) as e:
            logger.debug("Unexpected Gemini payload: %s", e)
            return None


def get_llm_client(settings: Mapping[str, Any]) -> LLMClient | None:
    """Factory reading the ``insight`` settings section; None when disabled."""
    section = settings.get("insight") or {}
    cfg = LLMConfig(
        provider=section.get("provider") or "gemini",
        model=section.get("model") or "gemini-1.5-flash",
        api_key=section.get("api_key"),
        timeout=float(section.get("timeout") or 15.0),
    )
    if cfg.provider != "gemini":
        logger.info("LLM provider '%s' not supported; insights use fallbacks", cfg.provider)
        return None
    try:
        return GeminiClient(cfg)
    except LLMNotConfiguredError:
        logger.info("GEMINI_API_KEY missing; insights use fallbacks")
        return None
