# Rev 0.3.0
from __future__ import annotations

import json
from typing import List, Optional

from ..integrations.llm.client import LLMClient
from ..integrations.llm.prompts import build_brainstorm_prompt, build_insight_prompt
from ..utils.logging_setup import get_logger

NO_RECOMMENDATION = "No recommendation available."
INSIGHT_UNAVAILABLE = "Analysis unavailable at the moment."
FALLBACK_IDEAS = ["SEO audit", "Newsletter copywriting", "Ads planning"]

log = get_logger("InsightService")


class InsightService:
    """Best-effort text generation; callers always get displayable text back."""

    def __init__(self, client: Optional[LLMClient]):
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def generate_insight(self, context: str) -> str:
        if self._client is None:
            return INSIGHT_UNAVAILABLE
        text = self._client.generate_text(build_insight_prompt(context))
        if text is None:
            return INSIGHT_UNAVAILABLE
        return text.strip() or NO_RECOMMENDATION

    def brainstorm_task_ideas(self, topic: str) -> List[str]:
        if self._client is None:
            return list(FALLBACK_IDEAS)
        text = self._client.generate_text(build_brainstorm_prompt(topic), json_output=True)
        if not text:
            return list(FALLBACK_IDEAS)
        try:
            ideas = json.loads(text)
        except ValueError:
            log.debug("brainstorm reply was not JSON: %.80s", text)
            return list(FALLBACK_IDEAS)
        if not isinstance(ideas, list):
            return list(FALLBACK_IDEAS)
        return [str(i) for i in ideas if str(i).strip()]
