"""
Stage 1: Script — Gemini generateContent via REST.

One-shot prompt parameterized only by the sport name. No conversation
state and no retries: a failed or empty answer aborts the pipeline.
"""

import logging

import httpx

from ..config import Settings
from .errors import UpstreamError, ValidationError
from .http import request_with_backoff, json_body

logger = logging.getLogger(__name__)

STAGE = "script"


class ScriptGenerator:
    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    @property
    def endpoint(self) -> str:
        base = self.settings.gemini_api_base.rstrip("/")
        return f"{base}/models/{self.settings.gemini_model}:generateContent"

    def build_prompt(self, sport: str) -> str:
        return self.settings.script_prompt_template.format(sport=sport)

    async def generate(self, sport: str) -> str:
        """Generate a short highlight-reel paragraph about `sport`."""
        if not sport or not sport.strip():
            raise ValidationError("sport must not be empty", STAGE)

        request_body = {
            "contents": [{"parts": [{"text": self.build_prompt(sport.strip())}]}],
        }

        response = await request_with_backoff(
            self.client,
            "POST",
            self.endpoint,
            stage=STAGE,
            params={"key": self.settings.gemini_api_key},
            json=request_body,
        )
        result = json_body(response, STAGE)

        candidates = result.get("candidates") or []
        if not isinstance(candidates, list) or not candidates:
            raise UpstreamError("Gemini returned no candidates", STAGE)

        candidate = candidates[0]
        content = candidate.get("content") if isinstance(candidate, dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            raise UpstreamError(f"unexpected Gemini candidate shape: {candidate!r:.200}", STAGE)

        script = "".join(
            part["text"] for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ).strip()
        if not script:
            raise UpstreamError("Gemini returned an empty script", STAGE)

        logger.info(f"Script generated for '{sport}' ({len(script)} chars)")
        logger.debug(f"Script content: {script}")
        return script
