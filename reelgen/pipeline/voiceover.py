"""
Stage 2: Voiceover — Google Cloud Text-to-Speech via REST.

Works from the *stored* script: the script is fetched back from its public
URL, so synthesis can be retried (or run elsewhere) from the URL alone.
Returns raw MP3 bytes; persisting them is the orchestrator's job.
"""

import base64
import binascii
import logging

import httpx

from ..config import Settings
from .errors import UpstreamError, ValidationError
from .http import request_with_backoff, json_body

logger = logging.getLogger(__name__)

STAGE = "voiceover"
AUDIO_ENCODING = "MP3"


class VoiceoverGenerator:
    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    @property
    def endpoint(self) -> str:
        return f"{self.settings.tts_api_base.rstrip('/')}/text:synthesize"

    def voice_config(self) -> dict:
        voice = {"languageCode": self.settings.tts_language_code}
        if self.settings.tts_voice_name:
            voice["name"] = self.settings.tts_voice_name
        return voice

    def audio_config(self) -> dict:
        return {
            "audioEncoding": AUDIO_ENCODING,
            "pitch": self.settings.tts_pitch,
            "speakingRate": self.settings.tts_speaking_rate,
        }

    async def fetch_script(self, script_url: str) -> str:
        response = await request_with_backoff(
            self.client,
            "GET",
            script_url,
            stage=STAGE,
            retries=self.settings.read_retries,
            base_delay=self.settings.retry_base_delay,
        )
        text = response.text.strip()
        if not text:
            raise UpstreamError(f"script at {script_url} is empty", STAGE)
        logger.info(f"Script fetched from {script_url} ({len(text)} chars)")
        return text

    async def synthesize(self, script_url: str) -> bytes:
        """Fetch the script behind `script_url` and return MP3 audio bytes."""
        if not script_url:
            raise ValidationError("script URL must not be empty", STAGE)

        text = await self.fetch_script(script_url)

        request_body = {
            "input": {"text": text},
            "voice": self.voice_config(),
            "audioConfig": self.audio_config(),
        }

        response = await request_with_backoff(
            self.client,
            "POST",
            self.endpoint,
            stage=STAGE,
            params={"key": self.settings.tts_api_key},
            json=request_body,
        )
        result = json_body(response, STAGE)

        encoded = result.get("audioContent")
        if not encoded:
            raise UpstreamError("Text-to-Speech returned no audio content", STAGE)
        if not isinstance(encoded, str):
            raise UpstreamError(f"audio content is not a string: {type(encoded).__name__}", STAGE)

        try:
            audio = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise UpstreamError(f"audio content is not valid base64: {e}", STAGE) from e

        if not audio:
            raise UpstreamError("Text-to-Speech returned empty audio", STAGE)

        logger.info(f"Voiceover synthesized: {len(audio)} bytes")
        return audio
