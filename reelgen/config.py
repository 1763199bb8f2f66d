"""
Worker configuration.

Every backend credential, bucket name, prompt and timing knob is read from
the environment (a local .env is honoured through python-dotenv). The
process holds one Settings instance:

    init_settings()      # once, at startup (FastAPI lifespan)
    get_settings()       # everywhere else
    reset_settings()     # tests
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_SCRIPT_PROMPT = (
    "Write a creative and engaging short paragraph about {sport} history in 100 characters. "
    "The tone should be energetic and fast-paced, suitable for a sports highlight reel. "
    "Do not use any special characters. Write a few lines only."
)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    # ── Script (Gemini) ──────────────────────────────────────────────────
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    script_prompt_template: str = DEFAULT_SCRIPT_PROMPT

    # ── Voiceover (Google Cloud TTS) ─────────────────────────────────────
    tts_api_key: str = ""
    tts_api_base: str = "https://texttospeech.googleapis.com/v1"
    tts_language_code: str = "en-US"
    tts_voice_name: str = ""
    tts_speaking_rate: float = 1.2
    tts_pitch: float = 0.0

    # ── Video (Runway image-to-video) ────────────────────────────────────
    runway_api_key: str = ""
    runway_api_base: str = "https://api.dev.runwayml.com/v1"
    runway_api_version: str = "2024-11-06"
    video_model: str = "gen3a_turbo"
    video_prompt: str = "Kinetic, energetic, fast-paced"
    video_duration: int = 5
    video_ratio: str = "768:1280"

    # ── Polling ──────────────────────────────────────────────────────────
    poll_interval: float = 10.0
    poll_timeout: float = 600.0
    max_poll_attempts: Optional[int] = None

    # ── Storage (S3-compatible, GCS interop by default) ──────────────────
    bucket_name: str = ""
    storage_endpoint_url: str = "https://storage.googleapis.com"
    storage_public_base_url: str = "https://storage.googleapis.com"
    storage_access_key_id: str = ""
    storage_secret_access_key: str = ""
    storage_region: str = "auto"

    # ── Network ──────────────────────────────────────────────────────────
    http_timeout: float = 30.0
    download_timeout: float = 120.0
    read_retries: int = 2
    retry_base_delay: float = 1.0

    # ── Pipeline ─────────────────────────────────────────────────────────
    pipeline_timeout: float = 900.0
    parallel_stages: bool = True

    reel_urls: list[str] = field(default_factory=list)
    log_level: str = "INFO"

    @property
    def has_gemini(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def has_tts(self) -> bool:
        return bool(self.tts_api_key)

    @property
    def has_runway(self) -> bool:
        return bool(self.runway_api_key)

    @property
    def has_storage(self) -> bool:
        return bool(
            self.bucket_name
            and self.storage_access_key_id
            and self.storage_secret_access_key
        )

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current environment."""
        gemini_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY", "")
        defaults = cls()
        return cls(
            gemini_api_key=gemini_key,
            gemini_model=os.getenv("GEMINI_MODEL", defaults.gemini_model),
            gemini_api_base=os.getenv("GEMINI_API_BASE", defaults.gemini_api_base),
            script_prompt_template=os.getenv("SCRIPT_PROMPT_TEMPLATE", DEFAULT_SCRIPT_PROMPT),
            tts_api_key=os.getenv("GOOGLE_TTS_API_KEY") or gemini_key,
            tts_api_base=os.getenv("TTS_API_BASE", defaults.tts_api_base),
            tts_language_code=os.getenv("TTS_LANGUAGE_CODE", defaults.tts_language_code),
            tts_voice_name=os.getenv("TTS_VOICE_NAME", ""),
            tts_speaking_rate=_env_float("TTS_SPEAKING_RATE", defaults.tts_speaking_rate),
            tts_pitch=_env_float("TTS_PITCH", defaults.tts_pitch),
            runway_api_key=os.getenv("RUNWAY_API_KEY", ""),
            runway_api_base=os.getenv("RUNWAY_API_BASE", defaults.runway_api_base),
            runway_api_version=os.getenv("RUNWAY_API_VERSION", defaults.runway_api_version),
            video_model=os.getenv("VIDEO_MODEL", defaults.video_model),
            video_prompt=os.getenv("VIDEO_PROMPT", defaults.video_prompt),
            video_duration=_env_int("VIDEO_DURATION", defaults.video_duration),
            video_ratio=os.getenv("VIDEO_RATIO", defaults.video_ratio),
            poll_interval=_env_float("POLL_INTERVAL", defaults.poll_interval),
            poll_timeout=_env_float("POLL_TIMEOUT", defaults.poll_timeout),
            max_poll_attempts=_env_int("MAX_POLL_ATTEMPTS", None),
            bucket_name=os.getenv("GCS_BUCKET_NAME", ""),
            storage_endpoint_url=os.getenv("STORAGE_ENDPOINT_URL", defaults.storage_endpoint_url),
            storage_public_base_url=os.getenv(
                "STORAGE_PUBLIC_BASE_URL", defaults.storage_public_base_url
            ),
            storage_access_key_id=os.getenv("STORAGE_ACCESS_KEY_ID", ""),
            storage_secret_access_key=os.getenv("STORAGE_SECRET_ACCESS_KEY", ""),
            storage_region=os.getenv("STORAGE_REGION", defaults.storage_region),
            http_timeout=_env_float("HTTP_TIMEOUT", defaults.http_timeout),
            download_timeout=_env_float("DOWNLOAD_TIMEOUT", defaults.download_timeout),
            read_retries=_env_int("READ_RETRIES", defaults.read_retries),
            retry_base_delay=_env_float("RETRY_BASE_DELAY", defaults.retry_base_delay),
            pipeline_timeout=_env_float("PIPELINE_TIMEOUT", defaults.pipeline_timeout),
            parallel_stages=_env_bool("PARALLEL_STAGES", defaults.parallel_stages),
            reel_urls=_env_list("REEL_URLS"),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        )

    def missing(self) -> list[str]:
        """Names of the credentials that still need to be configured."""
        missing = []
        if not self.has_gemini:
            missing.append("GEMINI_API_KEY")
        if not self.has_tts:
            missing.append("GOOGLE_TTS_API_KEY")
        if not self.has_runway:
            missing.append("RUNWAY_API_KEY")
        if not self.bucket_name:
            missing.append("GCS_BUCKET_NAME")
        if not (self.storage_access_key_id and self.storage_secret_access_key):
            missing.append("STORAGE_ACCESS_KEY_ID/STORAGE_SECRET_ACCESS_KEY")
        return missing


# ── Process-wide instance ────────────────────────────────────────────────────

_settings: Optional[Settings] = None


def init_settings(settings: Optional[Settings] = None) -> Settings:
    """Load (or install) the process settings. Call once at startup."""
    global _settings
    if settings is None:
        load_dotenv()
        settings = Settings.from_env()
    _settings = settings

    missing = settings.missing()
    if missing:
        logger.warning(f"Worker started without: {', '.join(missing)}")
    return _settings


def get_settings() -> Settings:
    """Return the process settings, initialising lazily if needed."""
    if _settings is None:
        return init_settings()
    return _settings


def reset_settings():
    global _settings
    _settings = None
