"""
Tests for configuration management.
"""
import pytest

from reelgen import config
from reelgen.config import Settings, DEFAULT_SCRIPT_PROMPT


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "GEMINI_API_KEY", "GOOGLE_API_KEY", "GOOGLE_TTS_API_KEY", "RUNWAY_API_KEY",
        "GCS_BUCKET_NAME", "STORAGE_ACCESS_KEY_ID", "STORAGE_SECRET_ACCESS_KEY",
        "POLL_INTERVAL", "POLL_TIMEOUT", "MAX_POLL_ATTEMPTS", "PARALLEL_STAGES",
        "TTS_SPEAKING_RATE", "REEL_URLS", "LOG_LEVEL", "VIDEO_DURATION",
    ):
        monkeypatch.delenv(name, raising=False)
    config.reset_settings()
    yield
    config.reset_settings()


class TestSettingsFromEnv:

    def test_defaults_match_reference_behaviour(self):
        settings = Settings.from_env()

        assert settings.poll_interval == 10.0
        assert settings.tts_speaking_rate == 1.2
        assert settings.video_duration == 5
        assert settings.video_ratio == "768:1280"
        assert settings.video_prompt == "Kinetic, energetic, fast-paced"
        assert settings.script_prompt_template == DEFAULT_SCRIPT_PROMPT
        assert settings.parallel_stages is True
        assert settings.max_poll_attempts is None

    def test_reads_credentials_and_tuning(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "gem")
        monkeypatch.setenv("RUNWAY_API_KEY", "run")
        monkeypatch.setenv("GCS_BUCKET_NAME", "reels-bucket")
        monkeypatch.setenv("POLL_INTERVAL", "2.5")
        monkeypatch.setenv("MAX_POLL_ATTEMPTS", "30")
        monkeypatch.setenv("PARALLEL_STAGES", "false")
        monkeypatch.setenv("REEL_URLS", "https://a/1.mp4, https://a/2.mp4,")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings.from_env()

        assert settings.gemini_api_key == "gem"
        assert settings.runway_api_key == "run"
        assert settings.bucket_name == "reels-bucket"
        assert settings.poll_interval == 2.5
        assert settings.max_poll_attempts == 30
        assert settings.parallel_stages is False
        assert settings.reel_urls == ["https://a/1.mp4", "https://a/2.mp4"]
        assert settings.log_level == "DEBUG"

    def test_tts_key_falls_back_to_gemini_key(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "shared-google-key")

        settings = Settings.from_env()

        assert settings.tts_api_key == "shared-google-key"

    def test_invalid_numbers_fall_back_to_defaults(self, monkeypatch):
        monkeypatch.setenv("POLL_INTERVAL", "soon")
        monkeypatch.setenv("VIDEO_DURATION", "five")

        settings = Settings.from_env()

        assert settings.poll_interval == 10.0
        assert settings.video_duration == 5


class TestMissingCredentials:

    def test_reports_every_missing_credential(self):
        missing = Settings().missing()

        assert "GEMINI_API_KEY" in missing
        assert "RUNWAY_API_KEY" in missing
        assert "GCS_BUCKET_NAME" in missing

    def test_fully_configured(self, settings):
        assert settings.missing() == []
        assert settings.has_storage is True


class TestLifecycle:

    def test_init_installs_explicit_settings(self, settings):
        installed = config.init_settings(settings)

        assert installed is settings
        assert config.get_settings() is settings

    def test_get_settings_initialises_lazily(self, monkeypatch):
        monkeypatch.setenv("RUNWAY_API_KEY", "lazy")

        assert config.get_settings().runway_api_key == "lazy"

    def test_reset_forgets_settings(self, settings):
        config.init_settings(settings)
        config.reset_settings()

        assert config.get_settings() is not settings
