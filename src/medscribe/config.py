from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Process-wide settings read once from the environment.

    Tests override individual attributes on the ``settings`` instance.
    """

    # Speech-to-text backend selection: "demo" (default) or "huggingface".
    transcription_backend: str = os.getenv("TRANSCRIPTION_BACKEND", "demo")

    # Hosted inference endpoint used by the "huggingface" backend.
    hf_api_url: str = os.getenv("HF_API_URL", "https://api-inference.huggingface.co/models")
    hf_api_key: Optional[str] = os.getenv("HF_API_KEY")
    hf_whisper_model: str = os.getenv("HF_WHISPER_MODEL", "openai/whisper-large-v3")
    # Clinical analysis backend selection: "demo" (default) or "huggingface".
    nlp_backend: str = os.getenv("NLP_BACKEND", "demo")
    hf_ner_model: str = os.getenv("HF_NER_MODEL", "dmis-lab/biobert-base-cased-v1.2-ner")
    hf_summarization_model: str = os.getenv("HF_SUMMARIZATION_MODEL", "facebook/bart-large-cnn")
    hf_image_model: str = os.getenv("HF_IMAGE_MODEL", "microsoft/resnet-50")
    # Entities scored at or below this are dropped.
    entity_min_confidence: float = float(os.getenv("ENTITY_MIN_CONFIDENCE", "0.5"))

    # Upper bound for a single hosted inference call; expiry surfaces as a failure.
    transcription_timeout_seconds: float = float(os.getenv("TRANSCRIPTION_TIMEOUT_SECONDS", "30"))

    # Live transcription timing.
    transcription_flush_interval_seconds: float = float(
        os.getenv("TRANSCRIPTION_FLUSH_INTERVAL_SECONDS", "5")
    )
    transcription_idle_timeout_seconds: float = float(
        os.getenv("TRANSCRIPTION_IDLE_TIMEOUT_SECONDS", str(30 * 60))
    )
    transcription_reaper_interval_seconds: float = float(
        os.getenv("TRANSCRIPTION_REAPER_INTERVAL_SECONDS", str(5 * 60))
    )

    # Optional database configuration for SQL-backed repositories.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # Bearer-token authentication. When ENABLE_API_AUTH=true, protected
    # endpoints require a token known to the identity provider.
    enable_api_auth: bool = os.getenv("ENABLE_API_AUTH", "false").lower() == "true"
    # Comma-separated "token:user_id:role" triples for the static provider.
    auth_tokens: Optional[str] = os.getenv("AUTH_TOKENS")

    # Size limits for single decoded audio and image payloads (in bytes).
    max_audio_bytes: int = int(os.getenv("MAX_AUDIO_BYTES", str(10 * 1024 * 1024)))
    max_image_bytes: int = int(os.getenv("MAX_IMAGE_BYTES", str(10 * 1024 * 1024)))

    # CORS configuration: comma-separated origins (e.g. "https://app.example.com").
    # Default is "*" (allow all) which is acceptable for local development but
    # should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
