import logging
from typing import List
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_config_logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Google AI Configuration
    google_api_key: str = ""

    # Google Cloud Configuration
    gcp_project_id: str = ""
    gcs_bucket: str = "detective-desk-evidence"

    # Application Configuration
    environment: str = "development"
    debug: bool = False

    allowed_origins: List[str] = ["*"]

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_origins(cls, v):
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    # Server Configuration
    port: int = 8080
    host: str = "0.0.0.0"
    public_base_url: str = "http://localhost:8080"

    # Model Configuration
    gemini_model: str = "gemini-2.5-flash"
    gemini_lite_model: str = "gemini-2.5-flash-lite"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    imagen_model: str = "imagen-4.0-fast-generate-001"

    # Airtable Configuration
    airtable_base_id: str = ""
    airtable_access_token: str = ""
    airtable_table_name: str = "reports"
    airtable_api_url: str = "https://api.airtable.com/v0"

    # Location Verification
    google_maps_api_key: str = ""
    geocode_default_region: str = "San Antonio, TX"
    geocode_region_keywords: str = "san antonio,bexar"  # Comma-separated; skip region suffix if present
    geocode_cache_ttl_seconds: int = 3600

    # Weather
    weather_forecast_url: str = "https://api.open-meteo.com/v1/forecast"
    weather_archive_url: str = "https://archive-api.open-meteo.com/v1/archive"

    # Evidence uploads
    upload_dir: str = "uploads"
    max_upload_size_mb: int = 50

    # Telephony
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    agent_phone_number: str = ""
    twilio_voice: str = "Polly.Joanna"

    # Session store
    database_path: str = "data/detective.db"
    session_ttl_hours: int = 24
    session_purge_interval_seconds: int = 300
    agent_idle_minutes: int = 60

    # Transcription queue
    transcription_max_attempts: int = 5
    transcription_backoff_seconds: float = 2.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True
    )

    def validate_config(self):
        """Log warnings for missing configurations."""
        warnings = []
        if not self.google_api_key:
            warnings.append("GOOGLE_API_KEY not set - assistant, translation and transcription will not work")
        if not self.airtable_base_id or not self.airtable_access_token:
            warnings.append("AIRTABLE_BASE_ID/AIRTABLE_ACCESS_TOKEN not set - reports will not be saved")
        if not self.google_maps_api_key:
            warnings.append("GOOGLE_MAPS_API_KEY not set - locations will not be verified")
        if not self.gcp_project_id:
            warnings.append("GCP_PROJECT_ID not set - evidence is stored on local disk")
        if not self.twilio_account_sid or not self.twilio_auth_token:
            warnings.append("TWILIO credentials not set - phone recordings cannot be downloaded")
        for w in warnings:
            _config_logger.warning(f"[CONFIG] {w}")
        return warnings

    @property
    def region_keywords(self) -> List[str]:
        return [k.strip().lower() for k in self.geocode_region_keywords.split(",") if k.strip()]


# Global settings instance
settings = Settings()
