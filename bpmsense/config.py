"""Application configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings with env var overrides."""

    # Audio
    sample_rate: int = 22050
    max_audio_seconds: float = 160.0
    high_pass_cutoff: float = 40.0  # Hz, removes sub-bass rumble

    # Analysis
    default_beat_mode: str = "auto"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    max_upload_mb: int = 50

    log_level: str = "INFO"

    model_config = {"env_prefix": "BPMSENSE_"}


settings = Settings()
