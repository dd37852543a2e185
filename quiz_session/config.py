from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Quiz session settings from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Application
    log_level: str = "INFO"

    # Quiz API
    api_base_url: str = "http://localhost:8000"
    api_token: str | None = None
    request_timeout: float = 30.0
    max_retries: int = 3

    # Auto-save
    autosave_debounce_ms: int = 3000
    autosave_retry_ms: int = 5000

    # Timer
    timer_tick_seconds: float = 1.0
    timer_warning_seconds: int = 600


# Global settings instance
settings = Settings()
