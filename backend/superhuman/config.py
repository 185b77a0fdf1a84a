"""
Application configuration loaded from environment variables.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Google OAuth
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:8000/api/auth/callback"

    # Frontend URL for CORS and redirects
    frontend_url: str = "http://localhost:3000"

    # Gemini AI
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"

    # Session cookie
    session_secret: str = "dev-secret-change-in-production"
    session_expire_hours: int = 24

    # Gmail client cache: idle handles are dropped after this many seconds,
    # the sweep runs every gmail_session_sweep_seconds
    gmail_session_idle_seconds: float = 300.0
    gmail_session_sweep_seconds: float = 60.0

    # Gmail API requests
    gmail_max_retries: int = 3
    gmail_request_timeout: float = 30.0
    gmail_list_page_size: int = 20

    # Company website lookup
    scraper_timeout: float = 10.0

    # Logging
    log_level: str = "INFO"

    # Debug mode
    debug: bool = True

    # Google OAuth scopes
    @property
    def google_scopes(self) -> list[str]:
        return [
            "openid",
            "email",
            "profile",
            "https://www.googleapis.com/auth/gmail.readonly",
            "https://www.googleapis.com/auth/gmail.send",
            "https://www.googleapis.com/auth/gmail.modify",
            "https://www.googleapis.com/auth/gmail.labels",
        ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
