"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database (product lookup)
    DATABASE_URL: str = "sqlite:///./outlight.db"

    # Gemini image edit (synchronous provider)
    NANO_BANANA_API_URL: str = (
        "https://generativelanguage.googleapis.com/v1beta/models/"
        "gemini-2.5-flash-image:generateContent"
    )
    NANO_BANANA_API_KEY: str = ""
    NANO_BANANA_AUTH_HEADER: str = "x-goog-api-key"

    # KIE (create/poll providers)
    KIE_API_BASE: str = "https://api.kie.ai"
    KIE_API_KEY: str = ""

    # Polling
    POLL_INTERVAL: float = 2.0
    SEEDREAM_DEADLINE: float = 180.0
    KLING_DEADLINE: float = 240.0

    # HTTP
    HTTP_TIMEOUT: float = 120.0
    REFERENCE_FETCH_RETRIES: int = 3

    # Runs
    MAX_RUNS: int = 3
    MAX_CONCURRENCY: int = 3

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
