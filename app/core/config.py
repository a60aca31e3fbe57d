import os

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables with fallbacks.

    Settings are loaded from environment variables, .env file, or defaults defined here.
    Each setting has a descriptive Field with env parameter that maps to the corresponding
    environment variable name.
    """
    # ─── App Metadata ────────────────────────────────────────────────────────
    APP_NAME: str = Field("Better Me Feed", env="APP_NAME")
    APP_VERSION: str = Field("0.1.0", env="APP_VERSION")
    ENVIRONMENT: str = Field("development", env="ENVIRONMENT")
    PORT: int = Field(8080, env="PORT")
    API_V0_STR: str = Field("/api/v0", env="API_VERSION")

    # ─── Supabase ─────────────────────────────────────────────────────────────
    SUPABASE_URL: str | None = Field(os.getenv("SUPABASE_URL"), env="SUPABASE_URL")
    SUPABASE_KEY: str | None = Field(os.getenv("SUPABASE_KEY"), env="SUPABASE_KEY")

    # ─── OpenAI ─────────────────────────────────────────────────────────────
    OPENAI_KEY: str | None = Field(os.getenv("OPENAI_API_KEY"), env="OPENAI_API_KEY")
    AI_MODEL: str = Field("gpt-4o-mini", env="AI_MODEL")
    AI_TEMPERATURE: float = Field(0.7, env="AI_TEMPERATURE")
    AI_MAX_TOKENS: int = Field(1024, env="AI_MAX_TOKENS")
    AI_CLIENT_CACHE_SIZE: int = Field(8, env="AI_CLIENT_CACHE_SIZE")

    # ─── JWT / Auth ───────────────────────────────────────────────────────────
    JWT_SECRET: str | None = Field(os.getenv("JWT_SECRET", "dev-secret-change-me"), env="JWT_SECRET")
    JWT_ALGORITHM: str = Field("HS256", env="ALGORITHM")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(60, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    # ─── CORS ─────────────────────────────────────────────────────────────────
    BACKEND_CORS_ORIGINS: str | None = Field(os.getenv("BACKEND_CORS_ORIGINS"), env="BACKEND_CORS_ORIGINS")

    # ─── Logging ───────────────────────────────────────────────────────────────
    LOG_LEVEL: str = Field(os.getenv("LOG_LEVEL", "INFO"), env="LOG_LEVEL")

    # ─── Recommendations ─────────────────────────────────────────────────────
    PROFILE_CACHE_TTL_HOURS: int = Field(24, env="PROFILE_CACHE_TTL_HOURS")
    FEED_MAX_ITEMS: int = Field(20, env="FEED_MAX_ITEMS")
    SCORER_TIMEOUT_SECONDS: float = Field(20.0, env="SCORER_TIMEOUT_SECONDS")
    # rows per request; must not exceed the PostgREST max-rows setting
    STORE_PAGE_SIZE: int = Field(1000, env="STORE_PAGE_SIZE")

    class Config:
        """
        Pydantic-Settings configuration.
        """
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def get_cors_origins(self) -> list[str]:
        """
        Helper to turn a CSV string into a list of origins.

        Returns:
            list[str]: List of CORS origins from the BACKEND_CORS_ORIGINS setting
        """
        if not self.BACKEND_CORS_ORIGINS:
            return []
        return [u.strip() for u in self.BACKEND_CORS_ORIGINS.split(",") if u.strip()]

# instantiate
settings = Settings()
