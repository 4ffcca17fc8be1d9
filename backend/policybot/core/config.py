"""
Application Configuration
"""
from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "PolicyBot"
    APP_ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False  # Secure default
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # LLM Provider
    LLM_PROVIDER: Literal["bedrock", "ollama"] = "ollama"
    LLM_TEMPERATURE: float = 0.2

    # AWS Bedrock
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    BEDROCK_MODEL_ID: str = "anthropic.claude-3-haiku-20240307-v1:0"

    # Ollama
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3"

    # Oracle retry discipline
    ORACLE_MAX_RETRIES: int = 5
    ORACLE_BASE_DELAY_SECONDS: float = 2.0
    # Retries stop waiting once a turn has run this long; 0 disables the deadline
    TURN_TIMEOUT_SECONDS: float = 60.0

    # Let the LLM rephrase the templated recommendation
    RECOMMENDATION_STYLING: bool = False

    # LangFuse Observability (optional)
    LANGFUSE_PUBLIC_KEY: str = ""
    LANGFUSE_SECRET_KEY: str = ""
    LANGFUSE_HOST: str = "https://cloud.langfuse.com"

    @model_validator(mode="after")
    def validate_oracle_settings(self) -> "Settings":
        """Reject missing oracle credentials before the app starts serving."""
        if self.LLM_PROVIDER == "bedrock":
            if not self.AWS_ACCESS_KEY_ID or not self.AWS_SECRET_ACCESS_KEY:
                raise ValueError(
                    "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY are required when LLM_PROVIDER is 'bedrock'. "
                    "Set these in your .env file or environment variables."
                )
        else:
            if not self.OLLAMA_BASE_URL or not self.OLLAMA_MODEL:
                raise ValueError(
                    "OLLAMA_BASE_URL and OLLAMA_MODEL are required when LLM_PROVIDER is 'ollama'. "
                    "Set these in your .env file or environment variables."
                )

        if self.ORACLE_MAX_RETRIES < 0:
            raise ValueError("ORACLE_MAX_RETRIES cannot be negative")

        if self.TURN_TIMEOUT_SECONDS < 0:
            raise ValueError("TURN_TIMEOUT_SECONDS cannot be negative")

        if self.APP_ENV != "development" and self.DEBUG:
            import warnings
            warnings.warn(
                "DEBUG mode is enabled in a non-development environment. "
                "This is not recommended for production.",
                UserWarning,
            )

        return self


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
