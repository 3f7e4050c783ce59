"""Configuration settings for the agent service."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LIFEAGENT_",
        extra="ignore",
    )

    # Service
    SERVICE_NAME: str = "lifeagent"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # Options: json, console

    # LLM
    LLM_PROVIDER: str = "google_genai"  # Any provider understood by init_chat_model
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_TEMPERATURE: float = 0.3

    # Agent loop
    MAX_AGENT_ITERATIONS: int = Field(default=3, ge=1)
    MAX_TOOL_ROUNDS: int = Field(default=6, ge=0)
    HISTORY_WINDOW: int = Field(default=10, ge=1)
    ENABLE_PLANNING: bool = True
    ENABLE_REFLECTION: bool = True
    ENABLE_LEARNINGS: bool = True
    REQUIRE_WRITE_CONFIRMATION: bool = False

    # Conversation state
    FOCUS_TTL_SECONDS: int = 600
    STATE_TTL_SECONDS: int = 1800

    # Misc
    TIMEZONE: str = "UTC"
    CONTENT_CHUNK_SIZE: int = Field(default=50, ge=1)


settings = Settings()
