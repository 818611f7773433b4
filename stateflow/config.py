from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Security: Read from .env, never hardcode defaults here
    OPENAI_API_KEY: Optional[str] = None

    # Model Configuration
    OPENAI_MODEL: str = "gpt-4o"
    LLM_TEMPERATURE: float = 0.0

    # Session Storage
    # "memory" keeps sessions in-process, "postgres" uses DATABASE_URL
    SESSION_BACKEND: Literal["memory", "postgres"] = "memory"
    DATABASE_URL: Optional[str] = None
    DEFAULT_STATE_TTL_SECONDS: int = 1800
    HISTORY_WINDOW: int = 50

    # Graph Execution Limits
    MAX_GRAPH_STEPS: int = 64
    NODE_TIMEOUT_SECONDS: float = 60.0
    HTTP_TIMEOUT_SECONDS: float = 30.0

    LOG_LEVEL: str = "INFO"

    # Loads from a .env file in the root directory
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

# Singleton instance
settings = Settings()
