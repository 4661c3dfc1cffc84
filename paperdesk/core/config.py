from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_PATH = BASE_DIR / ".env"

# Load environment variables from .env if present
load_dotenv(ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_PATH, case_sensitive=False, extra="ignore")

    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8000
    log_level: str = "INFO"
    log_json: bool = True

    proxy_base_url: str = "http://127.0.0.1:8787/api"
    proxy_timeout_ms: int = Field(10_000, gt=0)

    dashboard_refresh_seconds: float = Field(30.0, gt=0)
    regime_refresh_seconds: float = Field(60.0, gt=0)
    auto_refresh_enabled: bool = True


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


def get_log_level(default: Optional[str] = None) -> str:
    """Convenience accessor for log level with optional override."""
    settings = get_settings()
    return settings.log_level or (default or "INFO")
