from __future__ import annotations

import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

load_dotenv()


class Settings(BaseModel):
    DATABASE_URL: str = Field(default="sqlite:///newsletter.db")
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="empty string disables event publishing",
    )
    PUBLISH_CHANNEL: str = Field(default="newsletter:subscribe")
    STORE_TIMEOUT_SECONDS: float = Field(default=5.0)
    PUBLISH_TIMEOUT_SECONDS: float = Field(default=2.0)
    REDIS_MAX_CONNECTIONS: int = Field(default=10)
    APP_ENV: str = Field(default="production")
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ALLOW_ORIGINS: str = Field(default="*")
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3031)
    RATE_LIMIT_ENABLED: bool = Field(default=False)
    RATE_LIMIT_RPS: float = Field(default=5.0)
    RATE_LIMIT_BURST: int = Field(default=20)

    @property
    def diagnostic(self) -> bool:
        return self.APP_ENV.strip().lower() == "development"


def _load_settings(existing: Settings | None = None) -> Settings:
    values: dict[str, Any] = {}
    for name, field in Settings.model_fields.items():
        env_value = os.getenv(name)
        if env_value is None:
            if existing is not None and hasattr(existing, name):
                values[name] = getattr(existing, name)
                continue
            values[name] = field.get_default(call_default_factory=True)
        else:
            values[name] = env_value

    try:
        return Settings(**values)
    except ValidationError as exc:
        bad = sorted(
            {str(error["loc"][0]) for error in exc.errors() if error.get("loc")}
        )
        raise RuntimeError(
            f"Invalid environment variables: {', '.join(bad)}"
        ) from exc


settings = _load_settings()


def reload_settings() -> Settings:
    global settings
    fresh = _load_settings(settings)
    settings.__dict__.update(fresh.__dict__)
    return settings
