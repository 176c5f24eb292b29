from __future__ import annotations

import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

load_dotenv()


class Settings(BaseModel):
    LOG_LEVEL: str = Field(default="INFO")
    BIND_HOST: str = Field(default="0.0.0.0")
    DELIVERY_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    PARALLEL_DELIVERY: bool = Field(default=True)
    DELIVERY_CONCURRENCY: int = Field(default=32, ge=1)
    FAIL_ON_HTTP_ERROR_STATUS: bool = Field(default=False)
    ALLOWED_SCHEMES: str = Field(
        default="http,https", description="comma-separated, '*' for any"
    )

    def allowed_schemes(self) -> frozenset[str] | None:
        raw = [s.strip().lower() for s in self.ALLOWED_SCHEMES.split(",") if s.strip()]
        if not raw or "*" in raw:
            return None
        return frozenset(raw)


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
        bad = sorted({str(error["loc"][0]) for error in exc.errors() if error.get("loc")})
        raise RuntimeError(
            f"Invalid environment variables: {', '.join(bad)}"
        ) from exc


settings = _load_settings()


def reload_settings() -> Settings:
    global settings
    fresh = _load_settings(settings)
    settings.__dict__.update(fresh.__dict__)
    return settings
