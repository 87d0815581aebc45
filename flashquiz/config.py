from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    # Server side
    database_url: str = "sqlite:///./flashquiz.db"
    redis_url: Optional[str] = None
    jwt_secret: str = "dev-secret-change-me"

    # Generation provider
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    use_mock_data: bool = False
    provider_timeout: float = 30.0
    max_chunk_chars: int = 15000
    max_input_chars: int = 60000
    generation_rate_limit: str = "5/minute"

    # Remote store, as seen by the session core
    store_url: Optional[str] = None
    store_key: Optional[str] = None
    remote_timeout: float = 10.0
    local_auth_delay: float = 0.5

    @property
    def remote_enabled(self) -> bool:
        return bool(self.store_url and self.store_key)

    @property
    def provider_configured(self) -> bool:
        return bool(self.openai_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            redis_url=os.getenv("REDIS_URL") or None,
            jwt_secret=os.getenv("JWT_SECRET", cls.jwt_secret),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", cls.openai_model),
            use_mock_data=_env_bool("FLASHQUIZ_USE_MOCK_DATA"),
            provider_timeout=float(os.getenv("FLASHQUIZ_PROVIDER_TIMEOUT", cls.provider_timeout)),
            max_chunk_chars=int(os.getenv("FLASHQUIZ_MAX_CHUNK_CHARS", cls.max_chunk_chars)),
            max_input_chars=int(os.getenv("FLASHQUIZ_MAX_INPUT_CHARS", cls.max_input_chars)),
            generation_rate_limit=os.getenv("FLASHQUIZ_GENERATION_RATE_LIMIT", cls.generation_rate_limit),
            store_url=os.getenv("FLASHQUIZ_STORE_URL") or None,
            store_key=os.getenv("FLASHQUIZ_STORE_KEY") or None,
            remote_timeout=float(os.getenv("FLASHQUIZ_REMOTE_TIMEOUT", cls.remote_timeout)),
            local_auth_delay=float(os.getenv("FLASHQUIZ_LOCAL_AUTH_DELAY", cls.local_auth_delay)),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
