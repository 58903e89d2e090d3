"""Application settings, read from PHANTOM_* environment variables."""

import os
from functools import lru_cache

from pydantic import BaseModel, Field

ENV_PREFIX = "PHANTOM_"


class Settings(BaseModel):
    database_url: str = "sqlite:///phantom_agent.db"
    log_level: str = "INFO"
    player_address: str = "0xagent"
    default_stake: int = Field(default=0, ge=0)
    move_timeout_seconds: int = Field(default=86_400, gt=0)
    main_loop_delay_seconds: float = Field(default=1.0, ge=0)
    retry_max_attempts: int = Field(default=5, ge=0)
    retry_base_delay_seconds: float = Field(default=2.0, ge=0)
    retry_max_delay_seconds: float = Field(default=30.0, ge=0)
    auto_open_game: bool = True

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Pick up every field that has a matching PHANTOM_<FIELD> variable. Pydantic does the type coercion."""
        environ = dict(os.environ) if environ is None else environ
        values = {
            name: environ[f"{ENV_PREFIX}{name.upper()}"]
            for name in cls.model_fields
            if f"{ENV_PREFIX}{name.upper()}" in environ
        }
        return cls.model_validate(values)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
