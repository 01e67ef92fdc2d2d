from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoalescerSettings(BaseSettings):
    """Environment-driven coalescer parameters (``COALESCER_TIMEOUT`` etc.)."""

    timeout: float = Field(default=0.1, ge=0)  # seconds
    max_size: int = Field(default=65536, gt=0)  # bytes
    name: str = "coalescer"

    model_config = SettingsConfigDict(
        env_prefix="COALESCER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> CoalescerSettings:
    return CoalescerSettings()
