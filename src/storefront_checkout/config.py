from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    api_base_url: str = Field(default="http://localhost:8080/api")
    api_token: str | None = Field(default=None)
    http_timeout_seconds: float = Field(default=8.0, gt=0)
    http_connect_timeout_seconds: float = Field(default=5.0, gt=0)

    quote_quiet_period_seconds: float = Field(default=0.5, ge=0)
    points_epsilon: Decimal = Field(default=Decimal("0.01"), ge=0)
    default_point_unit_value: Decimal = Field(default=Decimal("0.01"), gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)

    session_idle_timeout_seconds: float = Field(default=1800.0, gt=0)
    finished_checkouts_kept: int = Field(default=1000, ge=0)

    # in-process collaborators instead of the HTTP ones (local runs, demos)
    use_dummy_collaborators: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CHECKOUT_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
