"""Engine configuration loaded from the environment."""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Settings shared by the engine, the operator CLI and the web shell."""

    default_profit_share_rate: Decimal = Field(
        default=Decimal("0.20"),
        ge=0,
        le=1,
        description="Profit share applied when a pool has no configured rate.",
    )
    precision: int = Field(
        default=34,
        ge=16,
        le=100,
        description="Significant digits used for every replay calculation.",
    )
    conservation_tolerance: Decimal = Field(
        default=Decimal("0.000001"),
        gt=0,
        description="Allowed gap between summed balances and capital plus net PnL.",
    )
    display_places: int = Field(default=2, ge=0, le=12)
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_prefix="POOL_ENGINE_", env_file=".env", extra="ignore")


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> EngineSettings:
    """Return cached engine settings with optional overrides."""

    if overrides:
        return EngineSettings(**overrides)
    return EngineSettings()


__all__ = ["EngineSettings", "get_settings"]
