"""
Settings (pydantic-settings).

Expose a unified SETTINGS object with engine defaults. Values can be
overridden through ``BACKTESTER_*`` environment variables or a ``.env`` file.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    # Bars skipped before rules are evaluated so indicators are populated
    warmup_bars: int = Field(50, ge=0)
    default_metric: str = "total_return"
    max_workers: int = Field(1, ge=1)
    show_progress: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_json: bool = False
    model_config = SettingsConfigDict(env_prefix="BACKTESTER_", env_file=".env", extra="ignore")


SETTINGS = EngineSettings()

__all__ = ["SETTINGS", "EngineSettings"]
