"""Configuration management utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import Field, model_validator

try:
    from pydantic_settings import BaseSettings, SettingsConfigDict
except ImportError as e:  # pragma: no cover - dependency guard
    raise RuntimeError(
        "Missing dependency 'pydantic-settings'. Install with: pip install 'pydantic-settings>=2.2,<3'"
    ) from e


VenueEnv = Literal["mainnet", "devnet"]


class EngineSettings(BaseSettings):
    """Policy constants and wiring for the tick scheduler.

    Values come from ``PERPS_*`` environment variables or a YAML file and are
    validated once, when the object is built.
    """

    model_config = SettingsConfigDict(env_prefix="PERPS_", extra="ignore", frozen=True)

    tick_interval_sec: float = Field(default=600.0, gt=0)
    venue_env: VenueEnv = "mainnet"
    forecast_path: Path = Path("public/prediction.json")

    # intent mapping
    min_confidence: float = Field(default=55.0, ge=0, le=100)
    risk_fraction: float = Field(default=0.3, ge=0, le=1)

    # exits
    take_profit_pct: float = Field(default=0.035, gt=0)
    stop_loss_pct: float = Field(default=0.035, gt=0)
    max_position_age_sec: float = Field(default=24 * 60 * 60, gt=0)

    # sizing
    notional_cap_usd: float = Field(default=10.0, gt=0)
    min_notional_usd: float = Field(default=1.0, ge=0)
    min_collateral_usd: float = Field(default=10.0, gt=0)
    min_leverage: float = Field(default=1.1, ge=1)
    target_leverage: float = Field(default=1.3, ge=1)

    @model_validator(mode="after")
    def _check_leverage(self) -> "EngineSettings":
        if self.target_leverage <= self.min_leverage:
            raise ValueError("target_leverage must be greater than min_leverage")
        if self.min_notional_usd > self.notional_cap_usd:
            raise ValueError("min_notional_usd cannot exceed notional_cap_usd")
        return self

    @property
    def is_mainnet(self) -> bool:
        return self.venue_env == "mainnet"


def _read_config_payload(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    payload = yaml.safe_load(text) or {}
    if not isinstance(payload, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return payload


def load_settings(path: Optional[Path | str] = None, *, env_file: Optional[str] = ".env") -> EngineSettings:
    """Build settings from the environment, optionally overlaid with ``path``.

    Values in the YAML file win over ``PERPS_*`` environment variables.
    """

    if env_file:
        load_dotenv(env_file, override=False)
    if path is None:
        return EngineSettings()
    payload = _read_config_payload(Path(path))
    return EngineSettings(**payload)


__all__ = ["EngineSettings", "VenueEnv", "load_settings"]
