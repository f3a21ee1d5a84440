"""Trading settings and their resolution.

Global defaults live in ``config.yaml``. Each account may carry an override
that, when enabled, replaces every trading field for that account's runs.
``resolve_settings`` produces the frozen :class:`EffectiveSettings` snapshot
a bot runs with, rejecting inconsistent ranges before any cycle starts.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import InvalidSettings

SOL_MINT = "So11111111111111111111111111111111111111112"
CONFIG_FILE = Path(__file__).resolve().parent / "config.yaml"

TRADING_FIELDS = (
    "cycles_before_recycle",
    "min_interval",
    "max_interval",
    "min_amount",
    "max_amount",
    "is_randomized",
)


class TradingSettings(BaseModel):
    """Fields shared by global defaults and per-account overrides."""

    model_config = ConfigDict(extra="forbid")

    cycles_before_recycle: int = Field(10, description="Cycles before an account is retired")
    min_interval: int = Field(60, description="Minimum seconds between cycles")
    max_interval: int = Field(300, description="Maximum seconds between cycles")
    min_amount: float = Field(0.01, description="Minimum trade amount in SOL")
    max_amount: float = Field(0.1, description="Maximum trade amount in SOL")
    is_randomized: bool = Field(True, description="Sample amount and interval from the ranges")

    def trading_values(self) -> dict:
        return {name: getattr(self, name) for name in TRADING_FIELDS}


class GlobalSettings(TradingSettings):
    """Process-wide defaults plus runtime options."""

    rpc_endpoint: str = "https://api.devnet.solana.com"
    max_wallets: int = Field(5, ge=1, le=10, description="Accounts trading concurrently")
    trade_target: str = SOL_MINT
    settle_delay: float = Field(5.0, ge=0, description="Seconds between sell and buy legs")
    check_interval: float = Field(
        1.0, ge=0, description="Seconds before the first tick and after a skipped tick"
    )
    dry_run: bool = True
    slippage_bps: int = Field(50, ge=0)


class AccountSettings(TradingSettings):
    """Per-account override. Ignored unless ``enabled``."""

    enabled: bool = False
    token_mint: str = SOL_MINT

    @classmethod
    def from_global(cls, settings: GlobalSettings, **overrides) -> "AccountSettings":
        """Return a disabled override seeded from ``settings``."""
        data = settings.trading_values()
        data["token_mint"] = settings.trade_target
        data.update(overrides)
        return cls(**data)


class EffectiveSettings(BaseModel):
    """Validated settings snapshot for one run."""

    model_config = ConfigDict(frozen=True)

    cycles_before_recycle: int
    min_interval: int
    max_interval: int
    min_amount: float
    max_amount: float
    is_randomized: bool
    trade_target: str

    @model_validator(mode="after")
    def _check_ranges(self):
        if self.cycles_before_recycle < 1:
            raise ValueError("cycles_before_recycle must be >= 1")
        if self.min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        if self.min_interval > self.max_interval:
            raise ValueError(
                f"min_interval ({self.min_interval}) exceeds max_interval ({self.max_interval})"
            )
        if self.min_amount <= 0:
            raise ValueError("min_amount must be > 0")
        if self.min_amount > self.max_amount:
            raise ValueError(
                f"min_amount ({self.min_amount}) exceeds max_amount ({self.max_amount})"
            )
        if not self.trade_target:
            raise ValueError("trade_target must be set")
        return self


def _describe(exc: ValidationError) -> str:
    return "; ".join(err.get("msg", str(err)) for err in exc.errors())


def uses_custom_settings(account_override: Optional[AccountSettings]) -> bool:
    return bool(account_override is not None and account_override.enabled)


def resolve_settings(
    global_settings: TradingSettings,
    account_override: Optional[AccountSettings] = None,
) -> EffectiveSettings:
    """Return the effective settings for one run.

    When ``account_override`` is enabled every trading field and the trade
    target come from it, otherwise ``global_settings`` is used verbatim.
    Raises :class:`InvalidSettings` when the result is inconsistent.
    """

    if uses_custom_settings(account_override):
        data = account_override.trading_values()
        data["trade_target"] = account_override.token_mint
    else:
        data = global_settings.trading_values()
        data["trade_target"] = getattr(global_settings, "trade_target", SOL_MINT)
    try:
        return EffectiveSettings(**data)
    except ValidationError as exc:
        raise InvalidSettings(_describe(exc)) from exc


def load_config(path: str | Path = CONFIG_FILE) -> GlobalSettings:
    """Load global settings from ``path``.

    A missing file yields the defaults. ``SOLANA_RPC_URL`` overrides the
    configured ``rpc_endpoint``.
    """

    path = Path(path)
    data: dict = {}
    if path.exists():
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    rpc_url = os.getenv("SOLANA_RPC_URL")
    if rpc_url:
        data["rpc_endpoint"] = rpc_url
    try:
        return GlobalSettings(**data)
    except ValidationError as exc:
        raise InvalidSettings(f"{path}: {_describe(exc)}") from exc


def save_config(settings: GlobalSettings, path: str | Path = CONFIG_FILE) -> None:
    """Write ``settings`` to ``path`` as YAML."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(settings.model_dump(), f, sort_keys=False)


__all__ = [
    "SOL_MINT",
    "TradingSettings",
    "GlobalSettings",
    "AccountSettings",
    "EffectiveSettings",
    "resolve_settings",
    "uses_custom_settings",
    "load_config",
    "save_config",
]
