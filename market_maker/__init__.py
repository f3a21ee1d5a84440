"""Scheduling core for a fleet of per-account market making bots."""

from .agent import BotAgent, BotRunState, BotState
from .config import AccountSettings, EffectiveSettings, GlobalSettings, resolve_settings
from .errors import InsufficientBalance, InvalidSettings, MarketMakerError, NetworkUnavailable, SwapFailed
from .models import Account, Receipt, SwapDirection, SwapRequest
from .random_policy import RandomPolicy
from .registry import BotRegistry, BotStatus

__all__ = [
    "Account",
    "AccountSettings",
    "BotAgent",
    "BotRegistry",
    "BotRunState",
    "BotState",
    "BotStatus",
    "EffectiveSettings",
    "GlobalSettings",
    "InsufficientBalance",
    "InvalidSettings",
    "MarketMakerError",
    "NetworkUnavailable",
    "RandomPolicy",
    "Receipt",
    "SwapDirection",
    "SwapFailed",
    "SwapRequest",
    "resolve_settings",
]
