from __future__ import annotations

"""Account, swap and receipt types plus the collaborator interfaces."""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from .config import AccountSettings


class SwapDirection(str, Enum):
    SELL = "sell"
    BUY = "buy"


@dataclass
class Account:
    """A managed trading account.

    ``secret_key`` is the base58 encoded keypair. It is only handed to the
    swap executor and never appears in ``repr``, logs or status output.
    """

    id: str
    public_key: str
    secret_key: str = field(repr=False)
    cycles_completed: int = 0
    custom_settings: Optional[AccountSettings] = None
    is_active: bool = False
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["custom_settings"] = (
            self.custom_settings.model_dump() if self.custom_settings else None
        )
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        data = dict(data)
        custom = data.get("custom_settings")
        data["custom_settings"] = AccountSettings(**custom) if custom else None
        return cls(**data)


@dataclass(frozen=True)
class SwapRequest:
    target: str
    amount: float
    direction: SwapDirection


@dataclass(frozen=True)
class Receipt:
    """Result of one completed swap leg."""

    signature: str
    direction: SwapDirection
    amount: float
    target: str
    timestamp: float = field(default_factory=time.time)
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["direction"] = self.direction.value
        return data


class BalanceProvider(Protocol):
    async def get_balance(self, address: str) -> float:
        """Return the spendable balance or raise ``NetworkUnavailable``."""


class SwapExecutor(Protocol):
    async def swap(self, secret_key: str, request: SwapRequest) -> Receipt:
        """Execute one leg or raise ``SwapFailed``."""
