"""Error taxonomy shared by the scheduler and its collaborators.

Every error here is scoped to one account's current start or cycle attempt.
None of them is fatal to the process.
"""

from __future__ import annotations


class MarketMakerError(Exception):
    """Base class for scheduler errors."""


class InvalidSettings(MarketMakerError, ValueError):
    """Resolved settings violate their ordering invariants."""


class InsufficientBalance(MarketMakerError):
    """Account balance cannot cover two legs of the minimum trade amount."""

    def __init__(self, required: float, available: float) -> None:
        super().__init__(
            f"Insufficient balance: required {required:.4f}, available {available:.4f}"
        )
        self.required = required
        self.available = available


class SwapFailed(MarketMakerError):
    """A single swap leg did not complete."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Swap failed: {reason}")
        self.reason = reason


class NetworkUnavailable(MarketMakerError):
    """A balance or network query could not complete."""


__all__ = [
    "MarketMakerError",
    "InvalidSettings",
    "InsufficientBalance",
    "SwapFailed",
    "NetworkUnavailable",
]
