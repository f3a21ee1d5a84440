"""Solana adapters for the balance and swap collaborators."""

from .balance import LAMPORTS_PER_SOL, RpcBalanceProvider
from .swap import JupiterSwapExecutor

__all__ = ["LAMPORTS_PER_SOL", "RpcBalanceProvider", "JupiterSwapExecutor"]
