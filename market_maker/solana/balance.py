from __future__ import annotations

"""SOL balance lookups over JSON-RPC."""

from typing import Optional

from solana.rpc.async_api import AsyncClient
from solders.pubkey import Pubkey

from market_maker.errors import NetworkUnavailable
from market_maker.utils.logger import LOG_DIR, setup_logger, short_key

logger = setup_logger(__name__, LOG_DIR / "wallet.log")

LAMPORTS_PER_SOL = 1_000_000_000


class RpcBalanceProvider:
    """Return account balances in SOL using a Solana RPC endpoint."""

    def __init__(self, rpc_url: str, client: Optional[AsyncClient] = None) -> None:
        self.rpc_url = rpc_url
        self._client = client

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            self._client = AsyncClient(self.rpc_url)
        return self._client

    async def get_balance(self, address: str) -> float:
        try:
            pubkey = Pubkey.from_string(address)
        except Exception as exc:
            raise NetworkUnavailable(f"Invalid address {address!r}") from exc
        try:
            resp = await self.client.get_balance(pubkey)
            lamports = resp.value
        except Exception as exc:
            logger.warning("Failed to get balance for %s: %s", short_key(address), exc)
            raise NetworkUnavailable(f"Balance query failed: {exc}") from exc
        return lamports / LAMPORTS_PER_SOL

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> "RpcBalanceProvider":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
