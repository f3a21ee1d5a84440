"""Swap execution through the Jupiter aggregator."""

from __future__ import annotations

import asyncio
import base64
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

import aiohttp
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from market_maker.accounts import keypair_from_secret
from market_maker.config import SOL_MINT
from market_maker.errors import SwapFailed
from market_maker.models import Receipt, SwapDirection, SwapRequest
from market_maker.utils.logger import LOG_DIR, setup_logger, short_key

from .balance import LAMPORTS_PER_SOL

logger = setup_logger(__name__, LOG_DIR / "execution.log")

JUPITER_QUOTE_URL = "https://quote-api.jup.ag/v6/quote"
JUPITER_SWAP_URL = "https://quote-api.jup.ag/v6/swap"


def to_lamports(amount: float) -> int:
    return int(Decimal(str(amount)) * LAMPORTS_PER_SOL)


class JupiterSwapExecutor:
    """Execute one swap leg per call.

    Amounts are denominated in SOL. A buy spends ``amount`` SOL on the
    target token, a sell sells the target token for ``amount`` SOL. With
    ``dry_run`` no network call is made and a simulated receipt is returned.
    Failures raise :class:`SwapFailed`; nothing is retried.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        dry_run: bool = True,
        slippage_bps: int = 50,
        base_mint: str = SOL_MINT,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
        client: Optional[AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.dry_run = dry_run
        self.slippage_bps = slippage_bps
        self.base_mint = base_mint
        self.timeout = timeout
        self._session = session
        self._client = client

    async def swap(self, secret_key: str, request: SwapRequest) -> Receipt:
        try:
            keypair = keypair_from_secret(secret_key)
        except ValueError as exc:
            raise SwapFailed(str(exc)) from exc
        if request.amount <= 0:
            raise SwapFailed(f"Invalid amount {request.amount}")

        if self.dry_run:
            return self._simulate(keypair, request)

        if request.target == self.base_mint:
            raise SwapFailed("Trade target must differ from the base mint")
        quote = await self._quote(request)
        raw_tx = await self._swap_transaction(quote, keypair)
        signature = await self._send(raw_tx, keypair)
        logger.info(
            "Swap executed - tx=%s wallet=%s side=%s target=%s amount=%s",
            signature,
            short_key(str(keypair.pubkey())),
            request.direction.value,
            request.target,
            request.amount,
        )
        return Receipt(
            signature=signature,
            direction=request.direction,
            amount=request.amount,
            target=request.target,
        )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        if self._client is not None:
            await self._client.close()
            self._client = None

    # ------------------------------------------------------------------
    def _simulate(self, keypair: Keypair, request: SwapRequest) -> Receipt:
        receipt = Receipt(
            signature=f"DRYRUN-{uuid.uuid4().hex[:16]}",
            direction=request.direction,
            amount=request.amount,
            target=request.target,
            timestamp=time.time(),
            dry_run=True,
        )
        logger.info(
            "Swap executed - tx=%s wallet=%s side=%s target=%s amount=%s dry_run=%s",
            receipt.signature,
            short_key(str(keypair.pubkey())),
            request.direction.value,
            request.target,
            request.amount,
            True,
        )
        return receipt

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            self._client = AsyncClient(self.rpc_url)
        return self._client

    def _quote_params(self, request: SwapRequest) -> Dict[str, str]:
        if request.direction is SwapDirection.BUY:
            input_mint, output_mint, mode = self.base_mint, request.target, "ExactIn"
        else:
            input_mint, output_mint, mode = request.target, self.base_mint, "ExactOut"
        return {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(to_lamports(request.amount)),
            "slippageBps": str(self.slippage_bps),
            "swapMode": mode,
        }

    async def _quote(self, request: SwapRequest) -> Dict[str, Any]:
        try:
            async with self.session.get(JUPITER_QUOTE_URL, params=self._quote_params(request)) as resp:
                resp.raise_for_status()
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise SwapFailed(f"Quote request failed: {exc}") from exc
        if not isinstance(data, dict) or data.get("error") or not data.get("routePlan"):
            raise SwapFailed(f"No route for {request.direction.value} {request.target}")
        return data

    async def _swap_transaction(self, quote: Dict[str, Any], keypair: Keypair) -> bytes:
        payload = {
            "quoteResponse": quote,
            "userPublicKey": str(keypair.pubkey()),
            "wrapAndUnwrapSol": True,
        }
        try:
            async with self.session.post(JUPITER_SWAP_URL, json=payload) as resp:
                resp.raise_for_status()
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise SwapFailed(f"Swap request failed: {exc}") from exc
        swap_tx = data.get("swapTransaction") if isinstance(data, dict) else None
        if not swap_tx:
            raise SwapFailed("Swap response missing transaction")
        try:
            return base64.b64decode(swap_tx)
        except ValueError as exc:
            raise SwapFailed("Swap transaction is not base64") from exc

    async def _send(self, raw_tx: bytes, keypair: Keypair) -> str:
        try:
            unsigned = VersionedTransaction.from_bytes(raw_tx)
            signed = VersionedTransaction(unsigned.message, [keypair])
        except Exception as exc:
            raise SwapFailed(f"Could not sign transaction: {exc}") from exc
        try:
            resp = await self.client.send_raw_transaction(bytes(signed))
            signature = resp.value
            await self.client.confirm_transaction(signature, commitment=Confirmed)
        except Exception as exc:
            raise SwapFailed(f"Transaction failed: {exc}") from exc
        return str(signature)
