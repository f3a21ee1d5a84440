"""Per-account trading agent.

A :class:`BotAgent` owns one account's run. Each tick either retires the
run (stop requested or cycle budget exhausted) or attempts one cycle: a
balance check, a sell leg, a settle delay and a buy leg. The agent drives
itself from a single asyncio task and reports progress through the
``on_cycle_complete`` callback.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from .config import EffectiveSettings
from .errors import InsufficientBalance, MarketMakerError, NetworkUnavailable, SwapFailed
from .models import Account, BalanceProvider, Receipt, SwapDirection, SwapExecutor, SwapRequest
from .random_policy import RandomPolicy
from .utils.logger import LOG_DIR, setup_logger, short_key

logger = setup_logger(__name__, LOG_DIR / "bot.log")

CycleCallback = Callable[[str, int, bool], Any]
ErrorCallback = Callable[[str, MarketMakerError], Any]
SleepFn = Callable[[float], Awaitable[Any]]

DEFAULT_SETTLE_DELAY = 5.0
DEFAULT_CHECK_INTERVAL = 1.0


class BotState(str, Enum):
    IDLE = "idle"
    AWAITING_CYCLE = "awaiting_cycle"
    EXECUTING = "executing"
    COOLING = "cooling"
    RECYCLE_NEEDED = "recycle_needed"
    STOPPED = "stopped"

    @property
    def terminal(self) -> bool:
        return self in (BotState.RECYCLE_NEEDED, BotState.STOPPED)


@dataclass
class BotRunState:
    """Mutable state of one run, owned by its agent."""

    account: Account
    settings: EffectiveSettings
    use_custom_settings: bool = False
    cycles_completed: int = 0
    last_action_time: float = field(default_factory=time.time)
    transactions: List[Receipt] = field(default_factory=list)
    stop_requested: bool = False
    is_running: bool = False
    state: BotState = BotState.IDLE
    last_error: Optional[str] = None


class BotAgent:
    """Run the sell/settle/buy cycle for one account until stopped or retired."""

    def __init__(
        self,
        run_state: BotRunState,
        balance_provider: BalanceProvider,
        swap_executor: SwapExecutor,
        on_cycle_complete: Optional[CycleCallback] = None,
        *,
        policy: Optional[RandomPolicy] = None,
        on_error: Optional[ErrorCallback] = None,
        on_exit: Optional[Callable[["BotAgent"], None]] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.run_state = run_state
        self.balance_provider = balance_provider
        self.swap_executor = swap_executor
        self.policy = policy or RandomPolicy()
        self.settle_delay = settle_delay
        self.check_interval = check_interval
        self._on_cycle_complete = on_cycle_complete
        self._on_error = on_error
        self._on_exit = on_exit
        self._sleep = sleep
        self._wakeup = asyncio.Event()
        self._detached = False
        self.task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def account_id(self) -> str:
        return self.run_state.account.id

    @property
    def state(self) -> BotState:
        return self.run_state.state

    def start(self) -> asyncio.Task:
        """Schedule the run loop on the running event loop."""
        if self.task is not None:
            return self.task
        self.run_state.is_running = True
        self.run_state.state = BotState.AWAITING_CYCLE
        self.task = asyncio.create_task(self.run(), name=f"bot-{self.account_id}")
        return self.task

    def request_stop(self) -> None:
        """Ask the agent to stop at its next tick boundary.

        An in-flight cycle is never interrupted. A pending wait between
        ticks ends early so the stop is observed promptly.
        """
        self.run_state.stop_requested = True
        self._wakeup.set()

    async def run(self) -> None:
        delay: Optional[float] = self.check_interval
        try:
            while delay is not None:
                await self._wait(delay)
                delay = await self.tick()
        except asyncio.CancelledError:
            self.run_state.state = BotState.STOPPED
            raise
        finally:
            self.run_state.is_running = False
            self._detach()

    async def tick(self) -> Optional[float]:
        """Run one scheduled step.

        Returns the delay before the next tick, or ``None`` once the run has
        reached a terminal state.
        """

        rs = self.run_state
        settings = rs.settings
        account = rs.account

        if rs.stop_requested:
            rs.state = BotState.STOPPED
            logger.info("Bot for %s stopped after %d cycles", short_key(account.public_key), rs.cycles_completed)
            self._detach()
            return None

        if rs.cycles_completed >= settings.cycles_before_recycle:
            rs.state = BotState.RECYCLE_NEEDED
            logger.info(
                "Bot for %s reached %d cycles; recycle needed",
                short_key(account.public_key),
                rs.cycles_completed,
            )
            self._detach()
            await self._notify_cycle(True)
            return None

        rs.state = BotState.EXECUTING
        required = 2 * settings.min_amount
        try:
            balance = await self.balance_provider.get_balance(account.public_key)
        except NetworkUnavailable as exc:
            logger.warning("Balance query failed for %s: %s", short_key(account.public_key), exc)
            return await self._skip(exc)
        if balance < required:
            logger.warning(
                "Insufficient balance in %s: %.4f < %.4f",
                short_key(account.public_key),
                balance,
                required,
            )
            return await self._skip(InsufficientBalance(required, balance))

        amount = self.policy.next_amount(settings)

        try:
            sell = await self._swap(amount, SwapDirection.SELL)
        except SwapFailed as exc:
            logger.warning("Sell leg failed for %s: %s", short_key(account.public_key), exc.reason)
            return await self._skip(exc)

        rs.state = BotState.COOLING
        await self._sleep(self.settle_delay)
        rs.state = BotState.EXECUTING

        try:
            buy = await self._swap(amount, SwapDirection.BUY)
        except SwapFailed as exc:
            # the completed sell leg is not reverted
            logger.error(
                "Buy leg failed for %s after sell %s; account left unbalanced by %s: %s",
                short_key(account.public_key),
                sell.signature,
                amount,
                exc.reason,
            )
            return await self._skip(exc)

        rs.transactions.extend([sell, buy])
        rs.cycles_completed += 1
        account.cycles_completed = rs.cycles_completed
        rs.last_action_time = time.time()
        rs.last_error = None
        logger.info(
            "Cycle %d/%d completed for %s amount=%s",
            rs.cycles_completed,
            settings.cycles_before_recycle,
            short_key(account.public_key),
            amount,
        )
        await self._notify_cycle(False)

        rs.state = BotState.AWAITING_CYCLE
        return self.policy.next_interval(settings)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _swap(self, amount: float, direction: SwapDirection) -> Receipt:
        request = SwapRequest(
            target=self.run_state.settings.trade_target,
            amount=amount,
            direction=direction,
        )
        return await self.swap_executor.swap(self.run_state.account.secret_key, request)

    def _detach(self) -> None:
        if self._on_exit and not self._detached:
            self._detached = True
            self._on_exit(self)

    async def _wait(self, delay: float) -> None:
        if self.run_state.stop_requested:
            return
        sleeper = asyncio.ensure_future(self._sleep(delay))
        waker = asyncio.ensure_future(self._wakeup.wait())
        try:
            await asyncio.wait({sleeper, waker}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (sleeper, waker):
                if not fut.done():
                    fut.cancel()

    async def _skip(self, error: MarketMakerError) -> float:
        self.run_state.state = BotState.AWAITING_CYCLE
        self.run_state.last_error = str(error)
        if self._on_error:
            await self._call(self._on_error, self.account_id, error)
        return self.check_interval

    async def _notify_cycle(self, needs_recycle: bool) -> None:
        if self._on_cycle_complete:
            await self._call(
                self._on_cycle_complete,
                self.account_id,
                self.run_state.cycles_completed,
                needs_recycle,
            )

    async def _call(self, fn: Callable[..., Any], *args: Any) -> None:
        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Callback %s failed for %s", getattr(fn, "__name__", fn), self.account_id)


__all__ = ["BotState", "BotRunState", "BotAgent"]
