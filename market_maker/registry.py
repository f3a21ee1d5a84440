from __future__ import annotations

"""Registry of running bots, at most one per account."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from .agent import (
    DEFAULT_CHECK_INTERVAL,
    DEFAULT_SETTLE_DELAY,
    BotAgent,
    BotRunState,
    CycleCallback,
    ErrorCallback,
    SleepFn,
)
from .config import GlobalSettings, TradingSettings, resolve_settings, uses_custom_settings
from .errors import InvalidSettings, NetworkUnavailable
from .models import Account, BalanceProvider, Receipt, SwapExecutor
from .random_policy import RandomPolicy
from .utils.logger import LOG_DIR, setup_logger, short_key

logger = setup_logger(__name__, LOG_DIR / "bot.log")


@dataclass(frozen=True)
class BotStatus:
    """Point-in-time view of one account's bot. Never carries secrets."""

    account_id: str
    is_active: bool
    public_key: str = ""
    state: str = "inactive"
    cycles_completed: int = 0
    cycles_before_recycle: int = 0
    last_action_time: Optional[float] = None
    transactions: Tuple[Receipt, ...] = ()
    use_custom_settings: bool = False
    stop_requested: bool = False
    last_error: Optional[str] = None

    @classmethod
    def inactive(cls, account_id: str) -> "BotStatus":
        return cls(account_id=account_id, is_active=False)

    @classmethod
    def from_run_state(cls, run_state: BotRunState) -> "BotStatus":
        return cls(
            account_id=run_state.account.id,
            is_active=True,
            public_key=run_state.account.public_key,
            state=run_state.state.value,
            cycles_completed=run_state.cycles_completed,
            cycles_before_recycle=run_state.settings.cycles_before_recycle,
            last_action_time=run_state.last_action_time,
            transactions=tuple(run_state.transactions),
            use_custom_settings=run_state.use_custom_settings,
            stop_requested=run_state.stop_requested,
            last_error=run_state.last_error,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["transactions"] = [r.to_dict() for r in self.transactions]
        return data


class BotRegistry:
    """Start, stop and inspect per-account bots.

    Start and stop calls for the same account are serialised by a
    per-account lock; different accounts never contend.
    """

    def __init__(
        self,
        balance_provider: BalanceProvider,
        swap_executor: SwapExecutor,
        *,
        policy: Optional[RandomPolicy] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        on_error: Optional[ErrorCallback] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.balance_provider = balance_provider
        self.swap_executor = swap_executor
        self.policy = policy or RandomPolicy()
        self.settle_delay = settle_delay
        self.check_interval = check_interval
        self.on_error = on_error
        self._sleep = sleep
        self._agents: Dict[str, BotAgent] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        # account id -> callers holding or waiting on that account's lock
        self._lock_users: Dict[str, int] = {}

    @classmethod
    def from_settings(
        cls,
        settings: GlobalSettings,
        balance_provider: BalanceProvider,
        swap_executor: SwapExecutor,
        **kwargs: Any,
    ) -> "BotRegistry":
        kwargs.setdefault("settle_delay", settings.settle_delay)
        kwargs.setdefault("check_interval", settings.check_interval)
        return cls(balance_provider, swap_executor, **kwargs)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def start(
        self,
        account: Account,
        global_settings: TradingSettings,
        on_cycle_complete: Optional[CycleCallback] = None,
    ) -> bool:
        """Start a bot for ``account``.

        Returns ``False`` when a bot is already registered for the account,
        the resolved settings are invalid, or the balance cannot cover two
        legs of the minimum amount.
        """

        async with self._account_lock(account.id):
            if account.id in self._agents:
                logger.info("Market maker already running for %s", short_key(account.public_key))
                return False

            try:
                settings = resolve_settings(global_settings, account.custom_settings)
            except InvalidSettings as exc:
                logger.error("Invalid settings for %s: %s", short_key(account.public_key), exc)
                return False

            required = 2 * settings.min_amount
            try:
                balance = await self.balance_provider.get_balance(account.public_key)
            except NetworkUnavailable as exc:
                logger.warning("Cannot start %s: %s", short_key(account.public_key), exc)
                return False
            if balance < required:
                logger.warning(
                    "Cannot start %s: insufficient balance %.4f, minimum required %.4f",
                    short_key(account.public_key),
                    balance,
                    required,
                )
                return False

            custom = uses_custom_settings(account.custom_settings)
            run_state = BotRunState(
                account=account,
                settings=settings,
                use_custom_settings=custom,
                cycles_completed=account.cycles_completed or 0,
            )
            agent = BotAgent(
                run_state,
                self.balance_provider,
                self.swap_executor,
                on_cycle_complete,
                policy=self.policy,
                on_error=self.on_error,
                on_exit=self._deregister,
                settle_delay=self.settle_delay,
                check_interval=self.check_interval,
                sleep=self._sleep,
            )
            self._agents[account.id] = agent
            agent.start().add_done_callback(self._handle_completion)
            logger.info(
                "Started market making for %s using %s settings",
                short_key(account.public_key),
                "custom" if custom else "global",
            )
            return True

    async def stop(self, account_id: str) -> bool:
        """Request a cooperative stop. Returns whether a bot was registered."""
        if account_id not in self._agents:
            return False
        async with self._account_lock(account_id):
            agent = self._agents.get(account_id)
            if agent is None:
                return False
            agent.request_stop()
            logger.info("Stop requested for %s", short_key(agent.run_state.account.public_key))
            return True

    def status(self, account_id: str) -> BotStatus:
        agent = self._agents.get(account_id)
        if agent is None:
            return BotStatus.inactive(account_id)
        return BotStatus.from_run_state(agent.run_state)

    def list_active(self) -> List[BotStatus]:
        return [BotStatus.from_run_state(a.run_state) for a in list(self._agents.values())]

    def get(self, account_id: str) -> Optional[BotAgent]:
        return self._agents.get(account_id)

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop every bot, cancelling any still busy after ``timeout`` seconds."""
        agents = list(self._agents.values())
        for agent in agents:
            agent.request_stop()
        tasks = [a.task for a in agents if a.task is not None]
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @asynccontextmanager
    async def _account_lock(self, account_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(account_id, asyncio.Lock())
        self._lock_users[account_id] = self._lock_users.get(account_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[account_id] -= 1
            if not self._lock_users[account_id]:
                del self._lock_users[account_id]
                if account_id not in self._agents:
                    self._locks.pop(account_id, None)

    def _deregister(self, agent: BotAgent) -> None:
        if self._agents.get(agent.account_id) is agent:
            del self._agents[agent.account_id]
            if agent.account_id not in self._lock_users:
                self._locks.pop(agent.account_id, None)
            logger.info(
                "Deregistered %s (%s)",
                short_key(agent.run_state.account.public_key),
                agent.state.value,
            )

    def _handle_completion(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error("Bot task %s raised an exception", task.get_name(), exc_info=exc)


__all__ = ["BotStatus", "BotRegistry"]
