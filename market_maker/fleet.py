from __future__ import annotations

"""Fleet management on top of :class:`BotRegistry`.

The fleet manager is the registry's caller: it persists cycle progress,
limits how many accounts trade at once and replaces accounts that have
exhausted their cycle budget.
"""

from pathlib import Path
from typing import Dict, Optional

from .accounts import AccountStore
from .config import SOL_MINT, AccountSettings, GlobalSettings, resolve_settings, save_config
from .errors import InvalidSettings
from .models import Account
from .registry import BotRegistry
from .utils.logger import LOG_DIR, setup_logger, short_key

logger = setup_logger(__name__, LOG_DIR / "bot.log")


class FleetManager:
    def __init__(
        self,
        store: AccountStore,
        settings: GlobalSettings,
        registry: BotRegistry,
        config_path: Optional[str | Path] = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.registry = registry
        self.config_path = config_path
        # retired account id -> replacement account id
        self.recycled: Dict[str, str] = {}

    async def start_account(self, account_id: str) -> bool:
        """Start trading ``account_id`` unless the active limit is reached."""
        account = self.store.get(account_id)
        if not self._tradable(account):
            return False
        if account_id not in self.registry and len(self.registry) >= self.settings.max_wallets:
            logger.warning(
                "Not starting %s: %d of %d wallets already active",
                short_key(account.public_key),
                len(self.registry),
                self.settings.max_wallets,
            )
            return False
        started = await self.registry.start(account, self.settings, self.handle_cycle_complete)
        if started:
            self.store.set_active(account_id, True)
        return started

    async def start_all(self) -> int:
        """Start every active account up to ``max_wallets``. Returns how many started."""
        started = 0
        for account in self.store.active():
            if len(self.registry) >= self.settings.max_wallets:
                break
            if await self.start_account(account.id):
                started += 1
        logger.info("Started %d of %d active accounts", started, len(self.store.active()))
        return started

    async def handle_cycle_complete(self, account_id: str, cycles_completed: int, needs_recycle: bool) -> None:
        if account_id not in self.store:
            return
        self.store.update(account_id, cycles_completed=cycles_completed)
        if needs_recycle:
            await self.recycle(account_id)

    async def recycle(self, account_id: str, start: bool = True) -> Account:
        """Retire ``account_id`` and bring up a replacement account.

        With ``start=False`` the replacement is only marked active and is
        picked up by the next ``start_all``.
        """
        old = self.store.get(account_id)
        await self.registry.stop(account_id)
        replacement = self.store.create(self.settings)
        if old.custom_settings is not None:
            self.store.update(replacement.id, custom_settings=old.custom_settings)
        # TODO: sweep the retired account's remaining SOL into the replacement
        self.store.set_active(account_id, False)
        self.store.set_active(replacement.id, True)
        self.recycled[account_id] = replacement.id
        logger.info(
            "Recycled %s into %s after %d cycles",
            short_key(old.public_key),
            short_key(replacement.public_key),
            old.cycles_completed,
        )
        if start and not await self.start_account(replacement.id):
            logger.warning("Replacement %s not started; it may need funding", short_key(replacement.public_key))
        return replacement

    async def delete_account(self, account_id: str) -> None:
        await self.registry.stop(account_id)
        self.store.delete(account_id)

    async def delete_all(self) -> None:
        for account in self.store.all():
            await self.registry.stop(account.id)
        self.store.clear()

    def update_account_settings(self, account_id: str, **fields) -> AccountSettings:
        """Change one account's override, seeding it from the global settings."""
        return self.store.update_settings(account_id, self.settings, **fields)

    def update_settings(self, **fields) -> GlobalSettings:
        """Replace global settings. Running bots keep their snapshot."""
        try:
            self.settings = GlobalSettings(**{**self.settings.model_dump(), **fields})
        except ValueError as exc:
            raise InvalidSettings(str(exc)) from exc
        if self.config_path is not None:
            save_config(self.settings, self.config_path)
        return self.settings

    async def close(self, timeout: Optional[float] = None) -> None:
        """Stop every bot and release the collaborators' connections."""
        await self.registry.shutdown(timeout=timeout)
        for collaborator in (self.registry.swap_executor, self.registry.balance_provider):
            close = getattr(collaborator, "close", None)
            if close is not None:
                await close()

    def _tradable(self, account: Account) -> bool:
        if self.settings.dry_run:
            return True
        try:
            target = resolve_settings(self.settings, account.custom_settings).trade_target
        except InvalidSettings:
            return True
        if target == getattr(self.registry.swap_executor, "base_mint", SOL_MINT):
            logger.error(
                "Not starting %s live: trade target is the base mint; set trade_target or token_mint",
                short_key(account.public_key),
            )
            return False
        return True
