"""YAML backed storage of managed accounts."""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError
from solders.keypair import Keypair

from .config import AccountSettings, GlobalSettings, resolve_settings
from .errors import InvalidSettings
from .models import Account
from .utils.logger import LOG_DIR, setup_logger, short_key

logger = setup_logger(__name__, LOG_DIR / "wallet.log")

ACCOUNTS_FILE = Path(__file__).resolve().parent / "accounts.yaml"


def keypair_from_secret(secret_key: str) -> Keypair:
    """Return the keypair for a base58 encoded secret."""
    try:
        return Keypair.from_base58_string(secret_key.strip())
    except Exception as exc:
        raise ValueError("Invalid private key format") from exc


class AccountStore:
    """Create, import and persist accounts.

    Secrets are encrypted at rest with Fernet when ``FERNET_KEY`` is set (or
    ``fernet_key`` is passed). Every mutation is written back to ``path``.
    """

    def __init__(self, path: str | Path = ACCOUNTS_FILE, fernet_key: Optional[str] = None) -> None:
        self.path = Path(path)
        key = fernet_key or os.getenv("FERNET_KEY")
        self._fernet = Fernet(key) if key else None
        self._accounts: Dict[str, Account] = {}
        self._load()

    # ------------------------------------------------------------------
    def _encrypt(self, value: str) -> str:
        if self._fernet:
            return self._fernet.encrypt(value.encode()).decode()
        return value

    def _decrypt(self, value: str) -> str:
        if self._fernet:
            try:
                return self._fernet.decrypt(value.encode()).decode()
            except InvalidToken:
                logger.warning("Stored secret is not Fernet encrypted; using it as is")
        return value

    def _load(self) -> None:
        if not self.path.exists():
            return
        with open(self.path) as f:
            rows = yaml.safe_load(f) or []
        for row in rows:
            row = dict(row)
            row["secret_key"] = self._decrypt(str(row.get("secret_key", "")))
            account = Account.from_dict(row)
            self._accounts[account.id] = account
        logger.info("Loaded %d accounts from %s", len(self._accounts), self.path)

    def save(self) -> None:
        rows = []
        for account in self._accounts.values():
            row = account.to_dict()
            row["secret_key"] = self._encrypt(account.secret_key)
            rows.append(row)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(rows, f, sort_keys=False)

    # ------------------------------------------------------------------
    def _add(self, keypair: Keypair, settings: Optional[GlobalSettings]) -> Account:
        account = Account(
            id=uuid.uuid4().hex,
            public_key=str(keypair.pubkey()),
            secret_key=str(keypair),
            custom_settings=AccountSettings.from_global(settings) if settings else None,
        )
        self._accounts[account.id] = account
        self.save()
        return account

    def create(self, settings: Optional[GlobalSettings] = None) -> Account:
        """Generate a fresh keypair and store it as a new account."""
        account = self._add(Keypair(), settings)
        logger.info("Created account %s", short_key(account.public_key))
        return account

    def import_key(self, secret_key: str, settings: Optional[GlobalSettings] = None) -> Account:
        """Store an existing base58 secret as a new account."""
        keypair = keypair_from_secret(secret_key)
        public_key = str(keypair.pubkey())
        if any(a.public_key == public_key for a in self._accounts.values()):
            raise ValueError(f"Account {short_key(public_key)} already exists")
        account = self._add(keypair, settings)
        logger.info("Imported account %s", short_key(account.public_key))
        return account

    def get(self, account_id: str) -> Account:
        try:
            return self._accounts[account_id]
        except KeyError:
            raise KeyError(f"Unknown account: {account_id}") from None

    def all(self) -> List[Account]:
        return list(self._accounts.values())

    def active(self) -> List[Account]:
        return [a for a in self._accounts.values() if a.is_active]

    def update(self, account_id: str, **fields) -> Account:
        account = self.get(account_id)
        for name, value in fields.items():
            if not hasattr(account, name) or name in ("id", "public_key", "secret_key"):
                raise AttributeError(f"Cannot update account field: {name}")
            setattr(account, name, value)
        self.save()
        return account

    def update_settings(
        self,
        account_id: str,
        defaults: Optional[GlobalSettings] = None,
        **fields,
    ) -> AccountSettings:
        """Merge ``fields`` into the account's override and persist it.

        An account without an override gets one seeded from ``defaults``. An
        enabled override must resolve cleanly or :class:`InvalidSettings` is
        raised and nothing is stored.
        """
        account = self.get(account_id)
        defaults = defaults or GlobalSettings()
        base = account.custom_settings or AccountSettings.from_global(defaults)
        try:
            override = AccountSettings(**{**base.model_dump(), **fields})
        except ValidationError as exc:
            raise InvalidSettings(str(exc)) from exc
        if override.enabled:
            resolve_settings(defaults, override)
        account.custom_settings = override
        self.save()
        logger.info("Updated settings for %s", short_key(account.public_key))
        return account.custom_settings

    def set_active(self, account_id: str, active: bool) -> Account:
        return self.update(account_id, is_active=active)

    def delete(self, account_id: str) -> None:
        account = self._accounts.pop(account_id, None)
        if account is None:
            raise KeyError(f"Unknown account: {account_id}")
        self.save()
        logger.info("Deleted account %s", short_key(account.public_key))

    def clear(self) -> None:
        self._accounts.clear()
        self.save()

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._accounts


__all__ = ["AccountStore", "keypair_from_secret", "ACCOUNTS_FILE"]
