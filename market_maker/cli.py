"""Command line interface.

``run`` starts every active account and prints a status table until
interrupted. ``accounts`` and ``settings`` manage the YAML files the fleet
runs from.
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape

from .accounts import ACCOUNTS_FILE, AccountStore
from .config import CONFIG_FILE, GlobalSettings, load_config
from .errors import InvalidSettings
from .fleet import FleetManager
from .registry import BotRegistry
from .solana import JupiterSwapExecutor, RpcBalanceProvider
from .status import print_status
from .utils.logger import short_key
from .utils.logging_config import last_log_line

console = Console()


def _resolve_id(store: AccountStore, prefix: str) -> str:
    matches = [a.id for a in store.all() if a.id.startswith(prefix)]
    if len(matches) != 1:
        raise KeyError(f"No unique account matching {prefix!r}")
    return matches[0]


def build_fleet(
    settings: GlobalSettings,
    store: AccountStore,
    config_path: Optional[str | Path] = None,
) -> FleetManager:
    """Wire the Solana collaborators, registry and store into a fleet."""
    balance = RpcBalanceProvider(settings.rpc_endpoint)
    executor = JupiterSwapExecutor(
        settings.rpc_endpoint,
        dry_run=settings.dry_run,
        slippage_bps=settings.slippage_bps,
    )
    registry = BotRegistry.from_settings(settings, balance, executor)
    return FleetManager(store, settings, registry, config_path)


def _parse_pairs(pairs: list[str]) -> dict:
    updates = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise InvalidSettings(f"Expected KEY=VALUE, got {pair!r}")
        updates[key.strip()] = yaml.safe_load(value)
    return updates


async def run_fleet(
    settings: GlobalSettings,
    store: AccountStore,
    refresh: float = 10.0,
    config_path: Optional[Path] = None,
) -> None:
    """Run every active account until all bots exit or the task is cancelled."""
    fleet = build_fleet(settings, store, config_path)
    registry = fleet.registry
    try:
        started = await fleet.start_all()
        console.print(f"Started {started} bot(s) ({'dry run' if settings.dry_run else 'live'})")
        while len(registry):
            print_status(registry.list_active(), console, footer=last_log_line())
            await asyncio.sleep(refresh)
    finally:
        await fleet.close(timeout=settings.settle_delay + 30)


def _cmd_run(args: argparse.Namespace) -> int:
    settings = load_config(args.config)
    if args.live:
        settings = settings.model_copy(update={"dry_run": False})
    store = AccountStore(args.accounts)
    if not store.active():
        console.print("No active accounts. Use 'accounts activate <id>' first.")
        return 1
    try:
        asyncio.run(run_fleet(settings, store, args.refresh, Path(args.config)))
    except KeyboardInterrupt:
        console.print("Stopped")
    return 0


def _cmd_accounts(args: argparse.Namespace) -> int:
    cmd = args.accounts_cmd
    if cmd is None:
        return 1
    fleet = build_fleet(load_config(args.config), AccountStore(args.accounts), args.config)
    store = fleet.store
    if cmd == "create":
        for _ in range(args.count):
            account = store.create(fleet.settings)
            console.print(f"Created {account.id} {account.public_key}")
    elif cmd == "import":
        account = store.import_key(args.secret, fleet.settings)
        console.print(f"Imported {account.id} {account.public_key}")
    elif cmd == "list":
        for account in store.all():
            mode = "custom" if account.custom_settings and account.custom_settings.enabled else "global"
            flag = "active" if account.is_active else "inactive"
            console.print(
                f"{account.id[:8]}  {short_key(account.public_key, 12)}  "
                f"{flag:<8}  cycles={account.cycles_completed}  settings={mode}"
            )
    elif cmd in ("activate", "deactivate"):
        account_id = _resolve_id(store, args.id)
        store.set_active(account_id, cmd == "activate")
        console.print(f"{cmd.capitalize()}d {account_id}")
    elif cmd == "settings":
        account_id = _resolve_id(store, args.id)
        override = fleet.update_account_settings(account_id, **_parse_pairs(args.pairs))
        console.print(yaml.safe_dump(override.model_dump(), sort_keys=False))
    elif cmd == "recycle":
        account_id = _resolve_id(store, args.id)
        replacement = asyncio.run(fleet.recycle(account_id, start=False))
        console.print(f"Recycled {account_id} into {replacement.id} {replacement.public_key}")
    elif cmd == "delete":
        if args.all:
            asyncio.run(fleet.delete_all())
            console.print("Deleted all accounts")
        elif args.id:
            account_id = _resolve_id(store, args.id)
            asyncio.run(fleet.delete_account(account_id))
            console.print(f"Deleted {account_id}")
        else:
            raise KeyError("delete needs an account id or --all")
    return 0


def _cmd_settings(args: argparse.Namespace) -> int:
    fleet = build_fleet(load_config(args.config), AccountStore(args.accounts), args.config)
    if args.settings_cmd == "set":
        fleet.update_settings(**_parse_pairs(args.pairs))
    console.print(yaml.safe_dump(fleet.settings.model_dump(), sort_keys=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="market-maker")
    parser.add_argument("--config", default=str(CONFIG_FILE), help="global settings YAML")
    parser.add_argument("--accounts", default=str(ACCOUNTS_FILE), help="accounts YAML")
    sub = parser.add_subparsers(dest="command")

    run_p = sub.add_parser("run", help="start all active accounts")
    run_p.add_argument("--live", action="store_true", help="send real transactions")
    run_p.add_argument("--refresh", type=float, default=10.0, help="status refresh seconds")
    run_p.set_defaults(func=_cmd_run)

    acc = sub.add_parser("accounts", help="manage accounts")
    acc_sub = acc.add_subparsers(dest="accounts_cmd")
    create_p = acc_sub.add_parser("create", help="generate new accounts")
    create_p.add_argument("--count", type=int, default=1)
    import_p = acc_sub.add_parser("import", help="import a base58 private key")
    import_p.add_argument("secret")
    acc_sub.add_parser("list", help="list accounts")
    for name in ("activate", "deactivate", "recycle"):
        p = acc_sub.add_parser(name, help=f"{name} an account")
        p.add_argument("id", help="account id or unique prefix")
    delete_p = acc_sub.add_parser("delete", help="delete an account")
    delete_p.add_argument("id", nargs="?", help="account id or unique prefix")
    delete_p.add_argument("--all", action="store_true", help="delete every account")
    acc_settings = acc_sub.add_parser("settings", help="change an account's settings override")
    acc_settings.add_argument("id", help="account id or unique prefix")
    acc_settings.add_argument("pairs", nargs="+", metavar="KEY=VALUE")
    acc.set_defaults(func=_cmd_accounts)

    st = sub.add_parser("settings", help="show or change global settings")
    st_sub = st.add_subparsers(dest="settings_cmd")
    st_sub.add_parser("show")
    set_p = st_sub.add_parser("set")
    set_p.add_argument("pairs", nargs="+", metavar="KEY=VALUE")
    st.set_defaults(func=_cmd_settings)

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 1
    try:
        return int(args.func(args))
    except (InvalidSettings, KeyError, ValueError) as exc:
        console.print(f"[red]Error:[/] {escape(str(exc))}")
        return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
