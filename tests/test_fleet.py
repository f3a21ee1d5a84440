import pytest

from conftest import DummyBalance, DummySwap, never_wake
from market_maker.accounts import AccountStore
from market_maker.config import AccountSettings, GlobalSettings, load_config
from market_maker.errors import InvalidSettings
from market_maker.fleet import FleetManager
from market_maker.registry import BotRegistry


@pytest.fixture
def fleet(tmp_path, settings):
    store = AccountStore(tmp_path / "accounts.yaml")
    registry = BotRegistry(DummyBalance(1.0), DummySwap(), settle_delay=0, check_interval=0, sleep=never_wake)
    return FleetManager(store, settings, registry, tmp_path / "config.yaml")


@pytest.mark.asyncio
async def test_start_account_marks_active_and_close_stops(fleet):
    account = fleet.store.create()

    assert await fleet.start_account(account.id) is True
    assert fleet.store.get(account.id).is_active is True
    agent = fleet.registry.get(account.id)

    await fleet.close(timeout=1)

    assert agent.run_state.stop_requested is True
    assert len(fleet.registry) == 0


@pytest.mark.asyncio
async def test_max_wallets_limit(fleet):
    fleet.settings = fleet.settings.model_copy(update={"max_wallets": 1})
    first, second = fleet.store.create(), fleet.store.create()

    assert await fleet.start_account(first.id) is True
    assert await fleet.start_account(second.id) is False
    assert len(fleet.registry) == 1
    await fleet.registry.shutdown()


@pytest.mark.asyncio
async def test_start_all_only_active_accounts(fleet):
    a, b, _ = fleet.store.create(), fleet.store.create(), fleet.store.create()
    fleet.store.set_active(a.id, True)
    fleet.store.set_active(b.id, True)

    assert await fleet.start_all() == 2
    assert a.id in fleet.registry and b.id in fleet.registry
    await fleet.registry.shutdown()


@pytest.mark.asyncio
async def test_cycle_progress_persisted(fleet, tmp_path):
    account = fleet.store.create()
    await fleet.handle_cycle_complete(account.id, 3, False)
    assert AccountStore(tmp_path / "accounts.yaml").get(account.id).cycles_completed == 3


@pytest.mark.asyncio
async def test_recycle_replaces_account(fleet):
    old = fleet.store.create()
    old.custom_settings = AccountSettings(enabled=True, min_amount=0.01, max_amount=0.02)
    fleet.store.set_active(old.id, True)

    await fleet.handle_cycle_complete(old.id, 2, True)

    new_id = fleet.recycled[old.id]
    assert fleet.store.get(old.id).is_active is False
    assert fleet.store.get(old.id).cycles_completed == 2
    replacement = fleet.store.get(new_id)
    assert replacement.is_active is True
    assert replacement.custom_settings.enabled is True
    assert new_id in fleet.registry
    await fleet.registry.shutdown()


@pytest.mark.asyncio
async def test_recycle_with_unfunded_replacement(fleet):
    fleet.registry.balance_provider = DummyBalance(0.0)
    old = fleet.store.create()

    replacement = await fleet.recycle(old.id)

    assert replacement.id not in fleet.registry
    assert fleet.store.get(replacement.id).is_active is True


@pytest.mark.asyncio
async def test_delete_account_stops_bot(fleet):
    account = fleet.store.create()
    await fleet.start_account(account.id)
    agent = fleet.registry.get(account.id)

    await fleet.delete_account(account.id)

    assert account.id not in fleet.store
    assert agent.run_state.stop_requested is True
    await fleet.registry.shutdown()


@pytest.mark.asyncio
async def test_delete_all(fleet):
    fleet.store.create()
    fleet.store.create()
    await fleet.delete_all()
    assert len(fleet.store) == 0


def test_update_settings_persists(fleet, tmp_path, monkeypatch):
    monkeypatch.delenv("SOLANA_RPC_URL", raising=False)
    fleet.update_settings(max_wallets=2)
    assert load_config(tmp_path / "config.yaml").max_wallets == 2
    with pytest.raises(InvalidSettings):
        fleet.update_settings(max_wallets=0)
    assert isinstance(fleet.settings, GlobalSettings)


@pytest.mark.asyncio
async def test_live_start_refuses_base_mint_target(fleet):
    fleet.settings = fleet.settings.model_copy(update={"dry_run": False})
    plain, custom = fleet.store.create(), fleet.store.create()
    fleet.store.update_settings(custom.id, fleet.settings, enabled=True, token_mint="MINT111")

    assert await fleet.start_account(plain.id) is False
    assert await fleet.start_account(custom.id) is True
    assert plain.id not in fleet.registry
    await fleet.registry.shutdown()


@pytest.mark.asyncio
async def test_recycle_without_start_only_marks_replacement(fleet):
    old = fleet.store.create()
    fleet.store.set_active(old.id, True)

    replacement = await fleet.recycle(old.id, start=False)

    assert len(fleet.registry) == 0
    assert fleet.store.get(replacement.id).is_active is True
    assert fleet.store.get(old.id).is_active is False


def test_update_account_settings_seeds_from_globals(fleet):
    account = fleet.store.create()
    override = fleet.update_account_settings(account.id, enabled=True, max_amount=0.05)
    assert override.enabled is True
    assert override.max_amount == 0.05
    assert override.cycles_before_recycle == fleet.settings.cycles_before_recycle
    with pytest.raises(InvalidSettings):
        fleet.update_account_settings(account.id, min_amount=0.5)
    assert fleet.store.get(account.id).custom_settings.max_amount == 0.05
